"""Mixed-effects meta-regression with study-level random intercepts.

Categorical covariates use treatment coding. The reference level of each
factor is the first level in ascending lexicographic order of its string
values, so "acute" is the reference for {"acute", "chronic"} regardless of
row order. Every other level gets its own coefficient, read as the difference
from that reference.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats

from cogmeta.analysis.effect_sizes import EffectSize
from cogmeta.analysis.statistics import (
    ModelKind,
    ModelResult,
    PoolingMethod,
    coefficient_rows,
    fit_reml,
)

logger = logging.getLogger(__name__)


class ModelRankDeficiency(Exception):
    """A covariate lacks the variation needed to estimate its coefficient."""

    def __init__(self, message: str, terms: list[str] | None = None) -> None:
        super().__init__(message)
        self.terms = terms or []


class MissingCovariateError(Exception):
    """A moderator named in the plan is not a column of the data."""

    def __init__(self, columns: list[str]) -> None:
        super().__init__(f"Covariates not found in data: {', '.join(columns)}")
        self.columns = columns


@dataclass
class Design:
    """Fixed-effects design matrix for a meta-regression."""

    matrix: np.ndarray
    terms: list[str]
    rows: np.ndarray  # Positions of the frame rows kept in the matrix
    reference_levels: dict[str, str] = field(default_factory=dict)


def _is_categorical(series: pd.Series) -> bool:
    return not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series)


def build_design(frame: pd.DataFrame, covariates: list[str]) -> Design:
    """
    Build an intercept-plus-covariates design matrix.

    Args:
        frame: Domain subset with one row per effect size
        covariates: Covariate column names, in the order they enter the model

    Returns:
        Design with the matrix, term names and reference levels

    Raises:
        ModelRankDeficiency: If a covariate has a single observed level (or no
            variance), or the design is collinear or has too few rows
        MissingCovariateError: If a covariate is not a column of the frame
    """
    missing_columns = [c for c in covariates if c not in frame.columns]
    if missing_columns:
        raise MissingCovariateError(missing_columns)

    complete = frame[covariates].notna().all(axis=1).to_numpy()
    dropped = int((~complete).sum())
    if dropped:
        logger.warning("Dropping %d row(s) with missing covariate values", dropped)
    data = frame.loc[complete, covariates]

    columns: list[np.ndarray] = [np.ones(len(data))]
    terms = ["intrcpt"]
    reference_levels: dict[str, str] = {}
    single_level: list[str] = []

    for name in covariates:
        series = data[name]
        if _is_categorical(series):
            values = series.astype(str)
            levels = sorted(values.unique())
            if len(levels) < 2:
                single_level.append(name)
                continue
            reference_levels[name] = levels[0]
            for level in levels[1:]:
                columns.append((values == level).to_numpy(dtype=float))
                terms.append(f"{name}[{level}]")
        else:
            values = series.to_numpy(dtype=float)
            if len(values) == 0 or np.ptp(values) == 0:
                single_level.append(name)
                continue
            columns.append(values)
            terms.append(name)

    if single_level:
        raise ModelRankDeficiency(
            f"Covariate(s) with a single observed level: {', '.join(single_level)}",
            terms=single_level,
        )

    matrix = np.column_stack(columns)
    n_rows, n_cols = matrix.shape

    if n_rows < n_cols + 1:
        raise ModelRankDeficiency(
            f"Too few effect sizes ({n_rows}) for {n_cols} coefficients",
            terms=terms[1:],
        )

    rank = np.linalg.matrix_rank(matrix)
    if rank < n_cols:
        raise ModelRankDeficiency(
            f"Collinear covariates: design has rank {rank} for {n_cols} coefficients ({', '.join(terms[1:])})",
            terms=terms[1:],
        )

    return Design(
        matrix=matrix,
        terms=terms,
        rows=np.flatnonzero(complete),
        reference_levels=reference_levels,
    )


def meta_regression(
    frame: pd.DataFrame,
    effects: list[EffectSize],
    covariates: list[str],
    cluster: str = "study",
    level: float = 0.95,
) -> ModelResult:
    """
    Fit a mixed-effects meta-regression with a random intercept per study.

    Args:
        frame: Domain subset, aligned row-for-row with ``effects``
        effects: Effect sizes computed from ``frame``
        covariates: Moderator columns
        cluster: Column holding the random-intercept grouping key
        level: Confidence level for intervals

    Returns:
        ModelResult with one coefficient row per design column

    Raises:
        ModelRankDeficiency: If the design cannot be estimated
        MissingCovariateError: If a covariate is not a column of the frame
        ModelNonConvergence: If REML fails
    """
    if len(frame) != len(effects):
        raise ValueError(f"Frame has {len(frame)} rows but {len(effects)} effect sizes were given")

    design = build_design(frame, covariates)
    y = np.array([effects[i].effect for i in design.rows])
    v = np.array([effects[i].variance for i in design.rows])
    groups = frame[cluster].astype(str).to_numpy()[design.rows]

    fit = fit_reml(y, v, X=design.matrix, groups=groups)

    # Omnibus Wald test of every coefficient except the intercept
    b = fit.beta[1:]
    qm_df = len(b)
    qm = float(b @ np.linalg.solve(fit.vcov[1:, 1:], b)) if qm_df else None

    notes = [f"reference level for {name}: {ref}" for name, ref in design.reference_levels.items()]
    if fit.at_boundary:
        notes.append("between-study variance estimated at boundary (0)")

    n_clusters = len(set(groups))
    logger.info(
        "Meta-regression: k=%d, studies=%d, %d coefficient(s), sigma2=%.4f",
        len(y),
        n_clusters,
        len(design.terms),
        fit.sigma2,
    )

    return ModelResult(
        kind=ModelKind.MODERATOR,
        method=PoolingMethod.REML,
        coefficients=coefficient_rows(design.terms, fit.beta, fit.vcov, level),
        n_studies=len(y),
        n_clusters=n_clusters,
        tau_squared=fit.sigma2,
        qm_statistic=qm,
        qm_df=qm_df or None,
        qm_p_value=float(stats.chi2.sf(qm, qm_df)) if qm is not None else None,
        notes=tuple(notes),
    )
