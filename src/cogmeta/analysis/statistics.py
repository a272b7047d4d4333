"""Random-effects meta-analysis fitted by restricted maximum likelihood.

Implements the pooling models used for each cognitive domain:

- Fixed effects (inverse-variance weighted)
- Random effects with tau-squared estimated by REML

`fit_reml` is shared with the moderator and trim-and-fill models. It handles
a general marginal covariance ``V = diag(v) + sigma2 * Z Z'`` where ``Z`` is
either the identity (one random effect per estimate) or a study-membership
matrix (one random intercept per study).
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np
from scipy import optimize, stats

from cogmeta.analysis.effect_sizes import EffectSize

logger = logging.getLogger(__name__)

BOUNDARY_TOL = 1e-8


class ModelNonConvergence(Exception):
    """REML optimization failed to reach a finite optimum."""


class PoolingMethod(str, Enum):
    """Estimation method used for a model."""

    FIXED = "FE"
    REML = "REML"


class ModelKind(str, Enum):
    """The three models reported per domain."""

    MAIN = "main"
    MODERATOR = "moderator"
    TRIM_FILL = "trim_fill"


@dataclass(frozen=True)
class CoefficientRow:
    """One row of a model coefficient table."""

    term: str
    estimate: float
    se: float
    z: float
    p_value: float
    ci_lower: float
    ci_upper: float


@dataclass(frozen=True)
class ModelResult:
    """Result of fitting one model to one domain."""

    kind: ModelKind
    method: PoolingMethod
    coefficients: tuple[CoefficientRow, ...]
    n_studies: int  # Number of effect sizes
    n_clusters: int | None = None  # Number of studies carrying a random intercept
    tau_squared: float | None = None  # Between-estimate (or between-study) variance
    q_statistic: float | None = None  # Cochran's Q
    df: int | None = None
    q_p_value: float | None = None
    i_squared: float | None = None  # Heterogeneity, 0-100%
    qm_statistic: float | None = None  # Omnibus test of moderators
    qm_df: int | None = None
    qm_p_value: float | None = None
    k0: int | None = None  # Studies imputed by trim-and-fill
    side: str | None = None  # Funnel side the studies were imputed on
    notes: tuple[str, ...] = ()
    effects: tuple[EffectSize, ...] = field(default=(), repr=False)

    @property
    def pooled(self) -> CoefficientRow:
        """The intercept row (the pooled effect for intercept-only models)."""
        return self.coefficients[0]


@dataclass
class RemlFit:
    """Raw output of a REML fit."""

    beta: np.ndarray
    vcov: np.ndarray
    sigma2: float
    at_boundary: bool
    log_likelihood: float


def critical_value(level: float = 0.95) -> float:
    """Two-sided standard normal critical value for a confidence level."""
    return float(stats.norm.ppf(1 - (1 - level) / 2))


def coefficient_rows(
    terms: list[str], beta: np.ndarray, vcov: np.ndarray, level: float = 0.95
) -> tuple[CoefficientRow, ...]:
    """Build Wald z-test rows from estimates and their covariance matrix."""
    crit = critical_value(level)
    rows = []
    for i, term in enumerate(terms):
        estimate = float(beta[i])
        se = float(np.sqrt(vcov[i, i]))
        z = estimate / se
        rows.append(
            CoefficientRow(
                term=term,
                estimate=estimate,
                se=se,
                z=float(z),
                p_value=float(2 * stats.norm.sf(abs(z))),
                ci_lower=estimate - crit * se,
                ci_upper=estimate + crit * se,
            )
        )
    return tuple(rows)


def _gls(y: np.ndarray, X: np.ndarray, V: np.ndarray) -> tuple[np.ndarray, np.ndarray, float, float, float]:
    """Generalized least squares pieces needed by the restricted likelihood."""
    V_inv = np.linalg.inv(V)
    XtViX = X.T @ V_inv @ X
    vcov = np.linalg.inv(XtViX)
    beta = vcov @ X.T @ V_inv @ y
    resid = y - X @ beta
    rss = float(resid @ V_inv @ resid)
    _, logdet_v = np.linalg.slogdet(V)
    _, logdet_x = np.linalg.slogdet(XtViX)
    return beta, vcov, rss, float(logdet_v), float(logdet_x)


def _restricted_nll(sigma2: float, y: np.ndarray, v: np.ndarray, X: np.ndarray, ZZt: np.ndarray) -> float:
    """Negative restricted log-likelihood (up to a constant)."""
    V = np.diag(v) + sigma2 * ZZt
    _, _, rss, logdet_v, logdet_x = _gls(y, X, V)
    return 0.5 * (logdet_v + logdet_x + rss)


def fit_reml(
    y: np.ndarray,
    v: np.ndarray,
    X: np.ndarray | None = None,
    groups: np.ndarray | list[str] | None = None,
) -> RemlFit:
    """
    Fit a (mixed-effects) meta-analytic model by REML.

    Args:
        y: Observed effect sizes
        v: Known sampling variances
        X: Fixed-effects design matrix (defaults to an intercept column)
        groups: Cluster label per estimate. When given, the random effect is a
            shared intercept per cluster; otherwise one per estimate.

    Returns:
        RemlFit with GLS estimates at the REML variance component

    Raises:
        ModelNonConvergence: If the optimizer does not reach a finite optimum
    """
    y = np.asarray(y, dtype=float)
    v = np.asarray(v, dtype=float)
    n = len(y)
    if X is None:
        X = np.ones((n, 1))

    if groups is None:
        ZZt = np.eye(n)
    else:
        labels = np.asarray(groups)
        ZZt = (labels[:, None] == labels[None, :]).astype(float)

    # Generous upper bound: the observed spread dominates any plausible sigma2
    upper = max(1.0, 10 * float(np.var(y)), 10 * float(np.max(v)))

    try:
        res = optimize.minimize_scalar(
            _restricted_nll,
            bounds=(0.0, upper),
            args=(y, v, X, ZZt),
            method="bounded",
            options={"xatol": 1e-10, "maxiter": 500},
        )
    except np.linalg.LinAlgError as e:
        raise ModelNonConvergence(f"REML optimization failed: {e}") from e

    if not res.success or not np.isfinite(res.fun):
        raise ModelNonConvergence(f"REML optimization did not converge: {res.message}")

    sigma2 = float(res.x)
    nll = float(res.fun)

    # Brent's method approaches but never lands on the bound
    nll_zero = _restricted_nll(0.0, y, v, X, ZZt)
    if nll_zero <= nll or sigma2 < BOUNDARY_TOL:
        sigma2, nll = 0.0, nll_zero
    if sigma2 >= upper * (1 - 1e-6):
        raise ModelNonConvergence(f"REML estimate hit the upper search bound ({upper:.3g})")

    beta, vcov, _, _, _ = _gls(y, X, np.diag(v) + sigma2 * ZZt)

    return RemlFit(
        beta=beta,
        vcov=vcov,
        sigma2=sigma2,
        at_boundary=sigma2 == 0.0,
        log_likelihood=-nll,
    )


def _heterogeneity(y: np.ndarray, v: np.ndarray) -> tuple[float, int, float, float]:
    """Cochran's Q, its degrees of freedom and p-value, and I-squared."""
    w = 1 / v
    fixed = float(np.sum(w * y) / np.sum(w))
    q = float(np.sum(w * (y - fixed) ** 2))
    df = len(y) - 1
    q_p = float(stats.chi2.sf(q, df)) if df > 0 else float("nan")
    i_squared = max(0.0, (q - df) / q * 100) if q > 0 else 0.0
    return q, df, q_p, i_squared


def _weighted(effects: list[EffectSize], weights: np.ndarray) -> tuple[EffectSize, ...]:
    """Copies of the effects carrying percent weights."""
    percent = weights / weights.sum() * 100
    return tuple(replace(e, weight=float(w)) for e, w in zip(effects, percent, strict=True))


def fixed_effects(
    effects: list[EffectSize], level: float = 0.95, kind: ModelKind = ModelKind.MAIN
) -> ModelResult:
    """
    Inverse-variance weighted fixed effects meta-analysis.

    Args:
        effects: Study effect sizes
        level: Confidence level for intervals
        kind: Which report slot the result fills

    Returns:
        ModelResult with a single intercept row
    """
    if len(effects) == 0:
        raise ValueError("No effects to pool")

    y = np.array([e.effect for e in effects])
    v = np.array([e.variance for e in effects])
    w = 1 / v

    pooled = np.array([np.sum(w * y) / np.sum(w)])
    vcov = np.array([[1 / np.sum(w)]])
    q, df, q_p, i_squared = _heterogeneity(y, v)

    return ModelResult(
        kind=kind,
        method=PoolingMethod.FIXED,
        coefficients=coefficient_rows(["intrcpt"], pooled, vcov, level),
        n_studies=len(effects),
        tau_squared=None,
        q_statistic=q,
        df=df,
        q_p_value=q_p,
        i_squared=i_squared,
        effects=_weighted(effects, w),
    )


def random_effects(
    effects: list[EffectSize], level: float = 0.95, kind: ModelKind = ModelKind.MAIN
) -> ModelResult:
    """
    Random effects meta-analysis with tau-squared estimated by REML.

    With a single study the between-study variance cannot be estimated, so a
    fixed-effect estimate is returned and flagged in the notes.

    Args:
        effects: Study effect sizes
        level: Confidence level for intervals
        kind: Which report slot the result fills

    Returns:
        ModelResult with the pooled estimate and heterogeneity statistics

    Raises:
        ValueError: If there are no effects
        ModelNonConvergence: If REML fails
    """
    if len(effects) == 0:
        raise ValueError("No effects to pool")

    if len(effects) < 2:
        logger.warning("Only %d study available, falling back to a fixed-effect estimate", len(effects))
        fixed = fixed_effects(effects, level=level, kind=kind)
        return replace(fixed, notes=("fixed-effect fallback: fewer than 2 studies, tau² not estimable",))

    y = np.array([e.effect for e in effects])
    v = np.array([e.variance for e in effects])

    fit = fit_reml(y, v)
    q, df, q_p, i_squared = _heterogeneity(y, v)

    notes: tuple[str, ...] = ()
    if fit.at_boundary:
        notes = ("tau² estimated at boundary (0); interval equals the fixed-effect interval",)

    logger.debug(
        "REML fit: k=%d, estimate=%.4f, tau2=%.4f", len(effects), float(fit.beta[0]), fit.sigma2
    )

    return ModelResult(
        kind=kind,
        method=PoolingMethod.REML,
        coefficients=coefficient_rows(["intrcpt"], fit.beta, fit.vcov, level),
        n_studies=len(effects),
        tau_squared=fit.sigma2,
        q_statistic=q,
        df=df,
        q_p_value=q_p,
        i_squared=i_squared,
        notes=notes,
        effects=_weighted(effects, 1 / (v + fit.sigma2)),
    )
