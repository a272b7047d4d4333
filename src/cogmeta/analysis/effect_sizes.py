"""Effect size calculations for two-condition study summaries.

Every comparison is expressed as condition 2 minus condition 1, standardized
by the (bias-corrected) standard deviation of condition 2. Rows where
condition 2 has no spread fall back to the average of the two group variances
so that a finite effect and a positive variance can still be reported.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.special import gammaln

logger = logging.getLogger(__name__)

Z_95 = 1.959963984540054


class DataQualityError(Exception):
    """Summary statistics that cannot produce a finite effect size."""


@dataclass
class EffectSize:
    """A single study (or comparison) effect size."""

    study: str  # Grouping key, shared by rows from the same study
    label: str  # Display name
    effect: float  # Standardized mean difference
    variance: float  # Sampling variance
    se: float
    ci_lower: float
    ci_upper: float
    weight: float | None = None  # Percent weight in the pooled model
    n_total: int | None = None
    measure: str | None = None
    filled: bool = False  # Imputed by trim-and-fill


def _correction_factor(df: float) -> float:
    """Exact Hedges' small-sample correction J for the given degrees of freedom.

    J is zero at df = 1, which would erase the effect, so a single degree of
    freedom is left uncorrected.
    """
    if df < 2:
        logger.warning("Only %g degree(s) of freedom, effect size left without small-sample correction", df)
        return 1.0
    return float(np.exp(gammaln(df / 2) - np.log(np.sqrt(df / 2)) - gammaln((df - 1) / 2)))


def standardized_mean_difference(
    mean1: float,
    sd1: float,
    n1: float,
    mean2: float,
    sd2: float,
    n2: float,
    study: str = "",
    label: str | None = None,
    measure: str | None = None,
) -> EffectSize:
    """
    Calculate the standardized mean difference of condition 2 versus condition 1.

    The raw difference ``mean2 - mean1`` is divided by ``sd2`` and multiplied
    by Hedges' correction computed from ``n2 - 1`` degrees of freedom. The
    sampling variance allows the two conditions to have unequal variances.

    Args:
        mean1: Mean of condition 1
        sd1: Standard deviation of condition 1
        n1: Sample size of condition 1
        mean2: Mean of condition 2
        sd2: Standard deviation of condition 2
        n2: Sample size of condition 2
        study: Study label (grouping key)
        label: Display name, defaults to the study label
        measure: Measure label the row was reported under

    Returns:
        EffectSize with a finite effect and a strictly positive variance

    Raises:
        DataQualityError: If the inputs cannot yield a finite effect size
    """
    values = (mean1, sd1, n1, mean2, sd2, n2)
    if any(not math.isfinite(float(v)) for v in values):
        raise DataQualityError(f"{study or 'row'}: non-finite summary statistics {values}")
    if sd1 < 0 or sd2 < 0:
        raise DataQualityError(f"{study or 'row'}: negative standard deviation (SD.1={sd1}, SD.2={sd2})")
    if n1 < 1 or n2 < 2:
        raise DataQualityError(f"{study or 'row'}: sample sizes too small (N.1={n1}, N.2={n2})")
    if sd1 == 0 and sd2 == 0:
        raise DataQualityError(f"{study or 'row'}: zero variance in both conditions")

    diff = mean2 - mean1

    if sd2 > 0:
        df = n2 - 1
        j = _correction_factor(df)
        smd = j * diff / sd2
        variance = sd1**2 / (sd2**2 * n1) + 1 / n2 + smd**2 / (2 * df)
    else:
        # Condition 2 has no spread; standardize by the average variance instead
        logger.warning("%s: SD.2 is zero, standardizing by the average of both variances", study or "row")
        df = n1 + n2 - 2
        j = _correction_factor(df)
        sdp = np.sqrt((sd1**2 + sd2**2) / 2)
        smd = j * diff / sdp
        variance = (sd1**2 / n1 + sd2**2 / n2) / sdp**2 + smd**2 / (2 * df)

    se = np.sqrt(variance)

    return EffectSize(
        study=study,
        label=label or study,
        effect=float(smd),
        variance=float(variance),
        se=float(se),
        ci_lower=float(smd - Z_95 * se),
        ci_upper=float(smd + Z_95 * se),
        n_total=int(n1 + n2),
        measure=measure,
    )


def compute_effect_sizes(frame: pd.DataFrame) -> list[EffectSize]:
    """
    Compute one effect size per row of a domain subset.

    Studies that contribute more than one row get the measure label appended
    to their display name.

    Args:
        frame: Study rows with Mean/SD/N columns for both conditions

    Returns:
        Effect sizes in row order

    Raises:
        DataQualityError: If any row has degenerate summary statistics
    """
    repeated = set(frame["study"][frame["study"].duplicated()])
    effects: list[EffectSize] = []

    for record in frame.to_dict("records"):
        study = str(record["study"])
        measure = record.get("measure")
        measure = str(measure) if isinstance(measure, str) and measure else None
        label = f"{study} ({measure})" if study in repeated and measure else study

        effects.append(
            standardized_mean_difference(
                mean1=float(record["Mean.1"]),
                sd1=float(record["SD.1"]),
                n1=float(record["N.1"]),
                mean2=float(record["Mean.2"]),
                sd2=float(record["SD.2"]),
                n2=float(record["N.2"]),
                study=study,
                label=label,
                measure=measure,
            )
        )

    logger.debug("Computed %d effect sizes", len(effects))
    return effects
