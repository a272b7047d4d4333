"""Trim-and-fill correction for funnel plot asymmetry.

Duval & Tweedie's iterative procedure with the L0 estimator:

1. Sort effects (stable, so ties keep their input order).
2. Pool the k - k0 smallest effects and centre every effect on that estimate.
3. Rank the absolute centred effects (average ranks for ties) and estimate
   k0 = (4 * S_r - k(k + 1)) / (2k - 1) from the rank sum S_r of the
   positive deviations.
4. Repeat until k0 no longer changes, then mirror the k0 most extreme
   effects around the trimmed estimate and refit on the augmented set.
"""

import logging
from dataclasses import replace

import numpy as np
from scipy import stats

from cogmeta.analysis.effect_sizes import Z_95, EffectSize
from cogmeta.analysis.statistics import (
    ModelKind,
    ModelNonConvergence,
    ModelResult,
    fit_reml,
    random_effects,
)

logger = logging.getLogger(__name__)

MIN_STUDIES = 3

ESTIMATORS = ("L0",)

# Centred effects are compared after rounding so exact mirror images tie
RANK_DECIMALS = 10


def estimate_side(effects: list[EffectSize]) -> str:
    """
    Estimate which side of the funnel studies are missing from.

    Regresses effects on their standard errors. A negative slope (small
    studies pulling the estimate down) means studies are missing on the right;
    otherwise they are missing on the left.
    """
    y = np.array([e.effect for e in effects])
    v = np.array([e.variance for e in effects])
    se = np.sqrt(v)

    if len(y) < 3 or np.ptp(se) == 0:
        return "left"

    fit = fit_reml(y, v, X=np.column_stack([np.ones(len(y)), se]))
    return "right" if fit.beta[1] < 0 else "left"


def _pooled_estimate(y: np.ndarray, v: np.ndarray) -> float:
    if len(y) < 2:
        return float(y[0])
    return float(fit_reml(y, v).beta[0])


def estimate_missing(y: np.ndarray, v: np.ndarray, max_iter: int = 100) -> tuple[int, float]:
    """
    Run the L0 iteration on effects already sorted ascending.

    Args:
        y: Effects, sorted ascending, with the suppressed side on the left
        v: Matching sampling variances
        max_iter: Iteration budget

    Returns:
        Tuple of (k0, trimmed pooled estimate)

    Raises:
        ModelNonConvergence: If k0 has not stabilized within ``max_iter``
    """
    k = len(y)
    k0 = 0
    previous = -1
    iterations = 0
    b = _pooled_estimate(y, v)

    while k0 != previous:
        previous = k0
        iterations += 1
        if iterations > max_iter:
            raise ModelNonConvergence(f"Trim-and-fill did not converge within {max_iter} iterations")

        b = _pooled_estimate(y[: k - k0], v[: k - k0])
        centred = np.round(y - b, RANK_DECIMALS)
        ranks = stats.rankdata(np.abs(centred), method="average")
        s_r = float(ranks[centred > 0].sum())
        k0 = max(0, int(np.round((4 * s_r - k * (k + 1)) / (2 * k - 1))))
        logger.debug("Trim-and-fill iteration %d: S_r=%.1f, k0=%d, b=%.4f", iterations, s_r, k0, b)

    return k0, b


def trim_and_fill(
    effects: list[EffectSize],
    side: str | None = None,
    level: float = 0.95,
    max_iter: int = 100,
    estimator: str = "L0",
) -> ModelResult:
    """
    Adjust a random-effects estimate for funnel plot asymmetry.

    Args:
        effects: Study effect sizes
        side: "left" or "right" for the side missing studies are imputed on.
            Estimated from the data when None.
        level: Confidence level for intervals
        max_iter: Iteration budget for the k0 estimator
        estimator: k0 estimator; only "L0" is implemented

    Returns:
        ModelResult (kind TRIM_FILL) fitted on observed plus imputed effects,
        with ``k0``, ``side`` and the imputed effects in ``effects``

    Raises:
        ValueError: If there are no effects, or ``side`` or ``estimator`` is invalid
        ModelNonConvergence: If the iteration or a REML fit fails
    """
    if len(effects) == 0:
        raise ValueError("No effects to pool")
    if side is not None and side not in ("left", "right"):
        raise ValueError(f"side must be 'left' or 'right', got {side!r}")
    if estimator.upper() not in ESTIMATORS:
        raise ValueError(f"Unsupported trim-and-fill estimator: {estimator} (available: {', '.join(ESTIMATORS)})")

    if len(effects) < MIN_STUDIES:
        logger.warning("Trim-and-fill needs at least %d studies, got %d", MIN_STUDIES, len(effects))
        base = random_effects(effects, level=level, kind=ModelKind.TRIM_FILL)
        return replace(
            base,
            k0=0,
            side=side,
            notes=base.notes + (f"trim-and-fill skipped: fewer than {MIN_STUDIES} studies",),
        )

    if side is None:
        side = estimate_side(effects)

    sign = -1.0 if side == "right" else 1.0
    y = sign * np.array([e.effect for e in effects])
    v = np.array([e.variance for e in effects])

    order = np.argsort(y, kind="mergesort")
    y_sorted = y[order]
    v_sorted = v[order]

    k0, b = estimate_missing(y_sorted, v_sorted, max_iter=max_iter)
    k = len(y_sorted)

    filled: list[EffectSize] = []
    for i, (y_i, v_i) in enumerate(zip(y_sorted[k - k0 :], v_sorted[k - k0 :], strict=True), start=1):
        effect = float(sign * (2 * b - y_i))
        se = float(np.sqrt(v_i))
        filled.append(
            EffectSize(
                study=f"filled-{i}",
                label=f"Filled {i}",
                effect=effect,
                variance=float(v_i),
                se=se,
                ci_lower=effect - Z_95 * se,
                ci_upper=effect + Z_95 * se,
                filled=True,
            )
        )

    logger.info("Trim-and-fill: imputed %d study/studies on the %s side", k0, side)

    adjusted = random_effects(list(effects) + filled, level=level, kind=ModelKind.TRIM_FILL)
    notes = adjusted.notes + (f"{k0} imputed on the {side} side",)
    return replace(adjusted, k0=k0, side=side, notes=notes)
