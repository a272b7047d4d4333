"""Analysis module for effect sizes and meta-analytic models."""

from cogmeta.analysis.effect_sizes import (
    DataQualityError,
    EffectSize,
    compute_effect_sizes,
    standardized_mean_difference,
)
from cogmeta.analysis.moderators import ModelRankDeficiency, build_design, meta_regression
from cogmeta.analysis.statistics import (
    CoefficientRow,
    ModelKind,
    ModelNonConvergence,
    ModelResult,
    PoolingMethod,
    fit_reml,
    fixed_effects,
    random_effects,
)
from cogmeta.analysis.trimfill import trim_and_fill

__all__ = [
    # Effect sizes
    "DataQualityError",
    "EffectSize",
    "compute_effect_sizes",
    "standardized_mean_difference",
    # Pooling
    "CoefficientRow",
    "ModelKind",
    "ModelNonConvergence",
    "ModelResult",
    "PoolingMethod",
    "fit_reml",
    "fixed_effects",
    "random_effects",
    # Moderators
    "ModelRankDeficiency",
    "build_design",
    "meta_regression",
    # Publication bias
    "trim_and_fill",
]
