"""Tests for trim-and-fill."""

import numpy as np
import pytest

from cogmeta.analysis.effect_sizes import EffectSize
from cogmeta.analysis.statistics import ModelKind, random_effects
from cogmeta.analysis.trimfill import estimate_missing, estimate_side, trim_and_fill


def _effect(effect: float, se: float, study: str = "") -> EffectSize:
    return EffectSize(study, study, effect, se**2, se, effect - 1.96 * se, effect + 1.96 * se)


@pytest.fixture
def asymmetric_effects() -> list[EffectSize]:
    """Small studies with large positive effects and nothing on the left."""
    effects = [0.1, 0.15, 0.2, 0.25, 0.5, 0.7, 0.9]
    ses = [0.05, 0.07, 0.1, 0.12, 0.25, 0.3, 0.35]
    return [_effect(y, se, f"S{i}") for i, (y, se) in enumerate(zip(effects, ses, strict=True))]


class TestEstimateMissing:
    """Tests for the L0 estimator."""

    def test_symmetric_gives_zero(self) -> None:
        """Test an exactly symmetric set needs no imputation."""
        y = np.array([-0.6, -0.3, 0.0, 0.3, 0.6])
        k0, b = estimate_missing(y, np.full(5, 0.04))
        assert k0 == 0
        assert b == pytest.approx(0.0, abs=1e-8)

    def test_symmetric_pairs_with_ties(self) -> None:
        """Test mirrored pairs tie in rank and give zero."""
        y = np.array([-0.5, -0.2, 0.2, 0.5])
        v = np.array([0.04, 0.1, 0.1, 0.04])
        k0, _ = estimate_missing(y, v)
        assert k0 == 0


class TestEstimateSide:
    """Tests for side estimation."""

    def test_equal_errors_default_left(self) -> None:
        """Test no precision spread falls back to the left side."""
        effects = [_effect(y, 0.2) for y in (0.1, 0.4, 0.9)]
        assert estimate_side(effects) == "left"

    def test_positive_small_study_effect(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test large effects in small studies point to missing studies on the left."""
        assert estimate_side(asymmetric_effects) == "left"

    def test_negative_small_study_effect(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test the mirrored pattern points right."""
        mirrored = [_effect(-e.effect, e.se) for e in asymmetric_effects]
        assert estimate_side(mirrored) == "right"


class TestTrimAndFill:
    """Tests for trim_and_fill."""

    def test_imputes_on_left(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test asymmetric data are filled and the estimate moves down."""
        main = random_effects(asymmetric_effects)
        result = trim_and_fill(asymmetric_effects)
        filled = [e for e in result.effects if e.filled]

        assert result.kind == ModelKind.TRIM_FILL
        assert result.side == "left"
        assert result.k0 > 0
        assert len(filled) == result.k0
        assert result.n_studies == len(asymmetric_effects) + result.k0
        assert result.pooled.estimate < main.pooled.estimate
        assert f"{result.k0} imputed on the left side" in result.notes

    def test_imputes_on_right(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test the mirrored data fill on the right and move the estimate up."""
        mirrored = [_effect(-e.effect, e.se, e.study) for e in asymmetric_effects]
        left = trim_and_fill(asymmetric_effects)
        result = trim_and_fill(mirrored, side="right")

        assert result.side == "right"
        assert result.k0 == left.k0
        assert result.pooled.estimate == pytest.approx(-left.pooled.estimate, abs=1e-6)
        assert result.pooled.estimate > random_effects(mirrored).pooled.estimate

    def test_filled_effects_mirror_observed(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test imputed studies keep the variances of the studies they mirror."""
        result = trim_and_fill(asymmetric_effects)
        filled = [e for e in result.effects if e.filled]
        observed_variances = sorted(e.variance for e in asymmetric_effects)
        assert all(f.variance in observed_variances for f in filled)
        assert all(f.study.startswith("filled-") for f in filled)

    def test_symmetric_no_imputation(self) -> None:
        """Test nothing is imputed for symmetric data."""
        effects = [_effect(y, 0.2, f"S{i}") for i, y in enumerate((-0.6, -0.3, 0.0, 0.3, 0.6))]
        result = trim_and_fill(effects)
        assert result.k0 == 0
        assert result.pooled.estimate == pytest.approx(random_effects(effects).pooled.estimate)

    def test_too_few_studies_skipped(self) -> None:
        """Test fewer than three studies skips the procedure."""
        effects = [_effect(0.2, 0.1, "A"), _effect(0.6, 0.2, "B")]
        result = trim_and_fill(effects)
        assert result.k0 == 0
        assert any("skipped" in note for note in result.notes)

    def test_single_study(self) -> None:
        """Test one study is skipped with the fixed-effect fallback."""
        result = trim_and_fill([_effect(0.4, 0.2, "A")])
        assert result.k0 == 0
        assert result.pooled.estimate == pytest.approx(0.4)

    def test_unsupported_estimator(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test only the L0 estimator is accepted."""
        with pytest.raises(ValueError, match="estimator"):
            trim_and_fill(asymmetric_effects, estimator="R0")

    def test_estimator_case_insensitive(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test the estimator name is matched without regard to case."""
        assert trim_and_fill(asymmetric_effects, estimator="l0").k0 == trim_and_fill(asymmetric_effects).k0

    def test_invalid_side(self, asymmetric_effects: list[EffectSize]) -> None:
        """Test an unknown side is rejected."""
        with pytest.raises(ValueError, match="side"):
            trim_and_fill(asymmetric_effects, side="up")

    def test_empty_raises(self) -> None:
        """Test pooling nothing is an error."""
        with pytest.raises(ValueError):
            trim_and_fill([])
