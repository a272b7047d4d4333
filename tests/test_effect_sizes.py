"""Tests for standardized mean difference effect sizes."""

import math

import pandas as pd
import pytest

from cogmeta.analysis.effect_sizes import (
    DataQualityError,
    compute_effect_sizes,
    standardized_mean_difference,
)


class TestStandardizedMeanDifference:
    """Tests for the condition-2-standardized SMD."""

    def test_known_value(self) -> None:
        """Test effect and variance against a hand calculation."""
        result = standardized_mean_difference(mean1=10, sd1=2, n1=20, mean2=12, sd2=2, n2=20)
        # Exact J at 19 df is 0.9599, close to the 1 - 3 / (4 * 19 - 1) = 0.96 approximation
        assert result.effect == pytest.approx(0.9599, abs=1e-4)
        assert result.variance == pytest.approx(4 / (4 * 20) + 1 / 20 + result.effect**2 / 38)
        assert result.se == pytest.approx(math.sqrt(result.variance))
        assert result.n_total == 40

    def test_positive_when_condition_two_higher(self) -> None:
        """Test the sign follows mean2 - mean1."""
        result = standardized_mean_difference(mean1=8, sd1=3, n1=15, mean2=11, sd2=3, n2=15)
        assert result.effect > 0
        assert result.ci_lower < result.effect < result.ci_upper

    def test_negative_when_condition_two_lower(self) -> None:
        """Test a lower condition-2 mean gives a negative effect."""
        result = standardized_mean_difference(mean1=12, sd1=2, n1=20, mean2=10, sd2=2, n2=20)
        assert result.effect < 0

    def test_standardized_by_condition_two(self) -> None:
        """Test that only SD.2 scales the effect."""
        narrow = standardized_mean_difference(mean1=10, sd1=5, n1=20, mean2=12, sd2=1, n2=20)
        wide = standardized_mean_difference(mean1=10, sd1=1, n1=20, mean2=12, sd2=5, n2=20)
        assert narrow.effect == pytest.approx(5 * wide.effect)

    def test_small_sample_correction(self) -> None:
        """Test that smaller condition-2 samples are shrunk more."""
        small = standardized_mean_difference(mean1=8, sd1=2, n1=10, mean2=10, sd2=2, n2=10)
        large = standardized_mean_difference(mean1=8, sd1=2, n1=100, mean2=10, sd2=2, n2=100)
        assert small.effect < large.effect

    def test_zero_sd_two_falls_back(self) -> None:
        """Test that a zero SD.2 still gives a finite effect and positive variance."""
        result = standardized_mean_difference(mean1=10, sd1=2, n1=20, mean2=12, sd2=0, n2=20)
        assert math.isfinite(result.effect)
        assert result.variance > 0

    @pytest.mark.parametrize(
        "values",
        [
            (10, 2, 20, 12, 2, 20),
            (0, 0, 2, 1, 1, 2),
            (5, 1, 3, 5, 1, 3),
            (100, 15, 200, 90, 20, 180),
            (1, 0.1, 2, -1, 0.5, 2),
        ],
    )
    def test_finite_effect_and_positive_variance(self, values: tuple[float, ...]) -> None:
        """Test finite output for valid inputs with n >= 2."""
        result = standardized_mean_difference(*values)
        assert math.isfinite(result.effect)
        assert math.isfinite(result.variance)
        assert result.variance > 0

    @pytest.mark.parametrize(
        ("values", "sign"),
        [
            ((0, 1, 2, 10, 1, 2), 1),
            ((1, 0.1, 2, -1, 0.5, 2), -1),
            ((0, 0, 2, 1, 1, 2), 1),
        ],
    )
    def test_two_participant_condition_keeps_sign(self, values: tuple[float, ...], sign: int) -> None:
        """Test that N.2 = 2 still reports the direction of the mean difference."""
        result = standardized_mean_difference(*values)
        assert result.effect * sign > 0

    def test_two_participant_condition_uncorrected(self) -> None:
        """Test a single degree of freedom leaves the raw standardized difference."""
        result = standardized_mean_difference(mean1=0, sd1=1, n1=2, mean2=10, sd2=1, n2=2)
        assert result.effect == pytest.approx(10.0)

    def test_both_sd_zero_raises(self) -> None:
        """Test that zero variance in both conditions is rejected."""
        with pytest.raises(DataQualityError, match="zero variance"):
            standardized_mean_difference(mean1=10, sd1=0, n1=20, mean2=12, sd2=0, n2=20, study="Flat 2020")

    def test_negative_sd_raises(self) -> None:
        """Test that a negative SD is rejected."""
        with pytest.raises(DataQualityError, match="negative"):
            standardized_mean_difference(mean1=10, sd1=-1, n1=20, mean2=12, sd2=2, n2=20)

    def test_tiny_sample_raises(self) -> None:
        """Test that a single-participant condition 2 is rejected."""
        with pytest.raises(DataQualityError, match="too small"):
            standardized_mean_difference(mean1=10, sd1=1, n1=20, mean2=12, sd2=2, n2=1)

    def test_missing_value_raises(self) -> None:
        """Test that NaN summary statistics are rejected."""
        with pytest.raises(DataQualityError, match="non-finite"):
            standardized_mean_difference(mean1=float("nan"), sd1=1, n1=20, mean2=12, sd2=2, n2=20)


class TestComputeEffectSizes:
    """Tests for row-wise effect size computation."""

    def test_one_effect_per_row(self, study_frame: pd.DataFrame) -> None:
        """Test row order and count are preserved."""
        effects = compute_effect_sizes(study_frame)
        assert len(effects) == len(study_frame)
        assert [e.study for e in effects] == list(study_frame["study"])

    def test_repeated_study_labels_include_measure(self, study_frame: pd.DataFrame) -> None:
        """Test that studies with several rows get distinct display names."""
        effects = compute_effect_sizes(study_frame)
        baker = [e.label for e in effects if e.study == "Baker 2012"]
        assert baker == ["Baker 2012 (verbal memory)", "Baker 2012 (episodic memory)"]
        adams = next(e for e in effects if e.study == "Adams 2010")
        assert adams.label == "Adams 2010"
        assert adams.measure == "working memory"

    def test_degenerate_row_raises(self, study_frame: pd.DataFrame) -> None:
        """Test that a degenerate row fails the whole subset."""
        frame = study_frame.copy()
        frame.loc[0, ["SD.1", "SD.2"]] = 0
        with pytest.raises(DataQualityError):
            compute_effect_sizes(frame)
