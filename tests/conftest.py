"""Pytest fixtures for cogmeta tests."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from cogmeta.analysis.effect_sizes import EffectSize, standardized_mean_difference  # noqa: E402
from cogmeta.data.loader import StudyTable, clean_studies, load_studies  # noqa: E402

COLUMNS = [
    "study",
    "Mean.1",
    "Mean.2",
    "SD.1",
    "SD.2",
    "N.1",
    "N.2",
    "Severity",
    "Duration",
    "T.2",
    "Age",
    "measure",
    "domain",
]

# Memory: 12 rows from 10 studies; attention: every row shares one exposure type;
# processing speed: 3 rows; psychomotor speed: 1 row; executive function: none.
ROWS = [
    ("Adams 2010", 10, 11.2, 2.0, 2.1, 20, 22, 1, 0, "acute", 24, "working memory", "memory"),
    ("Baker 2012", 8, 9.5, 3.0, 2.8, 15, 15, 2, 3, "chronic", 35, "verbal memory", "memory"),
    ("Baker 2012", 20, 21, 4.0, 4.2, 15, 15, 2, 3, "chronic", 35, "episodic memory", "memory"),
    ("Chen 2014", 15, 15.8, 2.5, 2.4, 30, 28, 3, 12, "chronic", 41, "working memory", "memory"),
    ("Diaz 2015", 12, 14, 3.1, 3.3, 18, 20, 1, 1, "acute", 22, "episodic memory", "memory"),
    ("Evans 2016", 50, 53, 8.0, 8.5, 40, 42, 2, 6, "acute", 29, "verbal memory", "memory"),
    ("Evans 2016", 30, 31.5, 5.0, 5.2, 40, 42, 2, 6, "acute", 29, "working memory", "memory"),
    ("Fox 2017", 7, 7.4, 1.5, 1.6, 25, 25, 3, 24, "chronic", 55, "episodic memory", "memory"),
    ("Garcia 2018", 100, 104, 15, 14, 60, 58, 1, 2, "acute", 31, "working memory", "memory"),
    ("Hill 2019", 22, 23.9, 4.0, 4.1, 12, 14, 3, 18, "chronic", 47, "verbal memory", "memory"),
    ("Ito 2020", 9, 10.1, 2.2, 2.0, 35, 33, 2, 9, "chronic", 38, "episodic memory", "memory"),
    ("Jones 2021", 14, 15.5, 3.0, 3.2, 22, 24, 1, 4, "acute", 27, "working memory", "memory"),
    ("Outlier 2013", 10, 30, 2.0, 2.0, 20, 20, 3, 30, "chronic", 60, "working memory", "memory"),
    ("Kim 2011", 5, 5.6, 1.0, 1.1, 20, 20, 1, 2, "acute", 25, "sustained attention", "attention"),
    ("Lee 2013", 40, 42, 6.0, 6.3, 30, 30, 2, 5, "acute", 33, "selective attention", "attention"),
    ("Moore 2015", 18, 18.9, 3.0, 3.0, 25, 26, 3, 10, "acute", 44, "vigilance", "attention"),
    ("Nash 2017", 11, 12.2, 2.4, 2.5, 16, 18, 2, 7, "acute", 36, "divided attention", "attention"),
    ("Owen 2012", 300, 310, 40, 42, 20, 21, 1, 1, "acute", 26, "processing speed", "processing speed"),
    ("Park 2014", 45, 47, 6.0, 6.5, 28, 30, 2, 8, "chronic", 39, "reaction time", "processing speed"),
    ("Quinn 2019", 60, 61, 9.0, 9.4, 33, 32, 3, 15, "chronic", 50, "perceptual speed", "processing speed"),
    ("Reed 2016", 25, 26.5, 4.0, 4.1, 19, 20, 2, 4, "chronic", 34, "motor speed", "psychomotor speed"),
]

OUTLIER = "Outlier 2013"


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def study_frame() -> pd.DataFrame:
    """Raw study rows covering every built-in domain but executive function."""
    return pd.DataFrame(ROWS, columns=COLUMNS)


@pytest.fixture
def study_csv(study_frame: pd.DataFrame, temp_dir: Path) -> Path:
    """The sample study rows written to CSV."""
    path = temp_dir / "studies.csv"
    study_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def study_table(study_csv: Path) -> StudyTable:
    """Loaded and cleaned sample data with the outlier removed."""
    return clean_studies(load_studies(study_csv), [OUTLIER])


def make_effect(effect: float, variance: float, study: str = "") -> EffectSize:
    """Build an EffectSize from an effect and its variance."""
    se = variance**0.5
    return EffectSize(
        study=study,
        label=study,
        effect=effect,
        variance=variance,
        se=se,
        ci_lower=effect - 1.96 * se,
        ci_upper=effect + 1.96 * se,
    )


@pytest.fixture
def three_studies() -> list[EffectSize]:
    """Three effect sizes computed from positive mean differences."""
    return [
        standardized_mean_difference(10, 2, 20, 12, 2, 20, study="Study A"),
        standardized_mean_difference(8, 3, 15, 11, 3, 15, study="Study B"),
        standardized_mean_difference(9, 2.5, 25, 13, 2.5, 25, study="Study C"),
    ]


@pytest.fixture
def heterogeneous_studies() -> list[EffectSize]:
    """Studies with high heterogeneity."""
    return [
        make_effect(0.2, 0.01, "Study A"),
        make_effect(0.8, 0.01, "Study B"),
        make_effect(0.5, 0.01, "Study C"),
    ]
