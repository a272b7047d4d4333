"""Loading and cleaning of study-level summary data."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = ["Mean.1", "Mean.2", "SD.1", "SD.2", "N.1", "N.2", "Duration", "Age"]
TEXT_COLUMNS = ["study", "T.2", "measure", "domain"]
REQUIRED_COLUMNS = [
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


class LoadError(Exception):
    """The study data could not be read."""


class SchemaError(LoadError):
    """The study data is missing a required column or holds malformed values."""


@dataclass(frozen=True)
class StudyTable:
    """Read-only view of the loaded study data.

    The wrapped frame is never handed out directly; ``frame`` returns a copy.
    """

    _frame: pd.DataFrame
    source: Path | None = None

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def columns(self) -> list[str]:
        return list(self._frame.columns)

    def __len__(self) -> int:
        return len(self._frame)

    def studies(self) -> list[str]:
        """Unique study labels in first-seen order."""
        return list(dict.fromkeys(self._frame["study"]))


def _read_table(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".tsv", ".txt"):
        return pd.read_csv(path, sep="\t")
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(path)
    raise LoadError(f"Unsupported file type '{suffix}': {path}")


def _clean_text(value: object) -> str | None:
    return None if pd.isna(value) else str(value).strip()


def _coerce_numeric(frame: pd.DataFrame, column: str) -> pd.Series:
    """Parse a column as numbers, rejecting values that are present but not numeric."""
    raw = frame[column]
    parsed = pd.to_numeric(raw, errors="coerce")
    bad = parsed.isna() & raw.notna() & (raw.astype(str).str.strip() != "")
    if bad.any():
        first = bad.idxmax()
        raise SchemaError(f"Column '{column}' has a non-numeric value {raw[first]!r} at row {first}")
    return parsed


def load_studies(path: Path | str) -> StudyTable:
    """
    Load study summary data from a CSV, TSV or Excel file.

    Args:
        path: Location of the tabular data

    Returns:
        StudyTable with typed columns

    Raises:
        LoadError: If the file is missing or cannot be read
        SchemaError: If required columns are missing or numeric columns do not parse
    """
    path = Path(path)
    if not path.exists():
        raise LoadError(f"Data file not found: {path}")

    try:
        frame = _read_table(path)
    except LoadError:
        raise
    except Exception as e:
        raise LoadError(f"Failed to read {path}: {e}") from e

    frame.columns = [str(c).strip() for c in frame.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise SchemaError(f"Missing required column(s): {', '.join(missing)}")

    for column in NUMERIC_COLUMNS:
        frame[column] = _coerce_numeric(frame, column)

    for column in TEXT_COLUMNS:
        frame[column] = frame[column].map(_clean_text)

    # Severity may be a numeric grade or a category label
    severity = pd.to_numeric(frame["Severity"], errors="coerce")
    if severity.notna().sum() == frame["Severity"].notna().sum():
        frame["Severity"] = severity
    else:
        frame["Severity"] = frame["Severity"].map(_clean_text)

    if frame["study"].isna().any():
        raise SchemaError(f"Column 'study' is empty at row {frame['study'].isna().idxmax()}")

    logger.info("Loaded %d rows (%d studies) from %s", len(frame), frame["study"].nunique(), path)
    return StudyTable(_frame=frame.reset_index(drop=True), source=path)


def log_duration(duration: float | np.ndarray | pd.Series) -> float | np.ndarray | pd.Series:
    """
    Log-transform exposure duration as ln(duration + 1).

    The offset keeps zero-length exposures defined. Missing values stay missing.

    Raises:
        ValueError: If any duration is negative
    """
    values = np.asarray(duration, dtype=float)
    if np.any(values[~np.isnan(values)] < 0):
        raise ValueError("Duration must be non-negative")

    if isinstance(duration, pd.Series):
        return np.log1p(duration.astype(float))
    result = np.log1p(values)
    return float(result) if result.ndim == 0 else result


def clean_studies(table: StudyTable, excluded_studies: Iterable[str] = ()) -> StudyTable:
    """
    Remove excluded studies and derive the log-duration covariate.

    Args:
        table: Loaded study data
        excluded_studies: Study labels to drop (exact match)

    Returns:
        New StudyTable with a ``log_duration`` column

    Raises:
        ValueError: If any remaining row has a negative duration
    """
    frame = table.frame

    for study in excluded_studies:
        matches = frame["study"] == study
        if matches.any():
            logger.info("Excluding study '%s' (%d row(s))", study, int(matches.sum()))
        else:
            logger.warning("Excluded study '%s' not found in data", study)
        frame = frame.loc[~matches]

    frame = frame.reset_index(drop=True)
    frame["log_duration"] = log_duration(frame["Duration"])

    logger.info("%d rows remain after cleaning", len(frame))
    return StudyTable(_frame=frame, source=table.source)
