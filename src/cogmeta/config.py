"""Configuration management for the meta-analysis report."""

import os
from pathlib import Path

from pydantic import BaseModel, Field


class Config(BaseModel):
    """Global configuration for a report run."""

    # Input data (falls back to COGMETA_DATA)
    data_path: Path | None = None

    # Optional YAML analysis plan
    plan_path: Path | None = None

    # Outputs (falls back to COGMETA_OUTPUT)
    output_dir: Path | None = None
    report_name: str = "report.md"
    json_summary: bool = False

    # Figures
    plot_dpi: int = 300
    funnel_contours: list[float] = Field(default_factory=lambda: [0.90, 0.95, 0.99])

    def __init__(self, **data: object) -> None:
        super().__init__(**data)

        # Load paths from environment if not provided
        if self.data_path is None and os.environ.get("COGMETA_DATA"):
            self.data_path = Path(os.environ["COGMETA_DATA"])
        if self.output_dir is None:
            self.output_dir = Path(os.environ.get("COGMETA_OUTPUT", Path.cwd() / "meta_report"))

    @property
    def report_path(self) -> Path:
        return self.output_dir / self.report_name  # type: ignore[operator]

    @property
    def figure_dir(self) -> Path:
        return self.output_dir / "figures"  # type: ignore[operator]

    def ensure_output_dir(self) -> None:
        """Create the output and figure directories if they don't exist."""
        self.figure_dir.mkdir(parents=True, exist_ok=True)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
