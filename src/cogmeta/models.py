"""Analysis plan model for the cognitive meta-analysis report."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from cogmeta.analysis.trimfill import ESTIMATORS
from cogmeta.data.domains import DEFAULT_DOMAINS, DomainSpec, get_domain


class AnalysisPlan(BaseModel):
    """Editorial decisions for a report run: exclusions and domain taxonomy."""

    name: str = "cognitive-meta-analysis"
    excluded_studies: list[str] = Field(default_factory=list)
    domains: list[DomainSpec] = Field(default_factory=lambda: [d.model_copy(deep=True) for d in DEFAULT_DOMAINS])
    confidence_level: float = 0.95
    trim_fill_estimator: str = "L0"

    @field_validator("confidence_level")
    @classmethod
    def _check_level(cls, value: float) -> float:
        if not 0 < value < 1:
            raise ValueError(f"confidence_level must be between 0 and 1, got {value}")
        return value

    @field_validator("trim_fill_estimator")
    @classmethod
    def _check_estimator(cls, value: str) -> str:
        if value.upper() not in ESTIMATORS:
            raise ValueError(f"Unsupported trim-and-fill estimator: {value} (available: {', '.join(ESTIMATORS)})")
        return value.upper()

    @classmethod
    def default(cls) -> "AnalysisPlan":
        """The built-in plan: six domains, no exclusions."""
        return cls()

    @classmethod
    def from_yaml(cls, path: Path) -> "AnalysisPlan":
        """Load a plan from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Convert domain dicts to DomainSpec objects
        if "domains" in data:
            data["domains"] = [DomainSpec(**d) if isinstance(d, dict) else d for d in data["domains"]]

        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save the plan to a YAML file."""
        import yaml

        data = {
            "name": self.name,
            "excluded_studies": self.excluded_studies,
            "confidence_level": self.confidence_level,
            "trim_fill_estimator": self.trim_fill_estimator,
            "domains": [domain.model_dump() for domain in self.domains],
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get_domain(self, name: str) -> DomainSpec:
        """Get a domain from this plan by name."""
        return get_domain(name, self.domains)
