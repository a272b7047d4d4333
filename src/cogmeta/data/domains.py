"""Cognitive domain taxonomy and domain subsetting."""

import logging

import pandas as pd
from pydantic import BaseModel, Field

from cogmeta.data.loader import StudyTable

logger = logging.getLogger(__name__)

BASE_MODERATORS = ["Severity", "log_duration", "T.2", "Age"]


class DomainSpec(BaseModel):
    """A cognitive domain: which measures belong to it and how it is moderated."""

    name: str
    title: str
    measures: list[str]
    moderators: list[str] = Field(default_factory=lambda: list(BASE_MODERATORS))
    label_moderator: str | None = None  # "measure" or "domain" for multi-measure domains

    @property
    def covariates(self) -> list[str]:
        """Moderator columns in model order, including the label moderator."""
        if self.label_moderator:
            return [*self.moderators, self.label_moderator]
        return list(self.moderators)

    def matches(self, measure: str | None) -> bool:
        """Check whether a measure label belongs to this domain."""
        if measure is None:
            return False
        allowed = {m.strip().lower() for m in self.measures}
        return measure.strip().lower() in allowed


MEMORY_MEASURES = [
    "working memory",
    "learning and memory",
    "short-term memory",
    "associative memory",
    "long-term memory",
    "involuntary memory",
    "visual memory",
    "verbal memory",
    "episodic memory",
]

ATTENTION_MEASURES = [
    "attention",
    "sustained attention",
    "selective attention",
    "divided attention",
    "visual attention",
    "auditory attention",
    "vigilance",
    "alertness",
]

EXECUTIVE_MEASURES = [
    "executive function",
    "inhibition",
    "inhibitory control",
    "cognitive flexibility",
    "set shifting",
    "task switching",
    "planning",
    "problem solving",
    "reasoning",
    "decision making",
    "updating",
    "verbal fluency",
]

PROCESSING_SPEED_MEASURES = [
    "processing speed",
    "information processing speed",
    "speed of processing",
    "perceptual speed",
    "reaction time",
]

PSYCHOMOTOR_MEASURES = [
    "psychomotor speed",
    "psychomotor function",
    "motor speed",
    "fine motor speed",
    "visuomotor speed",
    "finger tapping",
]

GENERAL_ABILITY_MEASURES = [
    "overall cognitive ability",
    "general cognitive ability",
    "cognitive ability",
    "global cognition",
    "intelligence",
]

DEFAULT_DOMAINS = [
    DomainSpec(
        name="overall",
        title="Overall cognitive ability",
        measures=[
            *GENERAL_ABILITY_MEASURES,
            *MEMORY_MEASURES,
            *ATTENTION_MEASURES,
            *EXECUTIVE_MEASURES,
            *PROCESSING_SPEED_MEASURES,
            *PSYCHOMOTOR_MEASURES,
        ],
        label_moderator="domain",
    ),
    DomainSpec(name="memory", title="Memory", measures=MEMORY_MEASURES, label_moderator="measure"),
    DomainSpec(name="attention", title="Attention", measures=ATTENTION_MEASURES, label_moderator="measure"),
    DomainSpec(
        name="executive",
        title="Executive function",
        measures=EXECUTIVE_MEASURES,
        label_moderator="measure",
    ),
    DomainSpec(name="processing_speed", title="Processing speed", measures=PROCESSING_SPEED_MEASURES),
    DomainSpec(name="psychomotor_speed", title="Psychomotor speed", measures=PSYCHOMOTOR_MEASURES),
]


def get_domain(name: str, domains: list[DomainSpec] | None = None) -> DomainSpec:
    """Look up a domain by name (case-insensitive)."""
    for domain in domains if domains is not None else DEFAULT_DOMAINS:
        if domain.name.lower() == name.lower():
            return domain
    raise KeyError(f"Unknown domain: {name}")


def select_domain(table: StudyTable, domain: DomainSpec) -> pd.DataFrame:
    """
    Select the rows whose measure label belongs to a domain.

    Args:
        table: Cleaned study data
        domain: Domain whose allow-list is applied

    Returns:
        Copy of the matching rows (possibly empty), re-indexed from zero
    """
    frame = table.frame
    mask = frame["measure"].map(domain.matches).astype(bool)
    subset = frame.loc[mask].reset_index(drop=True)

    if subset.empty:
        logger.warning("Domain '%s': no rows matched its %d measure label(s)", domain.name, len(domain.measures))
    else:
        logger.info(
            "Domain '%s': %d row(s) from %d study/studies", domain.name, len(subset), subset["study"].nunique()
        )
    return subset
