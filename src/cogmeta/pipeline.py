"""Per-domain meta-analysis pipeline.

Each domain runs independently on the same cleaned study table:
subset -> effect sizes -> main-effect model -> moderator model -> trim-and-fill.
Problems confined to one domain become notices on that domain's report; only
load-time failures abort the run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from cogmeta.analysis.effect_sizes import DataQualityError, EffectSize, compute_effect_sizes
from cogmeta.analysis.moderators import MissingCovariateError, ModelRankDeficiency, meta_regression
from cogmeta.analysis.statistics import ModelKind, ModelNonConvergence, ModelResult, random_effects
from cogmeta.analysis.trimfill import trim_and_fill
from cogmeta.data.domains import DomainSpec, select_domain
from cogmeta.data.loader import StudyTable, clean_studies, load_studies
from cogmeta.models import AnalysisPlan

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "Insufficient data: no studies matched this domain's measures."


@dataclass(frozen=True)
class Notice:
    """A report-section message shown in place of a model that could not be produced."""

    message: str
    stage: ModelKind | None = None  # None when the whole domain is affected


@dataclass
class DomainReport:
    """Everything reported for one cognitive domain."""

    domain: DomainSpec
    n_rows: int = 0
    n_studies: int = 0
    effects: list[EffectSize] = field(default_factory=list)
    main: ModelResult | None = None
    moderator: ModelResult | None = None
    trim_fill: ModelResult | None = None
    notices: list[Notice] = field(default_factory=list)

    @property
    def insufficient(self) -> bool:
        return self.n_rows == 0

    def notices_for(self, stage: ModelKind | None) -> list[Notice]:
        """Notices attached to one model (or to the whole domain when stage is None)."""
        return [n for n in self.notices if n.stage == stage]


def run_domain(table: StudyTable, domain: DomainSpec, level: float = 0.95, estimator: str = "L0") -> DomainReport:
    """
    Run the three models for one domain.

    Args:
        table: Cleaned study data
        domain: Domain allow-list and moderators
        level: Confidence level for intervals
        estimator: Trim-and-fill k0 estimator

    Returns:
        DomainReport with whichever models could be fitted and notices for the rest
    """
    subset = select_domain(table, domain)
    report = DomainReport(domain=domain, n_rows=len(subset))

    if subset.empty:
        report.notices.append(Notice(INSUFFICIENT_DATA))
        return report

    report.n_studies = int(subset["study"].nunique())

    try:
        effects = compute_effect_sizes(subset)
    except DataQualityError as e:
        logger.warning("Domain '%s': %s", domain.name, e)
        report.notices.append(Notice(f"Data quality problem, models not fitted: {e}"))
        return report
    report.effects = effects

    try:
        report.main = random_effects(effects, level=level)
    except ModelNonConvergence as e:
        logger.warning("Domain '%s' main-effect model: %s", domain.name, e)
        report.notices.append(Notice(f"Model did not converge: {e}", ModelKind.MAIN))

    try:
        report.moderator = meta_regression(subset, effects, domain.covariates, level=level)
    except MissingCovariateError as e:
        logger.warning("Domain '%s' moderator model: %s", domain.name, e)
        report.notices.append(Notice(f"Moderator model not fitted: {e}", ModelKind.MODERATOR))
    except ModelRankDeficiency as e:
        logger.warning("Domain '%s' moderator model: %s", domain.name, e)
        report.notices.append(Notice(f"Rank deficiency: {e}", ModelKind.MODERATOR))
    except ModelNonConvergence as e:
        logger.warning("Domain '%s' moderator model: %s", domain.name, e)
        report.notices.append(Notice(f"Model did not converge: {e}", ModelKind.MODERATOR))

    try:
        report.trim_fill = trim_and_fill(effects, level=level, estimator=estimator)
    except ModelNonConvergence as e:
        logger.warning("Domain '%s' trim-and-fill: %s", domain.name, e)
        report.notices.append(Notice(f"Trim-and-fill did not converge: {e}", ModelKind.TRIM_FILL))

    return report


def run_report(data_path: Path, plan: AnalysisPlan | None = None) -> list[DomainReport]:
    """
    Load the data once and run every domain in the plan.

    Args:
        data_path: Tabular study data
        plan: Exclusions and domains (defaults to the built-in plan)

    Returns:
        One DomainReport per domain, in plan order

    Raises:
        LoadError: If the data cannot be loaded (aborts before any domain runs)
        SchemaError: If required columns are missing or malformed
        ValueError: If a duration is negative
    """
    plan = plan or AnalysisPlan.default()
    table = clean_studies(load_studies(data_path), plan.excluded_studies)

    reports = []
    for domain in plan.domains:
        logger.info("Running domain '%s'", domain.name)
        reports.append(run_domain(table, domain, level=plan.confidence_level, estimator=plan.trim_fill_estimator))
    return reports
