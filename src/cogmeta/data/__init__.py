"""Study data loading and domain subsetting."""

from cogmeta.data.domains import DEFAULT_DOMAINS, DomainSpec, get_domain, select_domain
from cogmeta.data.loader import LoadError, SchemaError, StudyTable, clean_studies, load_studies, log_duration

__all__ = [
    "DEFAULT_DOMAINS",
    "DomainSpec",
    "LoadError",
    "SchemaError",
    "StudyTable",
    "clean_studies",
    "get_domain",
    "load_studies",
    "log_duration",
    "select_domain",
]
