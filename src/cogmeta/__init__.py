"""Per-domain random-effects meta-analysis of cognitive outcomes."""

__version__ = "0.1.0"
