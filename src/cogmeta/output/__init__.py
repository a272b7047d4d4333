"""Report rendering: coefficient tables, funnel and forest plots."""

from cogmeta.output.forest_plot import ForestPlot
from cogmeta.output.funnel_plot import FunnelPlot
from cogmeta.output.report import ReportRenderer, export_json, format_coefficients

__all__ = [
    "ForestPlot",
    "FunnelPlot",
    "ReportRenderer",
    "export_json",
    "format_coefficients",
]
