"""Rendering of per-domain meta-analysis results."""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from cogmeta.analysis.statistics import ModelKind, ModelResult
from cogmeta.output.forest_plot import ForestPlot
from cogmeta.output.funnel_plot import FunnelPlot
from cogmeta.pipeline import DomainReport

logger = logging.getLogger(__name__)

COLUMNS = ["Term", "Estimate", "SE", "z", "p", "CI lower", "CI upper"]

SECTION_TITLES = {
    ModelKind.MAIN: "Main effect (random-effects model)",
    ModelKind.MODERATOR: "Moderators (mixed-effects meta-regression)",
    ModelKind.TRIM_FILL: "Trim-and-fill adjusted estimate",
}


def format_p(p: float) -> str:
    """Format a p-value to 3 decimals, collapsing tiny values."""
    return "<.001" if p < 0.001 else f"{p:.3f}"


def format_coefficients(result: ModelResult) -> list[list[str]]:
    """Coefficient table rows rounded to 3 decimals."""
    return [
        [
            row.term,
            f"{row.estimate:.3f}",
            f"{row.se:.3f}",
            f"{row.z:.3f}",
            format_p(row.p_value),
            f"{row.ci_lower:.3f}",
            f"{row.ci_upper:.3f}",
        ]
        for row in result.coefficients
    ]


def summary_line(result: ModelResult) -> str:
    """One-line model summary (k, heterogeneity, moderator test, imputations)."""
    parts = [f"k = {result.n_studies}", f"method = {result.method.value}"]
    if result.n_clusters is not None:
        parts.append(f"studies = {result.n_clusters}")
    if result.tau_squared is not None:
        symbol = "σ²" if result.kind == ModelKind.MODERATOR else "τ²"
        parts.append(f"{symbol} = {result.tau_squared:.3f}")
    if result.q_statistic is not None:
        parts.append(f"Q({result.df}) = {result.q_statistic:.3f}")
        if result.df:
            parts.append(f"p(Q) = {format_p(result.q_p_value)}")  # type: ignore[arg-type]
    if result.i_squared is not None:
        parts.append(f"I² = {result.i_squared:.1f}%")
    if result.qm_statistic is not None:
        qm_p = format_p(result.qm_p_value)  # type: ignore[arg-type]
        parts.append(f"QM({result.qm_df}) = {result.qm_statistic:.3f}, p = {qm_p}")
    if result.k0 is not None:
        parts.append(f"imputed = {result.k0} ({result.side or 'n/a'} side)")
    return ", ".join(parts)


def _markdown_table(rows: list[list[str]]) -> list[str]:
    lines = ["| " + " | ".join(COLUMNS) + " |", "|" + "|".join(["---"] + ["---:"] * (len(COLUMNS) - 1)) + "|"]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return lines


class ReportRenderer:
    """Writes the Markdown report, figures and console tables."""

    def __init__(
        self,
        figure_dir: Path | None = None,
        dpi: int = 300,
        contour_levels: list[float] | None = None,
        console: Console | None = None,
    ) -> None:
        """
        Initialize the renderer.

        Args:
            figure_dir: Where funnel and forest plots are written (no plots when None)
            dpi: Resolution for raster figures
            contour_levels: Pseudo-CI levels drawn on funnel plots
            console: Rich console for terminal output
        """
        self.figure_dir = figure_dir
        self.dpi = dpi
        self.funnel = FunnelPlot(contour_levels=contour_levels)
        self.forest = ForestPlot()
        self.console = console or Console()

    def render_figures(self, report: DomainReport) -> dict[str, Path]:
        """
        Draw the funnel and forest plots for a domain's main-effect model.

        Returns:
            Mapping of figure kind ("funnel", "forest") to the written path
        """
        if self.figure_dir is None or report.main is None:
            return {}

        name = report.domain.name
        filled = list(report.trim_fill.effects) if report.trim_fill is not None else None
        paths = {
            "funnel": self.figure_dir / f"{name}_funnel.png",
            "forest": self.figure_dir / f"{name}_forest.png",
        }
        self.funnel.create_and_save(
            report.main, paths["funnel"], filled=filled, title=f"Funnel Plot - {report.domain.title}", dpi=self.dpi
        )
        self.forest.create_and_save(
            report.main, paths["forest"], title=f"Forest Plot - {report.domain.title}", dpi=self.dpi
        )
        return paths

    def _section(self, report: DomainReport, kind: ModelKind, result: ModelResult | None) -> list[str]:
        lines = [f"### {SECTION_TITLES[kind]}", ""]
        for notice in report.notices_for(kind):
            lines.extend([f"> **Notice:** {notice.message}", ""])
        if result is None:
            if not report.notices_for(kind):
                lines.extend(["> **Notice:** model not available.", ""])
            return lines

        lines.extend(_markdown_table(format_coefficients(result)))
        lines.extend(["", f"_{summary_line(result)}_", ""])
        for note in result.notes:
            lines.append(f"- {note}")
        if result.notes:
            lines.append("")
        return lines

    def domain_markdown(self, report: DomainReport, report_dir: Path | None = None) -> list[str]:
        """Markdown lines for one domain section."""
        lines = [f"## {report.domain.title}", ""]

        if report.insufficient:
            lines.extend([f"> **Notice:** {notice.message}" for notice in report.notices_for(None)])
            lines.append("")
            return lines

        lines.extend([f"Rows: {report.n_rows}; studies: {report.n_studies}", ""])
        domain_notices = report.notices_for(None)
        for notice in domain_notices:
            lines.extend([f"> **Notice:** {notice.message}", ""])
        if domain_notices and not report.effects:
            return lines

        lines.extend(self._section(report, ModelKind.MAIN, report.main))

        for kind, path in self.render_figures(report).items():
            target = path.relative_to(report_dir) if report_dir and path.is_relative_to(report_dir) else path
            lines.extend([f"![{kind.capitalize()} plot - {report.domain.title}]({target.as_posix()})", ""])

        lines.extend(self._section(report, ModelKind.MODERATOR, report.moderator))
        lines.extend(self._section(report, ModelKind.TRIM_FILL, report.trim_fill))
        return lines

    def render_markdown(self, reports: list[DomainReport], path: Path, title: str = "Cognitive meta-analysis") -> Path:
        """
        Write the full Markdown report.

        Args:
            reports: Domain reports in display order
            path: Output Markdown file
            title: Document heading

        Returns:
            The written path
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            f"# {title}",
            "",
            f"Generated {datetime.now():%Y-%m-%d %H:%M}. Effect sizes are standardized mean differences "
            "(condition 2 minus condition 1); positive values favour condition 2.",
            "",
        ]
        for report in reports:
            lines.extend(self.domain_markdown(report, report_dir=path.parent))

        path.write_text("\n".join(lines).rstrip() + "\n", encoding="utf-8")
        logger.info("Wrote report to %s", path)
        return path

    def print_console(self, reports: list[DomainReport]) -> None:
        """Print rich tables for every domain."""
        for report in reports:
            self.console.print(f"\n[bold]{report.domain.title}[/bold]")
            for notice in report.notices_for(None):
                self.console.print(f"[yellow]{notice.message}[/yellow]")
            if report.insufficient:
                continue

            for kind, result in (
                (ModelKind.MAIN, report.main),
                (ModelKind.MODERATOR, report.moderator),
                (ModelKind.TRIM_FILL, report.trim_fill),
            ):
                for notice in report.notices_for(kind):
                    self.console.print(f"[yellow]{SECTION_TITLES[kind]}: {notice.message}[/yellow]")
                if result is None:
                    continue

                table = Table(title=SECTION_TITLES[kind], caption=summary_line(result))
                for column in COLUMNS:
                    table.add_column(column, justify="left" if column == "Term" else "right")
                for row in format_coefficients(result):
                    table.add_row(*row)
                self.console.print(table)


def _model_dict(result: ModelResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return {
        "kind": result.kind.value,
        "method": result.method.value,
        "n_studies": result.n_studies,
        "n_clusters": result.n_clusters,
        "tau_squared": result.tau_squared,
        "q_statistic": result.q_statistic,
        "df": result.df,
        "q_p_value": result.q_p_value,
        "i_squared": result.i_squared,
        "qm_statistic": result.qm_statistic,
        "qm_df": result.qm_df,
        "qm_p_value": result.qm_p_value,
        "k0": result.k0,
        "side": result.side,
        "notes": list(result.notes),
        "coefficients": [asdict(row) for row in result.coefficients],
    }


def export_json(reports: list[DomainReport], path: Path) -> None:
    """
    Write a JSON summary of every domain's models.

    Args:
        reports: Domain reports
        path: Output JSON file
    """
    data = [
        {
            "domain": report.domain.name,
            "title": report.domain.title,
            "n_rows": report.n_rows,
            "n_studies": report.n_studies,
            "notices": [{"stage": n.stage.value if n.stage else None, "message": n.message} for n in report.notices],
            "studies": [
                {
                    "study": e.study,
                    "label": e.label,
                    "measure": e.measure,
                    "effect": e.effect,
                    "variance": e.variance,
                    "se": e.se,
                    "ci_lower": e.ci_lower,
                    "ci_upper": e.ci_upper,
                }
                for e in report.effects
            ],
            "main": _model_dict(report.main),
            "moderator": _model_dict(report.moderator),
            "trim_fill": _model_dict(report.trim_fill),
        }
        for report in reports
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info("Exported JSON summary to %s", path)
