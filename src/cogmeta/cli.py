"""CLI interface for the cognitive meta-analysis report."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from cogmeta.analysis.effect_sizes import DataQualityError, compute_effect_sizes
from cogmeta.config import Config, get_config, set_config
from cogmeta.data.domains import select_domain
from cogmeta.data.loader import LoadError, clean_studies, load_studies
from cogmeta.models import AnalysisPlan
from cogmeta.output.report import ReportRenderer, export_json
from cogmeta.pipeline import run_report

app = typer.Typer(
    name="cogmeta",
    help="Per-domain random-effects meta-analysis of cognitive outcomes",
    no_args_is_help=True,
)
console = Console()

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def load_plan(plan_path: Path | None) -> AnalysisPlan:
    """Load a YAML plan, or the built-in plan when no path is given."""
    if plan_path is None:
        return AnalysisPlan.default()
    if not plan_path.exists():
        console.print(f"[red]Error:[/red] Plan file not found: {plan_path}")
        raise typer.Exit(1)
    try:
        return AnalysisPlan.from_yaml(plan_path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid plan {plan_path}: {e}")
        raise typer.Exit(1) from None


def resolve_data_path(data: Path | None) -> Path:
    """Use the argument, falling back to the configured (COGMETA_DATA) location."""
    path = data or get_config().data_path
    if path is None:
        console.print("[red]Error:[/red] No data file given. Pass a path or set COGMETA_DATA.")
        raise typer.Exit(1)
    return path


@app.command()
def report(
    data: Annotated[Path | None, typer.Argument(help="Study data (CSV, TSV or XLSX)")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output directory")] = None,
    plan: Annotated[Path | None, typer.Option("--plan", "-p", help="Path to analysis plan YAML file")] = None,
    exclude_study: Annotated[
        list[str] | None, typer.Option("--exclude-study", "-x", help="Study label to exclude (repeatable)")
    ] = None,
    json_summary: Annotated[bool, typer.Option("--json", help="Also write a JSON summary")] = False,
    dpi: Annotated[int, typer.Option("--dpi", help="Figure resolution")] = 300,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Run every domain and write the Markdown report with figures."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = Config(data_path=data, output_dir=output, plan_path=plan, json_summary=json_summary, plot_dpi=dpi)
    set_config(config)

    data_path = resolve_data_path(config.data_path)
    analysis_plan = load_plan(config.plan_path)
    if exclude_study:
        analysis_plan.excluded_studies.extend(s for s in exclude_study if s not in analysis_plan.excluded_studies)

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(f"Fitting {len(analysis_plan.domains)} domains...", total=None)
        try:
            reports = run_report(data_path, analysis_plan)
        except (LoadError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from None

    config.ensure_output_dir()
    renderer = ReportRenderer(
        figure_dir=config.figure_dir,
        dpi=config.plot_dpi,
        contour_levels=config.funnel_contours,
        console=console,
    )
    renderer.print_console(reports)
    report_path = renderer.render_markdown(reports, config.report_path, title=analysis_plan.name)
    console.print(f"\n[green]Report saved:[/green] {report_path}")

    if config.json_summary:
        json_path = config.report_path.with_suffix(".json")
        export_json(reports, json_path)
        console.print(f"[green]Results saved:[/green] {json_path}")

    skipped = [r.domain.title for r in reports if r.insufficient]
    if skipped:
        console.print(f"[yellow]Insufficient data for:[/yellow] {', '.join(skipped)}")


@app.command("domains")
def list_domains(
    plan: Annotated[Path | None, typer.Option("--plan", "-p", help="Path to analysis plan YAML file")] = None,
) -> None:
    """List the cognitive domains, their measures and moderators."""
    analysis_plan = load_plan(plan)

    table = Table(title=f"Domains ({analysis_plan.name})")
    table.add_column("Name", style="cyan")
    table.add_column("Title")
    table.add_column("Measures")
    table.add_column("Moderators")

    for domain in analysis_plan.domains:
        table.add_row(domain.name, domain.title, ", ".join(domain.measures), ", ".join(domain.covariates))

    console.print(table)
    if analysis_plan.excluded_studies:
        console.print(f"Excluded studies: {', '.join(analysis_plan.excluded_studies)}")


@app.command()
def effects(
    data: Annotated[Path | None, typer.Argument(help="Study data (CSV, TSV or XLSX)")] = None,
    domain: Annotated[str, typer.Option("--domain", "-d", help="Domain name")] = "overall",
    plan: Annotated[Path | None, typer.Option("--plan", "-p", help="Path to analysis plan YAML file")] = None,
) -> None:
    """Show per-study effect sizes for one domain."""
    analysis_plan = load_plan(plan)

    try:
        spec = analysis_plan.get_domain(domain)
    except KeyError:
        names = ", ".join(d.name for d in analysis_plan.domains)
        console.print(f"[red]Error:[/red] Unknown domain '{domain}'. Choose from: {names}")
        raise typer.Exit(1) from None

    try:
        table = clean_studies(load_studies(resolve_data_path(data)), analysis_plan.excluded_studies)
    except (LoadError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    subset = select_domain(table, spec)
    if subset.empty:
        console.print(f"[yellow]No studies matched the measures for {spec.title}.[/yellow]")
        raise typer.Exit(0)

    try:
        rows = compute_effect_sizes(subset)
    except DataQualityError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    output = Table(title=f"{spec.title}: {len(rows)} effect sizes")
    output.add_column("Study", style="cyan")
    output.add_column("Measure")
    for column in ("SMD", "Variance", "CI lower", "CI upper"):
        output.add_column(column, justify="right")

    for e in rows:
        output.add_row(
            e.label,
            e.measure or "",
            f"{e.effect:.3f}",
            f"{e.variance:.3f}",
            f"{e.ci_lower:.3f}",
            f"{e.ci_upper:.3f}",
        )
    console.print(output)


@app.command("init-plan")
def init_plan(
    path: Annotated[Path, typer.Argument(help="Where to write the plan YAML")] = Path("analysis_plan.yaml"),
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing file")] = False,
) -> None:
    """Write the built-in analysis plan to YAML for editing."""
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    AnalysisPlan.default().to_yaml(path)
    console.print(f"[blue]Created analysis plan:[/blue] {path}")
    console.print("[yellow]Edit exclusions and domain measures, then run:[/yellow]")
    console.print(f"  cogmeta report <data> --plan {path}")


if __name__ == "__main__":
    app()
