"""CLI for the Business Audit Scoring Engine.

Provides command-line interface for scoring an audit, running what-if
simulations and importing client data.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .app_logging import setup_logging
from .benchmarks import get_default_variant, get_sector_variants
from .coherence import has_critical
from .config import find_config_file, get_config, load_config
from .engine import AuditEngine, validate_audit_file
from .exceptions import AuditScorerError
from .importer import validate_field_value_import, validate_json_import
from .schema import AuditReport, SimulationResult, SimulationType
from .sectors import list_sectors, normalize_sector
from .simulation import SIMULATION_SCENARIOS, format_currency

console = Console()

LEVEL_COLORS = {
    "excellent": "green",
    "bon": "cyan",
    "critique": "yellow",
    "danger": "red",
}

PRIORITY_COLORS = {
    "CRITIQUE": "bold red",
    "ÉLEVÉ": "red",
    "MODÉRÉ": "yellow",
    "FAIBLE": "green",
}


@click.group()
@click.version_option(version="2.0.0", prog_name="audit-scorer")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Logging level (default: from config, WARNING)"
)
def main(log_level: Optional[str]):
    """Business Audit Scoring and Decision Engine.

    Scores a small business self-assessment against its sector benchmarks
    and returns warnings, a prioritized decision summary and what-if
    simulations.
    """
    config_path = find_config_file()
    if config_path:
        load_config(config_path)

    logging_config = get_config().logging
    setup_logging(level=log_level or logging_config.level, dev_mode=logging_config.rich)


@main.command("score")
@click.option(
    "--input", "-i",
    "input_file",
    required=True,
    type=click.Path(exists=True),
    help="Path to audit JSON file"
)
@click.option(
    "--out", "-o",
    type=click.Path(),
    help="Output file for JSON results (default: stdout)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show score breakdown and quantified recommendations"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def score_cmd(input_file: str, out: Optional[str], verbose: bool, json_output: bool):
    """Score an audit and derive the decision summary.

    Examples:
        audit-scorer score -i audit.json
        audit-scorer score -i audit.json -v
        audit-scorer score -i audit.json -j -o report.json
    """
    try:
        engine = AuditEngine()
        report = engine.evaluate(input_file)

        if json_output:
            output_json(report, out)
        else:
            display_report(report, verbose)
            if out:
                output_json(report, out)
                console.print(f"\n[green]Report saved to {out}[/green]")

    except (AuditScorerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("simulate")
@click.option(
    "--input", "-i",
    "input_file",
    required=True,
    type=click.Path(exists=True),
    help="Path to audit JSON file"
)
@click.option(
    "--type", "-t",
    "simulation_type",
    required=True,
    help="Scenario type (TRESORERIE, RENTABILITE, ACTIVITE, COMMERCIAL, RH)"
)
@click.option(
    "--delta", "-d",
    multiple=True,
    help="Scenario input (format: input_id=value)"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def simulate_cmd(input_file: str, simulation_type: str, delta: tuple, json_output: bool):
    """Run a what-if simulation on an audit.

    Examples:
        audit-scorer simulate -i audit.json -t TRESORERIE -d delai_client=-15
        audit-scorer simulate -i audit.json -t RH -d turnover=-5 -d absenteisme=-2
    """
    try:
        deltas = parse_deltas(delta)
        engine = AuditEngine()
        result = engine.simulate(simulation_type, input_file, deltas)

        if result is None:
            console.print("[yellow]No impact: revenue is zero or every input is zero.[/yellow]")
            return

        if json_output:
            output_json(result, None)
        else:
            display_simulation(result)

    except (AuditScorerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("scenarios")
@click.option(
    "--input", "-i",
    "input_file",
    type=click.Path(exists=True),
    help="Rank the scenarios for this audit"
)
def scenarios_cmd(input_file: Optional[str]):
    """List the simulation scenarios and their inputs.

    With --input, scenarios are listed in order of relevance for the audit.
    """
    try:
        order = list(SimulationType)
        if input_file:
            order = AuditEngine().scenarios(input_file)
            console.print(f"\n[bold blue]Scenarios ranked for {input_file}[/bold blue]\n")

        by_type = {scenario.type: scenario for scenario in SIMULATION_SCENARIOS}
        tree = Tree("[bold]Simulation scenarios[/bold]")
        for rank, simulation_type in enumerate(order, 1):
            scenario = by_type[simulation_type]
            branch = tree.add(f"[bold cyan]{rank}. {scenario.type.value}[/bold cyan] {scenario.label}")
            for definition in scenario.inputs:
                options = ", ".join(opt.label for opt in definition.options)
                branch.add(f"{definition.id} ({definition.unit}): {options}")
        console.print(tree)

    except (AuditScorerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("sectors")
@click.option(
    "--resolve", "-r",
    "raw_sector",
    help="Show how a free-text sector is resolved"
)
def sectors_cmd(raw_sector: Optional[str]):
    """List canonical sectors, or resolve a declared sector."""
    if raw_sector is not None:
        resolution = normalize_sector(raw_sector)
        color = "yellow" if resolution.is_fallback else "green"
        console.print(
            f"[{color}]{raw_sector!r} → {resolution.canonical_sector} "
            f"({resolution.label})[/{color}]"
        )
        if resolution.warning:
            console.print(f"  [dim]• {resolution.warning}[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Label")
    table.add_column("Variants")

    for sector_id, label in list_sectors():
        default = get_default_variant(sector_id)
        variants = ", ".join(
            f"{v.id}*" if v.id == default else v.id for v in get_sector_variants(sector_id)
        )
        table.add_row(sector_id, label, variants)

    console.print(table)
    console.print("[dim]* default variant[/dim]")


@main.command("import")
@click.argument("file", type=click.Path(exists=True))
@click.option(
    "--format", "-f",
    "fmt",
    type=click.Choice(["json", "table"]),
    default="json",
    help="Input format: JSON document or field/value table"
)
@click.option(
    "--out", "-o",
    type=click.Path(),
    help="Write the converted audit JSON to this file"
)
def import_cmd(file: str, fmt: str, out: Optional[str]):
    """Validate and convert client data into an audit file.

    Examples:
        audit-scorer import client.json
        audit-scorer import export.txt --format table -o audit.json
    """
    text = Path(file).read_text(encoding="utf-8")
    if fmt == "json":
        result = validate_json_import(text)
    else:
        result = validate_field_value_import(text)

    for warning in result.warnings:
        console.print(f"  [yellow]•[/yellow] {warning.field}: {warning.message}")

    if not result.is_valid:
        console.print(f"[red]✗ Import invalid: {file}[/red]")
        for error in result.errors:
            console.print(f"  - {error.field}: {error.message}")
        sys.exit(1)

    console.print(f"[green]✓ Import valid: {file}[/green]")
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(result.record.model_dump_json(indent=2, by_alias=True))
        console.print(f"[green]Audit saved to {out}[/green]")
    else:
        print(result.record.model_dump_json(indent=2, by_alias=True))


@main.command("validate")
@click.option(
    "--input", "-i",
    "input_file",
    required=True,
    type=click.Path(),
    help="Path to audit JSON file"
)
def validate_cmd(input_file: str):
    """Validate an audit file.

    Example:
        audit-scorer validate -i audit.json
    """
    is_valid, issues = validate_audit_file(input_file)
    if is_valid:
        console.print(f"[green]✓ Audit valid: {input_file}[/green]")
    else:
        console.print(f"[red]✗ Audit invalid: {input_file}[/red]")
    for issue in issues:
        console.print(f"  - {issue}")

    sys.exit(0 if is_valid else 1)


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="audit-config.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default configuration file.

    Example:
        audit-scorer init-config --out my-config.yaml
    """
    from .config import save_default_config

    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
        console.print(f"[green]✓[/green] Config file created: {out}")
        console.print("\nThis file configures:")
        console.print("  • dimension_weights - Weight of each dimension in the global score")
        console.print("  • decision - How many risks, levers and recommendations are kept")
        console.print("  • logging - Default log level and handler")
        console.print("\nThe scorer will look for config in this order:")
        console.print("  1. AUDIT_SCORER_CONFIG environment variable")
        console.print("  2. ./audit-config.yaml or ./audit-config.yml (current directory)")
        console.print("  3. ~/.config/audit-scorer/config.yaml")
    except OSError as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)


def parse_deltas(pairs: tuple) -> dict[str, float]:
    """Parse ``input_id=value`` pairs into a delta mapping."""
    deltas = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected input_id=value, got '{pair}'", param_hint="--delta")
        key, value = pair.split("=", 1)
        try:
            deltas[key.strip()] = float(value.strip())
        except ValueError:
            raise click.BadParameter(f"Not a number: '{value}'", param_hint="--delta") from None
    return deltas


def display_report(report: AuditReport, verbose: bool):
    """Display an audit report in formatted text."""
    decision = report.decision
    priority_color = PRIORITY_COLORS.get(decision.priority_level.value, "white")
    global_level = report.score_levels.get("global")

    console.print(Panel(
        f"[bold]{report.business_name or 'Audit'}[/bold] ({report.sector_label})\n\n"
        f"Global score: [bold]{report.scores.global_score:.1f}[/bold]"
        f"{f' - {global_level.label}' if global_level else ''}\n"
        f"Priority: [{priority_color}]{decision.priority_level.value}[/{priority_color}]\n"
        f"Benchmarks: {report.record.variant} v{report.benchmark_version} ({report.currency})\n\n"
        f"{decision.decision_summary}",
        title="Audit Summary",
    ))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Dimension")
    table.add_column("Score", justify="right")
    table.add_column("Level")
    for name, value in report.scores.dimensions().items():
        level = report.score_levels[name]
        color = LEVEL_COLORS.get(level.level.value, "white")
        table.add_row(name, f"{value:.1f}", f"[{color}]{level.label}[/{color}]")
    console.print(table)

    if report.warnings:
        header_color = "red" if has_critical(report.warnings) else "yellow"
        console.print(f"\n[bold {header_color}]Coherence Warnings:[/bold {header_color}]")
        for warning in report.warnings:
            color = "red" if warning.severity.value == "critical" else "yellow"
            console.print(f"  [{color}]•[/{color}] {warning.message}")

    sections = [
        ("Top Risks", decision.top_risks, "red"),
        ("Top Levers", decision.top_levers, "green"),
        ("Quick Wins", decision.quick_wins, "cyan"),
        ("Structural Actions", decision.structural_actions, "blue"),
    ]
    for title, items, color in sections:
        if items:
            console.print(f"\n[bold]{title}:[/bold]")
            for item in items:
                console.print(f"  [{color}]•[/{color}] {item}")

    if verbose:
        if decision.quantified_recommendations:
            console.print("\n[bold]Quantified Recommendations:[/bold]\n")
            for i, rec in enumerate(decision.quantified_recommendations, 1):
                console.print(
                    f"  [bold cyan]{i}. {rec.lever}[/bold cyan] "
                    f"{format_currency(rec.estimated_impact_min)} à "
                    f"{format_currency(rec.estimated_impact_max)} "
                    f"[dim]({rec.impact_type.value}, {rec.confidence_level.value})[/dim]"
                )
                for assumption in rec.assumptions:
                    console.print(f"     [dim]{assumption}[/dim]")

        console.print("\n[bold]Score Breakdown:[/bold]")
        tree = Tree("Dimensions")
        for dimension in report.breakdown:
            branch = tree.add(f"[bold]{dimension.dimension}[/bold] {dimension.score:.1f}")
            for contribution in dimension.contributions:
                branch.add(f"{contribution.name}: {contribution.score:.1f} × {contribution.weight:g}")
        console.print(tree)

        if report.prioritized_scenarios:
            scenarios = ", ".join(s.value for s in report.prioritized_scenarios)
            console.print(f"\n[bold]Suggested simulations:[/bold] {scenarios}")

    if report.processing_warnings:
        console.print("\n[dim]Warnings:[/dim]")
        for warning in report.processing_warnings:
            console.print(f"  [dim]• {warning}[/dim]")

    console.print(f"\n[dim]{report.disclaimer}[/dim]")


def display_simulation(result: SimulationResult):
    """Display a simulation result in formatted text."""
    console.print(Panel(
        f"[bold]{result.description}[/bold]\n\n"
        f"Impact: [bold cyan]{result.impact_label}[/bold cyan]\n"
        f"Confidence: {result.confidence_level.value}",
        title=result.title,
    ))

    for title, items in (("Inputs", [f"{i.label}: {i.description}" for i in result.inputs]),
                         ("Secondary effects", result.secondary_effects),
                         ("Hypotheses", result.hypotheses)):
        if items:
            console.print(f"\n[bold]{title}:[/bold]")
            for item in items:
                console.print(f"  • {item}")


def output_json(result, out_path: Optional[str]):
    """Output a result model as JSON."""
    json_str = result.model_dump_json(indent=2, by_alias=True)

    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)


if __name__ == "__main__":
    main()
