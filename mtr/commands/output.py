"""Rich rendering of validation reports and platform listings"""

from typing import List

from rich.console import Console
from rich.table import Table

from mtr.models.glue import Severity
from mtr.models.report import PlatformSummary, ValidationReport

SEVERITY_STYLE = {Severity.ERROR: "bold red", Severity.WARNING: "yellow"}


def print_report(console: Console, report: ValidationReport, output_format: str = "text"):
    """Print a report as rich tables or as deterministic YAML"""
    if output_format == "yaml":
        console.print(report.to_yaml(), markup=False, highlight=False, soft_wrap=True, end="")
        return

    if report.entries:
        table = Table(title="Diagnostics")
        table.add_column("Severity")
        table.add_column("Platform", style="cyan")
        table.add_column("Message")
        for entry in report.entries:
            severity = entry.diagnostic.severity
            table.add_row(
                f"[{SEVERITY_STYLE[severity]}]{severity.value}[/{SEVERITY_STYLE[severity]}]",
                entry.platform or "workspace",
                entry.diagnostic.message,
            )
        console.print(table)

    if report.platforms:
        table = Table(title="Platforms")
        table.add_column("Platform", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Target", style="yellow")
        table.add_column("Native-mockable", style="magenta")
        for platform in report.platforms:
            table.add_row(
                platform.name,
                platform.status.value,
                platform.target_identifier or "-",
                ", ".join(platform.mockable_interfaces) or "none",
            )
        console.print(table)

    delta = report.delta
    if delta.units_to_create:
        console.print(f"Units to create: {', '.join(unit.name for unit in delta.units_to_create)}")
    if delta.orphan_units:
        console.print(f"[dim]Orphan units (remove manually): {', '.join(delta.orphan_units)}[/dim]")

    summary = f"{report.error_count} error(s), {report.warning_count} warning(s)"
    if report.has_errors:
        console.print(f"[red]✗[/red] {summary}")
    else:
        console.print(f"[green]✓[/green] {summary}")


def print_platforms(console: Console, summaries: List[PlatformSummary]):
    if not summaries:
        console.print("No platforms configured. Use 'mtr glue init' or 'mtr add-platform' to add one.")
        return

    table = Table(title="Configured Platforms")
    table.add_column("Platform", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Target", style="yellow")
    table.add_column("Native-mockable", style="magenta")
    table.add_column("Warnings", justify="right")
    for summary in summaries:
        table.add_row(
            summary.name,
            summary.status.value,
            summary.target_identifier or "-",
            ", ".join(summary.mockable_interfaces) or "none",
            str(summary.warning_count),
        )
    console.print(table)
