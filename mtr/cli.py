"""CLI entry point for MTR"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from mtr.exceptions import MTRError

app = typer.Typer(
    name="mtr",
    help="Multi-target embedded Rust workspaces with HAL compatibility analysis",
    add_completion=False
)
glue_app = typer.Typer(help="Analyze HAL packages and manage platform glue configuration")
app.add_typer(glue_app, name="glue")

console = Console()

# Options set by the app callback, read by every command
state = {"project": Path(".")}


def configure_logging(verbose: bool):
    """Route library logging through rich; DEBUG with --verbose, WARNING otherwise"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def handle_mtr_error(error: MTRError, exit_code: Optional[int] = None):
    """Handle MTR errors with Rich formatting

    Args:
        error: MTR exception to handle
        exit_code: Exit code override (default: the error's own exit code)
    """
    if error.help_text:
        panel_content = f"{error.message}\n\n[bold cyan]Help:[/bold cyan]\n{error.help_text}"
    else:
        panel_content = error.message

    panel = Panel(
        panel_content,
        title="[bold red]Error[/bold red]",
        border_style="red",
        expand=False
    )

    console.print(panel)
    raise typer.Exit(exit_code if exit_code is not None else error.exit_code)


def handle_unexpected_error(error: Exception, exit_code: int = 1):
    """Handle unexpected errors with Rich formatting

    Args:
        error: Exception to handle
        exit_code: Exit code to use
    """
    error_text = Text()
    error_text.append("✗ Unexpected Error: ", style="bold red")
    error_text.append(str(error))

    console.print(error_text)
    console.print("\n[yellow]This is an unexpected error. Please report this issue.[/yellow]")
    console.print(f"[dim]Error type: {type(error).__name__}[/dim]")

    raise typer.Exit(exit_code)


def _finish(exit_code: int):
    if exit_code:
        raise typer.Exit(exit_code)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    project: Path = typer.Option(Path("."), "--project", "-p", help="Workspace root (default: current directory)")
):
    """Multi-target embedded workspace tool"""
    configure_logging(verbose)
    state["project"] = project


@glue_app.command("init")
def glue_init(
    platform: str = typer.Argument(..., help="Platform name (unique, case-sensitive)"),
    repository_url: str = typer.Argument(..., help="HAL package repository URL or local path"),
    ref: str = typer.Option("HEAD", "--ref", help="Branch, tag or commit to analyze"),
    target: Optional[str] = typer.Option(None, "--target", help="Target triple (inferred when omitted)"),
    hal: Optional[str] = typer.Option(None, "--hal", help="HAL crate name (default: package name)"),
    feature: Optional[List[str]] = typer.Option(None, "--feature", help="HAL crate feature (repeatable)")
):
    """Analyze a HAL package and add it as a new platform"""
    from mtr.commands.glue import GlueInitCommand

    try:
        _finish(GlueInitCommand(console, state["project"]).execute(
            platform, repository_url, ref, target, hal, feature or []
        ))
    except MTRError as e:
        handle_mtr_error(e)
    except typer.Exit:
        raise
    except Exception as e:
        handle_unexpected_error(e)


@glue_app.command("list")
def glue_list(
    all_platforms: bool = typer.Option(False, "--all", help="Include removed platforms")
):
    """List platforms with target and native-mockable interfaces"""
    from mtr.commands.glue import GlueListCommand

    try:
        GlueListCommand(console, state["project"]).execute(include_removed=all_platforms)
    except MTRError as e:
        handle_mtr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@glue_app.command("validate")
def glue_validate(
    apply: bool = typer.Option(False, "--apply", help="Persist and register platforms when there are no errors"),
    platform: Optional[List[str]] = typer.Option(None, "--platform", help="Limit to platform (repeatable)"),
    output_format: str = typer.Option("text", "--format", help="Report format: text or yaml")
):
    """Validate platforms against the workspace (dry run unless --apply)"""
    from mtr.commands.glue import GlueValidateCommand

    if output_format not in ("text", "yaml"):
        console.print(f"[red]Error: unknown format '{output_format}' (use text or yaml)[/red]")
        raise typer.Exit(1)

    try:
        _finish(GlueValidateCommand(console, state["project"]).execute(apply, platform, output_format))
    except MTRError as e:
        handle_mtr_error(e)
    except typer.Exit:
        raise
    except Exception as e:
        handle_unexpected_error(e)


@glue_app.command("remove")
def glue_remove(
    platform: str = typer.Argument(..., help="Platform to remove")
):
    """Mark a platform as Removed (generated units are kept)"""
    from mtr.commands.glue import GlueRemoveCommand

    try:
        GlueRemoveCommand(console, state["project"]).execute(platform)
    except MTRError as e:
        handle_mtr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@glue_app.command("sync")
def glue_sync():
    """Create missing generated units and rewrite workspace members"""
    from mtr.commands.glue import GlueSyncCommand

    try:
        GlueSyncCommand(console, state["project"]).execute()
    except MTRError as e:
        handle_mtr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@app.command()
def init(
    name: str = typer.Argument(..., help="Project directory to create")
):
    """Create a new multi-target workspace"""
    from mtr.commands.init import InitCommand

    try:
        InitCommand(console, name, state["project"]).execute()
    except MTRError as e:
        handle_mtr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@app.command("add-platform")
def add_platform(
    name: str = typer.Argument(..., help="Platform name"),
    repository_url: str = typer.Argument(..., help="HAL package repository URL or local path"),
    target: Optional[str] = typer.Option(None, "--target", help="Target triple (inferred when omitted)"),
    hal: Optional[str] = typer.Option(None, "--hal", help="HAL crate name"),
    ref: str = typer.Option("HEAD", "--ref", help="Branch, tag or commit to analyze")
):
    """Analyze, register and scaffold a platform in one step"""
    from mtr.commands.init import AddPlatformCommand

    try:
        _finish(AddPlatformCommand(console, state["project"]).execute(name, repository_url, ref, target, hal))
    except MTRError as e:
        handle_mtr_error(e)
    except typer.Exit:
        raise
    except Exception as e:
        handle_unexpected_error(e)


@app.command("list-platforms")
def list_platforms():
    """List configured platforms"""
    from mtr.commands.glue import GlueListCommand

    try:
        GlueListCommand(console, state["project"]).execute()
    except MTRError as e:
        handle_mtr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@app.command()
def build(
    platform: Optional[str] = typer.Option(None, "--platform", help="Platform to build (default: host workspace)"),
    cross: bool = typer.Option(False, "--cross", help="Use cross instead of cargo")
):
    """Build a platform application or the host workspace"""
    from mtr.commands.build import BuildCommand

    try:
        _finish(BuildCommand(console, state["project"]).execute(platform, cross))
    except MTRError as e:
        handle_mtr_error(e)
    except typer.Exit:
        raise
    except Exception as e:
        handle_unexpected_error(e)


@app.command()
def test(
    platform: Optional[str] = typer.Option(None, "--platform", help="Show on-target test steps for a platform")
):
    """Run host tests (app units excluded)"""
    from mtr.commands.build import HostTestCommand

    try:
        _finish(HostTestCommand(console, state["project"]).execute(platform))
    except MTRError as e:
        handle_mtr_error(e)
    except typer.Exit:
        raise
    except Exception as e:
        handle_unexpected_error(e)


@app.command()
def vacuum():
    """Clean up stale temporary files from interrupted writes

    Removes .glue.yaml.*.tmp and .Cargo.toml.*.tmp files older than 60 minutes.
    """
    from mtr.utils.vacuum import VacuumCommand

    console.print("[bold blue]Cleaning up stale temporary files...[/bold blue]")

    vacuum_cmd = VacuumCommand(console, state["project"])
    vacuum_cmd.execute()


@app.command()
def version():
    """Display CLI version and embedded interface registry"""
    from rich.table import Table
    from mtr.registry.interfaces import InterfaceRegistry
    import importlib.metadata

    console.print("[bold blue]MTR Version Information[/bold blue]\n")

    try:
        cli_version = importlib.metadata.version("mtr")
    except importlib.metadata.PackageNotFoundError:
        cli_version = "0.1.0-dev"

    console.print(f"CLI Version: [green]{cli_version}[/green]")

    try:
        registry = InterfaceRegistry()
    except MTRError as e:
        console.print(f"[yellow]Warning: Could not load interface registry: {e.message}[/yellow]")
        return

    console.print(f"Interface Registry: [green]{registry.version}[/green]\n")

    table = Table(title="Native-Mockable Interfaces")
    table.add_column("Interface", style="cyan")
    table.add_column("Category", style="green")
    table.add_column("Modules", style="yellow")

    for entry in registry.entries():
        table.add_row(entry.name, entry.category.value, ", ".join(entry.modules) or "any")

    console.print(table)


if __name__ == "__main__":
    app()
