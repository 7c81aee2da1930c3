"""Glue command implementations: init, list, validate, remove, sync"""

import asyncio
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from mtr.commands.output import print_platforms, print_report
from mtr.engine.validator import Validator
from mtr.models.report import ValidationReport
from mtr.scaffold.scaffolder import Scaffolder


class GlueCommand:
    """Shared plumbing for commands driving the Validator"""

    def __init__(self, console: Console, project_root: Path = Path("."), validator: Optional[Validator] = None):
        """Initialize glue command

        Args:
            console: Rich console for output
            project_root: Workspace root containing glue.yaml
            validator: Validator override (tests inject fake source backends)
        """
        self.console = console
        self.project_root = Path(project_root)
        self.validator = validator or Validator(self.project_root)

    def _run(self, description: str, coroutine) -> ValidationReport:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            progress.add_task(description, total=None)
            return asyncio.run(coroutine)

    def _scaffold(self, report: ValidationReport, quiet: bool = False) -> List[Path]:
        """Hand an applied report's delta to the scaffolder"""
        if report.delta.is_empty:
            return []
        platforms = self.validator.store.load().platforms
        created = Scaffolder(self.project_root).apply_delta(report.delta, platforms)
        if quiet:
            return created
        for unit in report.delta.units_to_create:
            self.console.print(f"  [green]✓[/green] Created {unit.name}")
        if not report.delta.members_in_sync or report.delta.units_to_create:
            self.console.print("  [green]✓[/green] Updated workspace members")
        return created


class GlueInitCommand(GlueCommand):
    """Analyze a HAL package and add it as a Proposed/Analyzed platform"""

    def execute(
        self,
        name: str,
        repository_url: str,
        ref: str = "HEAD",
        target: Optional[str] = None,
        hal_crate: Optional[str] = None,
        features: Sequence[str] = (),
    ) -> int:
        report = self._run(
            f"Analyzing {repository_url}@{ref}...",
            self.validator.init_platform(name, repository_url, ref, target, hal_crate, features),
        )
        print_report(self.console, report)
        platform = report.platform(name)
        self.console.print(f"[green]✓[/green] Platform '{name}' added with status {platform.status.value}")
        return report.exit_code


class GlueListCommand(GlueCommand):

    def execute(self, include_removed: bool = False) -> int:
        print_platforms(self.console, self.validator.list_platforms(include_removed=include_removed))
        return 0


class GlueValidateCommand(GlueCommand):
    """Dry-run validation, or apply with --apply"""

    def execute(self, apply: bool = False, platforms: Optional[List[str]] = None, output_format: str = "text") -> int:
        names = platforms or None
        if not apply:
            report = self._run("Validating platforms...", self.validator.validate(names))
            print_report(self.console, report, output_format)
            return report.exit_code

        report = self._run("Validating and applying...", self.validator.apply(names))
        print_report(self.console, report, output_format)
        # YAML output stays machine-readable: no status lines after the document
        quiet = output_format == "yaml"
        if not report.applied:
            if not quiet:
                self.console.print("[red]✗[/red] Apply refused: fix all errors first (warnings never block)")
            return report.exit_code

        self._scaffold(report, quiet=quiet)
        if not quiet:
            self.console.print("[green]✓[/green] Configuration applied")
        return 0


class GlueRemoveCommand(GlueCommand):

    def execute(self, name: str) -> int:
        platform = self.validator.remove(name)
        self.console.print(f"[green]✓[/green] Platform '{name}' removed (status {platform.status.value})")
        self.console.print(
            f"[dim]Generated units {platform.hal_unit} and {platform.app_unit} are kept; "
            "delete them manually when no longer needed[/dim]"
        )
        return 0


class GlueSyncCommand(GlueCommand):
    """Create missing generated units and fix workspace membership"""

    def execute(self) -> int:
        report = self._run("Checking workspace...", self.validator.validate())
        if report.delta.is_empty:
            self.console.print("[green]✓[/green] Workspace already in sync")
            return 0
        self._scaffold(report)
        self.console.print("[green]✓[/green] Workspace synchronized; run 'mtr glue validate' to confirm")
        return 0
