"""Project initialization and one-step platform addition"""

from pathlib import Path
from typing import Optional

from rich.console import Console

from mtr.commands.glue import GlueCommand
from mtr.commands.output import print_report
from mtr.scaffold.scaffolder import Scaffolder


class InitCommand:
    """Create a new multi-target workspace"""

    def __init__(self, console: Console, name: str, parent_dir: Path = Path(".")):
        """Initialize init command

        Args:
            console: Rich console for output
            name: Project directory name
            parent_dir: Directory the project is created in
        """
        self.console = console
        self.name = name
        self.parent_dir = Path(parent_dir)

    def execute(self) -> Path:
        self.console.print(f"[bold blue]Initializing multi-target project: {self.name}[/bold blue]")
        project = Scaffolder(self.parent_dir).init_project(self.name)

        for created in ("Cargo.toml", "core-lib", "tests", ".cargo/config.toml", "glue.yaml", "README.md"):
            self.console.print(f"  [green]✓[/green] Created {created}")

        self.console.print(f"[green]✓[/green] Project '{self.name}' initialized at {project}")
        self.console.print("\nNext steps:")
        self.console.print(f"  cd {self.name}")
        self.console.print("  mtr test                                   # Run host tests")
        self.console.print("  mtr add-platform <name> <repository-url>  # Add a platform")
        return project


class AddPlatformCommand(GlueCommand):
    """glue init followed by validate --apply for the new platform"""

    def execute(
        self,
        name: str,
        repository_url: str,
        ref: str = "HEAD",
        target: Optional[str] = None,
        hal_crate: Optional[str] = None,
    ) -> int:
        self.console.print(f"[bold blue]Adding platform '{name}'[/bold blue]")

        init_report = self._run(
            f"Analyzing {repository_url}@{ref}...",
            self.validator.init_platform(name, repository_url, ref, target, hal_crate),
        )
        print_report(self.console, init_report)

        report = self._run("Registering platform...", self.validator.apply([name]))
        if not report.applied:
            print_report(self.console, report)
            self.console.print(
                f"[red]✗[/red] Platform '{name}' was analyzed but not registered; "
                "fix the errors above and run 'mtr glue validate --apply'"
            )
            return report.exit_code

        self._scaffold(report)
        platform = report.platform(name)
        self.console.print(
            f"[green]✓[/green] Platform '{name}' registered "
            f"(target {platform.target_identifier})"
        )
        return 0
