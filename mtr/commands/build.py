"""Build and test commands wrapping cargo/cross"""

from pathlib import Path
from typing import Optional

from rich.console import Console

from mtr.engine.toolchain import ToolchainRunner
from mtr.store.config_store import CONFIG_FILENAME, ConfigStore


class BuildCommand:
    """Build one platform's application, or the whole workspace for the host"""

    def __init__(self, console: Console, project_root: Path = Path("."), runner: Optional[ToolchainRunner] = None):
        self.console = console
        self.project_root = Path(project_root)
        self.store = ConfigStore(self.project_root / CONFIG_FILENAME)
        self.runner = runner or ToolchainRunner(self.project_root)

    def execute(self, platform_name: Optional[str] = None, use_cross: bool = False) -> int:
        if platform_name:
            platform = self.store.get(platform_name)
            self.console.print(f"[bold blue]Building for platform: {platform_name}[/bold blue]")
            command = self.runner.build_command(platform, use_cross)
        else:
            self.console.print("[bold blue]Building workspace for host[/bold blue]")
            command = self.runner.build_command()

        self.console.print(f"[dim]Running: {' '.join(command)}[/dim]")
        result = self.runner.run(command, required_for="mtr build")
        if not result.succeeded:
            self.console.print(f"[red]✗[/red] Build failed (exit code {result.exit_code})")
            return result.exit_code

        self.console.print("[green]✓[/green] Build completed successfully")
        return 0


class HostTestCommand:
    """Run host tests, or print on-target guidance for a platform"""

    def __init__(self, console: Console, project_root: Path = Path("."), runner: Optional[ToolchainRunner] = None):
        self.console = console
        self.project_root = Path(project_root)
        self.store = ConfigStore(self.project_root / CONFIG_FILENAME)
        self.runner = runner or ToolchainRunner(self.project_root)

    def execute(self, platform_name: Optional[str] = None) -> int:
        if platform_name:
            platform = self.store.get(platform_name)
            self.console.print(f"[bold blue]On-target tests for platform: {platform_name}[/bold blue]")
            for line in self.runner.on_target_guidance(platform):
                self.console.print(f"  {line}")
            return 0

        self.console.print("[bold blue]Running native unit tests[/bold blue]")
        app_units = [p.app_unit for p in self.store.load().registered_platforms()]
        command = self.runner.test_command(app_units)
        self.console.print(f"[dim]Running: {' '.join(command)}[/dim]")

        result = self.runner.run(command, required_for="mtr test")
        if not result.succeeded:
            self.console.print(f"[red]✗[/red] Tests failed (exit code {result.exit_code})")
            return result.exit_code

        self.console.print("[green]✓[/green] Tests passed")
        return 0
