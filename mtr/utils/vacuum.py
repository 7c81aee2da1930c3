"""Vacuum command for cleaning up stale temporary files."""

import time
from pathlib import Path
from typing import Dict, List, Sequence

from rich.console import Console
from rich.table import Table

from mtr.store.config_store import CONFIG_FILENAME
from mtr.utils.context_managers import TEMP_SUFFIX, temp_prefix

# Files written through AtomicFileWriter in a workspace
ATOMIC_TARGETS = (CONFIG_FILENAME, "Cargo.toml")


class VacuumCommand:
    """Clean up temporary files left by interrupted atomic writes.

    Handles SIGKILL (9) scenarios where the writer could not remove its
    temporary file. The committed configuration is never touched.
    """

    def __init__(self, console: Console, project_root: Path = Path("."), max_age_minutes: int = 60):
        self.console = console
        self.project_root = Path(project_root)
        self.max_age_minutes = max_age_minutes

    def execute(self):
        """Find and remove stale temporary files."""
        stale_files = self.find_stale_files()

        if not stale_files:
            self.console.print("[green]✓[/green] No stale temporary files found")
            return

        table = Table(title="Stale Temporary Files")
        table.add_column("File", style="yellow")
        table.add_column("Age (minutes)", style="cyan")
        table.add_column("Size", style="magenta")

        for file_info in stale_files:
            table.add_row(
                file_info["path"].name,
                str(file_info["age_minutes"]),
                self.format_size(file_info["size_bytes"])
            )

        self.console.print(table)

        removed_count = 0
        for file_info in stale_files:
            try:
                file_info["path"].unlink()
                removed_count += 1
            except FileNotFoundError:
                removed_count += 1
            except OSError as e:
                self.console.print(
                    f"[yellow]⚠[/yellow] Failed to remove {file_info['path'].name}: {e}"
                )

        self.console.print(
            f"[green]✓[/green] Removed {removed_count}/{len(stale_files)} stale files"
        )

    def find_stale_files(self, targets: Sequence[str] = ATOMIC_TARGETS) -> List[Dict]:
        """Find temporary files older than max_age_minutes."""
        stale_files = []
        current_time = time.time()
        cutoff_time = current_time - (self.max_age_minutes * 60)

        for target in targets:
            pattern = f"{temp_prefix(Path(target))}*{TEMP_SUFFIX}"
            for path in sorted(self.project_root.glob(pattern)):
                if not path.is_file():
                    continue

                stat = path.stat()
                if stat.st_mtime < cutoff_time:
                    stale_files.append({
                        "path": path,
                        "age_minutes": int((current_time - stat.st_mtime) / 60),
                        "size_bytes": stat.st_size
                    })

        return stale_files

    def format_size(self, size_bytes: int) -> str:
        """Format bytes as human-readable size."""
        for unit in ["B", "KB", "MB", "GB"]:
            if size_bytes < 1024:
                return f"{size_bytes:.1f} {unit}"
            size_bytes /= 1024
        return f"{size_bytes:.1f} TB"
