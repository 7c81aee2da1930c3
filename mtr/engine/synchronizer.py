"""WorkspaceSynchronizer: configured platforms vs. on-disk generated units."""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set

from mtr.models.glue import Diagnostic, Platform, PlatformStatus
from mtr.models.report import SyncDelta, UnitSpec

logger = logging.getLogger(__name__)

CORE_UNITS = ("core-lib", "tests")
UNIT_PREFIXES = ("hal-", "app-")


@dataclass
class SyncResult:
    delta: SyncDelta
    diagnostics: List[Diagnostic] = field(default_factory=list)
    # Platforms whose generated units are missing
    missing_platforms: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)


class WorkspaceSynchronizer:
    """Compare expected generated units with the workspace on disk.

    Read-only: reports the required delta, never edits files or members.
    """

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)

    @property
    def manifest_path(self) -> Path:
        return self.project_root / "Cargo.toml"

    def actual_units(self) -> Set[str]:
        """Unit directories present on disk"""
        if not self.project_root.is_dir():
            return set()
        return {
            entry.name
            for entry in self.project_root.iterdir()
            if entry.is_dir()
            and (entry / "Cargo.toml").is_file()
            and (entry.name in CORE_UNITS or entry.name.startswith(UNIT_PREFIXES))
        }

    def read_members(self) -> Optional[List[str]]:
        """Workspace members from the root manifest, None when unreadable"""
        try:
            manifest = tomllib.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            logger.debug("Cannot read %s: %s", self.manifest_path, e)
            return None
        workspace = manifest.get("workspace")
        if not isinstance(workspace, dict):
            return None
        members = workspace.get("members", [])
        return [str(member) for member in members] if isinstance(members, list) else None

    def synchronize(self, platforms: Sequence[Platform]) -> SyncResult:
        registered = [p for p in platforms if p.status == PlatformStatus.REGISTERED]
        expected: List[str] = list(CORE_UNITS)
        for platform in registered:
            expected.extend([platform.hal_unit, platform.app_unit])
        expected_set = set(expected)

        actual = self.actual_units()
        diagnostics: List[Diagnostic] = []
        to_create: List[UnitSpec] = []
        missing_platforms: List[str] = []

        for unit in CORE_UNITS:
            if unit not in actual:
                diagnostics.append(Diagnostic.error(f"missing scaffold for core unit: {unit}"))
                to_create.append(UnitSpec(name=unit, kind="core"))

        for platform in registered:
            missing = [u for u in (platform.hal_unit, platform.app_unit) if u not in actual]
            if not missing:
                continue
            missing_platforms.append(platform.name)
            diagnostics.append(Diagnostic.error(
                f"missing scaffold for platform: {platform.name} ({', '.join(missing)})"
            ))
            for unit in missing:
                kind = "hal" if unit == platform.hal_unit else "app"
                to_create.append(UnitSpec(name=unit, kind=kind, platform=platform.name))

        orphans = sorted(actual - expected_set)
        for unit in orphans:
            diagnostics.append(Diagnostic.warning(f"orphan unit; consider removal: {unit}"))

        members = self.read_members()
        target_members = sorted(expected_set)
        if members is None:
            diagnostics.append(Diagnostic.error(
                f"workspace membership out of sync: cannot read [workspace] members from {self.manifest_path}"
            ))
            in_sync = False
        else:
            # Orphans still on disk may remain members until the user deletes them
            tolerated = set(orphans)
            compared = [m for m in members if m not in tolerated]
            duplicated = len(set(members)) != len(members)
            in_sync = compared == sorted(expected_set) and not duplicated
            if not in_sync:
                extra = sorted(set(compared) - expected_set)
                absent = sorted(expected_set - set(compared))
                details = []
                if absent:
                    details.append(f"missing {', '.join(absent)}")
                if extra:
                    details.append(f"unexpected {', '.join(extra)}")
                if duplicated:
                    details.append("duplicate entries")
                if not details:
                    details.append("members not sorted")
                diagnostics.append(Diagnostic.error(
                    f"workspace membership out of sync ({'; '.join(details)})"
                ))
            target_members = sorted(expected_set | (set(members) & tolerated))

        delta = SyncDelta(
            units_to_create=to_create,
            orphan_units=orphans,
            members=target_members,
            members_in_sync=in_sync,
        )
        logger.info(
            "Workspace sync: %d unit(s) to create, %d orphan(s), members %s",
            len(to_create), len(orphans), "in sync" if in_sync else "out of sync"
        )
        return SyncResult(delta=delta, diagnostics=diagnostics, missing_platforms=missing_platforms)
