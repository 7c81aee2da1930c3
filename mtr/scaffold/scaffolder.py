"""Workspace scaffolding: project skeleton and per-platform generated units"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from jinja2 import Environment, PackageLoader, StrictUndefined

from mtr.engine.synchronizer import CORE_UNITS
from mtr.engine.toolchain import is_bare_metal
from mtr.exceptions import ScaffoldError
from mtr.models.glue import GlueConfig, Platform
from mtr.models.report import SyncDelta, UnitSpec
from mtr.store.config_store import CONFIG_FILENAME, ConfigStore
from mtr.utils.context_managers import AtomicFileWriter

logger = logging.getLogger(__name__)

WORKSPACE_HEADER_RE = re.compile(r"(?m)^[ \t]*\[workspace\][ \t]*(?:#.*)?$")
TABLE_HEADER_RE = re.compile(r"(?m)^[ \t]*\[")
MEMBERS_KEY_RE = re.compile(r"(?m)^[ \t]*members[ \t]*=[ \t]*")


def type_prefix(platform_name: str) -> str:
    """'stm32-f4' -> 'Stm32F4' for generated Rust type names"""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[-_\s]+", platform_name) if part)


def _string_end(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        if quote == '"' and text[i] == "\\":
            i += 2
            continue
        if text[i] == quote or text[i] == "\n":
            return i + 1
        i += 1
    return len(text)


def _array_end(text: str, start: int) -> Optional[int]:
    """Index just past the TOML array opened at text[start], None if unterminated"""
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "#":
            newline = text.find("\n", i)
            i = len(text) if newline == -1 else newline
            continue
        if char in "\"'":
            i = _string_end(text, i)
            continue
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def find_members_span(text: str) -> Optional[Tuple[int, int]]:
    """Locate the [workspace] members array value in a root manifest

    Returns:
        (start, end) offsets of the array including brackets, or None
    """
    header = WORKSPACE_HEADER_RE.search(text)
    if header is None:
        return None
    following = TABLE_HEADER_RE.search(text, header.end())
    section_end = following.start() if following else len(text)
    key = MEMBERS_KEY_RE.search(text, header.end(), section_end)
    if key is None or not text.startswith("[", key.end()):
        return None
    end = _array_end(text, key.end())
    return (key.end(), end) if end is not None else None


class Scaffolder:
    """Apply workspace deltas computed by the synchronizer.

    Creates files only; orphan units are reported but never deleted.
    """

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)
        self.jinja_env = Environment(
            loader=PackageLoader("mtr.scaffold", "templates"),
            keep_trailing_newline=True,
            undefined=StrictUndefined,
            auto_reload=False,
        )

    def _render(self, template: str, **context) -> str:
        return self.jinja_env.get_template(template).render(**context)

    def _write(self, path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        logger.debug("Wrote %s", path)
        return path

    def init_project(self, name: str) -> Path:
        """Create a new workspace directory with core units and empty glue.yaml

        Returns:
            Path of the created project

        Raises:
            ScaffoldError: If the target directory already exists
        """
        project = self.project_root / name
        if project.exists():
            raise ScaffoldError(str(project), "directory already exists")

        project.mkdir(parents=True)
        self._write(project / "Cargo.toml", self._render("workspace_Cargo.toml.j2", members=list(CORE_UNITS)))
        for unit in CORE_UNITS:
            self._create_core_unit(project, unit)
        self._write(project / ".cargo" / "config.toml", self._render("cargo_config.toml.j2"))
        self._write(project / "README.md", self._render("README.md.j2", project_name=name))
        ConfigStore(project / CONFIG_FILENAME).replace(GlueConfig())

        logger.info("Initialized project %s", project)
        return project

    def _create_core_unit(self, project: Path, unit: str) -> List[Path]:
        if unit == "core-lib":
            return [
                self._write(project / unit / "Cargo.toml", self._render("core_Cargo.toml.j2")),
                self._write(project / unit / "src" / "lib.rs", self._render("core_lib.rs.j2")),
            ]
        return [
            self._write(project / unit / "Cargo.toml", self._render("tests_Cargo.toml.j2")),
            self._write(project / unit / "integration_test.rs", self._render("tests_integration_test.rs.j2")),
        ]

    def create_unit(self, unit: UnitSpec, platform: Optional[Platform] = None) -> List[Path]:
        """Create one generated unit

        Raises:
            ScaffoldError: If the unit exists or a platform unit lacks its platform
        """
        unit_dir = self.project_root / unit.name
        if (unit_dir / "Cargo.toml").exists():
            raise ScaffoldError(str(unit_dir), "unit already exists")

        if unit.kind == "core":
            return self._create_core_unit(self.project_root, unit.name)
        if platform is None:
            raise ScaffoldError(str(unit_dir), f"no configured platform for {unit.kind} unit")

        hal_crate = platform.hal_crate or "embedded-hal"
        context = {
            "platform": platform,
            "hal_crate": hal_crate,
            "hal_version": platform.package_version or "*",
            "hal_ident": platform.hal_unit.replace("-", "_"),
            "type_prefix": type_prefix(platform.name),
            "mockable": platform.mockable_interfaces,
            "bare_metal": is_bare_metal(platform.target_identifier),
        }

        if unit.kind == "hal":
            return [
                self._write(unit_dir / "Cargo.toml", self._render("hal_Cargo.toml.j2", **context)),
                self._write(unit_dir / "src" / "lib.rs", self._render("hal_lib.rs.j2", **context)),
            ]

        created = [
            self._write(unit_dir / "Cargo.toml", self._render("app_Cargo.toml.j2", **context)),
            self._write(unit_dir / "src" / "main.rs", self._render("app_main.rs.j2", **context)),
        ]
        if context["bare_metal"]:
            created.append(self._write(unit_dir / "memory.x", self._render("app_memory.x.j2")))
        return created

    def write_members(self, members: Sequence[str]) -> None:
        """Rewrite [workspace] members of the root manifest atomically

        Raises:
            ScaffoldError: If the manifest has no members list to rewrite
        """
        manifest = self.project_root / "Cargo.toml"
        try:
            text = manifest.read_text(encoding="utf-8")
        except OSError as e:
            raise ScaffoldError(str(manifest), str(e)) from e

        rendered = "[\n" + "".join(f'    "{member}",\n' for member in members) + "]"
        span = find_members_span(text)
        if span is None:
            raise ScaffoldError(str(manifest), "no [workspace] members list found")
        updated = text[:span[0]] + rendered + text[span[1]:]

        with AtomicFileWriter(manifest) as f:
            f.write(updated)
        logger.info("Updated workspace members: %s", ", ".join(members))

    def apply_delta(self, delta: SyncDelta, platforms: Dict[str, Platform]) -> List[Path]:
        """Create missing units and rewrite the member list

        Args:
            delta: Delta reported by the synchronizer
            platforms: Configured platforms by name

        Returns:
            Files created
        """
        created: List[Path] = []
        for unit in delta.units_to_create:
            platform = platforms.get(unit.platform) if unit.platform else None
            created.extend(self.create_unit(unit, platform))
            logger.info("Created unit %s", unit.name)

        if not delta.members_in_sync or delta.units_to_create:
            self.write_members(delta.members)
        return created
