"""Interface registry for classifying capability interfaces."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from mtr.exceptions import MTRError
from mtr.models.glue import InterfaceCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    """Registered interface name; strict entries also pin the module it lives in"""
    name: str
    category: InterfaceCategory
    modules: Tuple[str, ...] = ()
    strict: bool = False

    def matches(self, module_path: str) -> bool:
        """Check whether a record's module path is acceptable for this entry

        Only strict entries look at the module path.

        Args:
            module_path: Module path of the record, empty when unresolved
        """
        if not self.strict:
            return True
        if not module_path:
            return False
        if not self.modules:
            return True
        return any(
            module_path == suffix or module_path.endswith(f"::{suffix}")
            for suffix in self.modules
        )


class InterfaceRegistry:
    """Versioned registry of host-mockable interfaces with embedded defaults.

    An overlay file (settings.registry_path) is merged over the embedded
    registry; overlay entries take precedence.
    """

    def __init__(self, data: Optional[Dict] = None, overlay_path: Optional[Path] = None):
        self.embedded = data if data is not None else self.load_embedded()
        self._source = "embedded"
        merged = self.embedded

        if overlay_path is not None:
            merged = self._merge(self.embedded, self.load_overlay(overlay_path))
            self._source = f"embedded + {overlay_path}"

        self.version = str(merged.get("version", "unversioned"))
        self._entries = self._build_entries(merged.get("interfaces") or {})

    @classmethod
    def from_names(cls, names: Dict[str, InterfaceCategory], version: str = "custom") -> "InterfaceRegistry":
        """Build a registry matching bare names, used for ad hoc registries"""
        return cls(data={
            "version": version,
            "interfaces": {name: {"category": category.value} for name, category in names.items()},
        })

    @staticmethod
    def load_embedded() -> Dict:
        """Load interfaces.yaml shipped with the package."""
        path = Path(__file__).parent / "interfaces.yaml"
        return yaml.safe_load(path.read_text())

    @staticmethod
    def load_overlay(path: Path) -> Dict:
        """Load a user registry overlay

        Raises:
            MTRError: If the overlay is missing or malformed
        """
        try:
            data = yaml.safe_load(Path(path).read_text())
        except (OSError, yaml.YAMLError) as e:
            raise MTRError(
                f"Cannot read interface registry overlay '{path}': {e}",
                "Fix or unset 'registry_path' in glue.yaml settings"
            ) from e
        if not isinstance(data, dict) or not isinstance(data.get("interfaces", {}), dict):
            raise MTRError(
                f"Interface registry overlay '{path}' must map 'interfaces' to entries",
                "See mtr/registry/interfaces.yaml for the expected layout"
            )
        return data

    def _merge(self, embedded: Dict, overlay: Dict) -> Dict:
        """Merge overlay entries into the embedded registry (overlay wins)."""
        merged = dict(embedded)
        interfaces = dict(embedded.get("interfaces") or {})

        for name, entry in (overlay.get("interfaces") or {}).items():
            if name in interfaces and isinstance(entry, dict):
                interfaces[name] = {**interfaces[name], **entry}
            else:
                interfaces[name] = entry

        merged["interfaces"] = interfaces
        if overlay.get("version"):
            merged["version"] = f"{embedded.get('version')}+{overlay['version']}"
        return merged

    def _build_entries(self, raw: Dict) -> Dict[str, RegistryEntry]:
        entries = {}
        for name, entry in raw.items():
            entry = entry or {}
            try:
                category = InterfaceCategory(entry.get("category", ""))
            except ValueError as e:
                raise MTRError(
                    f"Interface registry entry '{name}' has unknown category '{entry.get('category')}'",
                    f"Valid categories: {', '.join(c.value for c in InterfaceCategory)}"
                ) from e
            entries[name] = RegistryEntry(
                name=name,
                category=category,
                modules=tuple(entry.get("modules") or ()),
                strict=bool(entry.get("strict", False)),
            )
        logger.debug("Loaded %d registry entries (%s)", len(entries), self._source)
        return entries

    def get_registry_source(self) -> str:
        return self._source

    def lookup(self, name: str, module_path: str = "") -> Optional[RegistryEntry]:
        """Find the entry for an interface, None when the name is not registered
        or the module path rules it out."""
        entry = self._entries.get(name)
        if entry is None or not entry.matches(module_path):
            return None
        return entry

    def entries(self) -> List[RegistryEntry]:
        return sorted(self._entries.values(), key=lambda e: (e.category.value, e.name))

    def __len__(self) -> int:
        return len(self._entries)
