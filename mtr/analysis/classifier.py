"""CompatibilityClassifier: interface records -> mockability categories."""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from mtr.models.glue import Diagnostic, InterfaceCategory, InterfaceRecord
from mtr.registry.interfaces import InterfaceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Annotated record set plus the native-mockable set"""
    records: List[InterfaceRecord] = field(default_factory=list)
    mockable: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


class CompatibilityClassifier:
    """Classify interfaces against a registry.

    Pure: the input records are left untouched and a new annotated record
    set is returned. Unknown names fail closed to Custom / non-mockable.
    """

    def __init__(self, registry: InterfaceRegistry):
        self.registry = registry

    def classify(self, records: Sequence[InterfaceRecord]) -> Classification:
        annotated: List[InterfaceRecord] = []
        diagnostics: List[Diagnostic] = []
        warned = set()

        for record in records:
            entry = self.registry.lookup(record.name, record.module_path)
            if entry is not None:
                annotated.append(record.model_copy(update={"category": entry.category, "mockable": True}))
                continue

            annotated.append(record.model_copy(update={"category": InterfaceCategory.CUSTOM, "mockable": False}))
            # One warning per name even if several modules declare it
            if record.name not in warned:
                warned.add(record.name)
                diagnostics.append(Diagnostic.warning(
                    f"interface '{record.name}' may not be available for native testing",
                    related_interface=record.qualified_name,
                ))

        mockable = sorted({record.name for record in annotated if record.mockable})
        logger.info(
            "Classified %d interface(s): %d mockable (registry %s)",
            len(annotated), len(mockable), self.registry.version
        )
        return Classification(records=annotated, mockable=mockable, diagnostics=diagnostics)
