"""Report models produced by the validation pipeline"""

from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from mtr.exceptions import NetworkError
from mtr.models.glue import Diagnostic, Platform, PlatformStatus, Severity


class ReportEntry(BaseModel):
    """Diagnostic tagged with the platform it belongs to (None = workspace)"""

    platform: Optional[str] = None
    diagnostic: Diagnostic


class UnitSpec(BaseModel):
    """Generated unit the scaffolder must create"""

    name: str
    kind: str  # core, hal, app
    platform: Optional[str] = None


class SyncDelta(BaseModel):
    """Changes the scaffolding collaborator must apply to the workspace"""

    units_to_create: List[UnitSpec] = Field(default_factory=list)
    orphan_units: List[str] = Field(default_factory=list)
    members: List[str] = Field(default_factory=list)
    members_in_sync: bool = True

    @property
    def is_empty(self) -> bool:
        return not self.units_to_create and self.members_in_sync


class PlatformSummary(BaseModel):
    """Row of 'glue list' output"""

    name: str
    status: PlatformStatus
    target_identifier: Optional[str]
    mockable_interfaces: List[str]
    warning_count: int


class ValidationReport(BaseModel):
    """Concatenation of all diagnostics plus the final platform state"""

    entries: List[ReportEntry] = Field(default_factory=list)
    platforms: List[Platform] = Field(default_factory=list)
    delta: SyncDelta = Field(default_factory=SyncDelta)
    applied: bool = False
    # Platforms whose source could not be fetched during this run
    unreachable: List[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for entry in self.entries if entry.diagnostic.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for entry in self.entries if entry.diagnostic.severity == Severity.WARNING)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def exit_code(self) -> int:
        if self.unreachable:
            return NetworkError.exit_code
        return 1 if self.has_errors else 0

    def errors_for(self, platform: Optional[str]) -> List[Diagnostic]:
        return [
            entry.diagnostic for entry in self.entries
            if entry.platform == platform and entry.diagnostic.is_error
        ]

    def platform(self, name: str) -> Optional[Platform]:
        for platform in self.platforms:
            if platform.name == name:
                return platform
        return None

    def to_yaml(self) -> str:
        """Deterministic serialization (no timestamps, stable key order)"""
        data = {
            "applied": self.applied,
            "errors": self.error_count,
            "warnings": self.warning_count,
            "unreachable": self.unreachable,
            "diagnostics": [
                {
                    "platform": entry.platform,
                    **entry.diagnostic.model_dump(mode="json"),
                }
                for entry in self.entries
            ],
            "platforms": [
                {
                    "name": platform.name,
                    "status": platform.status.value,
                    "target_identifier": platform.target_identifier,
                    "native_mockable": platform.mockable_interfaces,
                    "interfaces": [
                        f"{record.qualified_name} [{record.category}]"
                        for record in platform.interfaces
                    ],
                }
                for platform in self.platforms
            ],
            "delta": self.delta.model_dump(mode="json"),
        }
        return yaml.dump(data, sort_keys=False, default_flow_style=False, indent=2, width=4096)
