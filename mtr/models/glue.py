"""Glue configuration models for glue.yaml structure."""

from enum import StrEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InterfaceCategory(StrEnum):
    """Mockability category of a capability interface"""
    DIGITAL_IO = "DigitalIO"
    SPI = "Spi"
    I2C = "I2c"
    UART = "Uart"
    TIMER = "Timer"
    PWM = "Pwm"
    ADC = "Adc"
    CUSTOM = "Custom"


class Severity(StrEnum):
    """Diagnostic severity"""
    WARNING = "Warning"
    ERROR = "Error"


class PlatformStatus(StrEnum):
    """Platform lifecycle state

    Proposed -> Analyzed -> Validated -> Registered -> Removed (terminal)
    """
    PROPOSED = "Proposed"
    ANALYZED = "Analyzed"
    VALIDATED = "Validated"
    REGISTERED = "Registered"
    REMOVED = "Removed"


class InterfaceOrigin(StrEnum):
    """Whether a trait is declared by the package or only implemented by it"""
    DECLARED = "declared"
    IMPLEMENTED = "implemented"


class SourceLocation(BaseModel):
    """Position of a declaration inside the fetched source tree"""

    model_config = ConfigDict(frozen=True)

    path: str
    line: int
    column: int = 1

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


class SourceReference(BaseModel):
    """Where a platform's HAL package source lives"""

    model_config = ConfigDict(frozen=True)

    repository_url: str = Field(..., description="Repository URL or local path")
    ref: str = Field("HEAD", description="Branch, tag or commit to inspect")


class Diagnostic(BaseModel):
    """Single finding produced by a pipeline stage"""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    related_interface: Optional[str] = None

    @classmethod
    def warning(cls, message: str, related_interface: Optional[str] = None) -> "Diagnostic":
        return cls(severity=Severity.WARNING, message=message, related_interface=related_interface)

    @classmethod
    def error(cls, message: str, related_interface: Optional[str] = None) -> "Diagnostic":
        return cls(severity=Severity.ERROR, message=message, related_interface=related_interface)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class InterfaceRecord(BaseModel):
    """Capability interface discovered in a HAL package

    Created by the parser without a category; the classifier returns
    annotated copies. Records are never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    module_path: str
    category: Optional[InterfaceCategory] = None
    mockable: bool = False
    declared_at: SourceLocation
    origin: InterfaceOrigin = InterfaceOrigin.DECLARED
    implementors: List[str] = Field(default_factory=list)
    reexports: List[str] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        """Canonical path used as declaration identity"""
        if self.module_path:
            return f"{self.module_path}::{self.name}"
        return self.name


class Platform(BaseModel):
    """One target platform and the analysis of its HAL package"""

    name: str = Field(..., min_length=1)
    target_identifier: Optional[str] = None
    source_reference: SourceReference
    package_version: Optional[str] = None
    hal_crate: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    interfaces: List[InterfaceRecord] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    status: PlatformStatus = PlatformStatus.PROPOSED

    @property
    def mockable_interfaces(self) -> List[str]:
        """Native-mockable set, alphabetical and de-duplicated"""
        return sorted({record.name for record in self.interfaces if record.mockable})

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    @property
    def hal_unit(self) -> str:
        return f"hal-{self.name}"

    @property
    def app_unit(self) -> str:
        return f"app-{self.name}"


class GlueSettings(BaseModel):
    """Tunables persisted under 'settings' in glue.yaml"""

    fetch_concurrency: int = Field(8, ge=1, description="Maximum in-flight file requests")
    fetch_attempts: int = Field(3, ge=1, description="Attempts before a fetch is fatal")
    fetch_backoff_seconds: float = Field(0.5, ge=0, description="Initial retry delay")
    request_timeout_seconds: float = Field(30.0, gt=0)
    max_files: int = Field(2000, ge=1, description="Cap on fetched files per package")
    registry_path: Optional[str] = Field(None, description="Interface registry overlay")


class GlueConfig(BaseModel):
    """Complete glue configuration: platforms keyed by name, insertion ordered"""

    version: str = "1"
    settings: GlueSettings = Field(default_factory=GlueSettings)
    platforms: Dict[str, Platform] = Field(default_factory=dict)

    def active_platforms(self) -> List[Platform]:
        """Platforms that are not tombstoned"""
        return [p for p in self.platforms.values() if p.status != PlatformStatus.REMOVED]

    def registered_platforms(self) -> List[Platform]:
        return [p for p in self.platforms.values() if p.status == PlatformStatus.REGISTERED]
