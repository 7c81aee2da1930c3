"""Data models for glue configuration and validation reports"""

from mtr.models.glue import (
    Diagnostic,
    GlueConfig,
    GlueSettings,
    InterfaceCategory,
    InterfaceOrigin,
    InterfaceRecord,
    Platform,
    PlatformStatus,
    Severity,
    SourceLocation,
    SourceReference,
)
from mtr.models.report import (
    PlatformSummary,
    ReportEntry,
    SyncDelta,
    UnitSpec,
    ValidationReport,
)

__all__ = [
    "Diagnostic",
    "GlueConfig",
    "GlueSettings",
    "InterfaceCategory",
    "InterfaceOrigin",
    "InterfaceRecord",
    "Platform",
    "PlatformStatus",
    "Severity",
    "SourceLocation",
    "SourceReference",
    "PlatformSummary",
    "ReportEntry",
    "SyncDelta",
    "UnitSpec",
    "ValidationReport",
]
