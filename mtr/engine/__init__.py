"""Pipeline orchestration, workspace synchronization and toolchain invocation"""

from mtr.engine.synchronizer import CORE_UNITS, SyncResult, WorkspaceSynchronizer
from mtr.engine.toolchain import ExecutionResult, ToolchainRunner, is_bare_metal
from mtr.engine.validator import Validator

__all__ = [
    "CORE_UNITS",
    "SyncResult",
    "WorkspaceSynchronizer",
    "ExecutionResult",
    "ToolchainRunner",
    "is_bare_metal",
    "Validator",
]
