"""Toolchain runner for cargo/cross build and test invocations"""

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from mtr.analysis.target_inference import UNKNOWN_TARGET
from mtr.exceptions import MTRError, RuntimeDependencyError
from mtr.models.glue import Platform

logger = logging.getLogger(__name__)

HOSTED_MARKERS = ("linux", "windows", "darwin")


def is_bare_metal(target_identifier: Optional[str]) -> bool:
    """Targets without an operating system need no_std/no_main entry points"""
    if not target_identifier or target_identifier == UNKNOWN_TARGET:
        return True
    return not any(marker in target_identifier for marker in HOSTED_MARKERS)


@dataclass
class ExecutionResult:
    """Result from toolchain execution"""
    exit_code: int
    command: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ToolchainRunner:
    """Run cargo (or cross) in the workspace root, streaming output"""

    def __init__(self, working_dir: Optional[Path] = None, timeout: Optional[int] = None):
        """Initialize toolchain runner

        Args:
            working_dir: Workspace root (defaults to current dir)
            timeout: Optional timeout in seconds for each invocation
        """
        self.working_dir = working_dir or Path.cwd()
        self.timeout = timeout

    def require(self, tool: str, required_for: str) -> str:
        """Resolve a tool in PATH

        Raises:
            RuntimeDependencyError: If the tool is not installed
        """
        path = shutil.which(tool)
        if path is None:
            raise RuntimeDependencyError(tool, required_for)
        return path

    def build_command(self, platform: Optional[Platform] = None, use_cross: bool = False) -> List[str]:
        """Command line for a platform build, or a host workspace build

        Raises:
            MTRError: If the platform has no usable target identifier
        """
        if platform is None:
            return ["cargo", "build", "--workspace"]

        target = platform.target_identifier
        if not target or target == UNKNOWN_TARGET:
            raise MTRError(
                f"Platform '{platform.name}' has no known target identifier",
                f"Re-add the platform with --target, e.g. 'mtr add-platform {platform.name} <url> --target thumbv7em-none-eabihf'"
            )
        tool = "cross" if use_cross else "cargo"
        return [tool, "build", "--target", target, "-p", platform.app_unit]

    def test_command(self, app_units: Sequence[str]) -> List[str]:
        """Host test run excluding application binaries"""
        command = ["cargo", "test", "--workspace"]
        for unit in sorted(app_units):
            command.extend(["--exclude", unit])
        return command

    def on_target_guidance(self, platform: Platform) -> List[str]:
        """Steps for running tests on hardware through probe-rs"""
        return [
            "On-target testing requires probe-rs and embedded-test",
            "Install with: cargo install probe-rs-tools",
            f"Then run: cargo test --target {platform.target_identifier} -p {platform.app_unit}",
        ]

    def run(self, command: List[str], required_for: str) -> ExecutionResult:
        """Execute a toolchain command with inherited stdout/stderr

        Raises:
            RuntimeDependencyError: If the executable is not installed
        """
        executable = self.require(command[0], required_for)
        logger.info("Running: %s", " ".join(command))

        try:
            result = subprocess.run(
                [executable, *command[1:]],
                cwd=self.working_dir,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error("%s timed out after %s seconds", command[0], self.timeout)
            return ExecutionResult(exit_code=124, command=command)  # Standard timeout exit code

        return ExecutionResult(exit_code=result.returncode, command=command)
