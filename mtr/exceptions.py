"""MTR Exception Classes

Base exception hierarchy for the multi-target workspace tool.
All custom exceptions include help_text for actionable user guidance
and an exit_code the CLI layer maps the failure to.
"""

from typing import List, Optional


class MTRError(Exception):
    """Base exception for all MTR errors

    Attributes:
        message: Human-readable error description
        help_text: Optional actionable guidance for resolving the error
        exit_code: Process exit code for the CLI layer
    """

    exit_code: int = 1

    def __init__(self, message: str, help_text: str = None):
        """Initialize MTR error with message and optional help text

        Args:
            message: Error description
            help_text: Optional remediation guidance
        """
        self.message = message
        self.help_text = help_text
        super().__init__(message)

    def __str__(self) -> str:
        """Format error message with help text if available"""
        if self.help_text:
            return f"{self.message}\n\nHelp: {self.help_text}"
        return self.message


class NetworkError(MTRError):
    """Raised when a source fetch yields zero files after all retries"""

    exit_code = 2

    def __init__(
        self,
        repository_url: str,
        ref: str,
        attempts: int,
        failures: Optional[List[str]] = None
    ):
        message = (
            f"Could not fetch any source files from '{repository_url}' "
            f"at '{ref}' after {attempts} attempt(s)"
        )

        help_text = "Check the repository URL, the ref and your network connection"
        if failures:
            help_text += "\n\nLast failures:\n"
            help_text += "\n".join(f"  - {failure}" for failure in failures[:5])
        help_text += "\n\nSet GITHUB_TOKEN if you are hitting API rate limits"

        super().__init__(message, help_text)
        self.repository_url = repository_url
        self.ref = ref
        self.attempts = attempts
        self.failures = failures or []


class ParseError(MTRError):
    """Raised when a single source file cannot be parsed

    Recovered by the parser: the file is skipped and a Warning recorded.
    """

    def __init__(self, path: str, reason: str, line: Optional[int] = None):
        location = f"{path}:{line}" if line else path
        super().__init__(f"Cannot parse {location}: {reason}")
        self.path = path
        self.reason = reason
        self.line = line


class DuplicatePlatformError(MTRError):
    """Raised when a platform name is already present in the configuration"""

    def __init__(self, name: str):
        message = f"Platform '{name}' already exists"
        help_text = (
            f"Choose another name, or run 'mtr glue remove {name}' first "
            "to replace it with a fresh record"
        )
        super().__init__(message, help_text)
        self.name = name


class NotFoundError(MTRError):
    """Raised when an operation names a platform that is not configured"""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        message = f"Platform '{name}' not found"
        help_text = "Run 'mtr glue list' to see configured platforms"
        if available:
            help_text += "\n\nConfigured platforms:\n"
            help_text += "\n".join(f"  - {platform}" for platform in available)
        super().__init__(message, help_text)
        self.name = name
        self.available = available


class ConfigCorruptError(MTRError):
    """Raised when the persisted configuration cannot be fully parsed

    The process refuses to proceed rather than guess at partial content.
    """

    exit_code = 3

    def __init__(self, config_path: str, reason: str):
        message = f"Configuration file '{config_path}' is corrupt: {reason}"
        help_text = (
            "Restore the file from version control or fix it by hand.\n"
            "MTR never loads a partially readable configuration."
        )
        super().__init__(message, help_text)
        self.config_path = config_path
        self.reason = reason


class RuntimeDependencyError(MTRError):
    """Raised when a required external toolchain binary is missing"""

    def __init__(
        self,
        tool_name: str,
        required_for: Optional[str] = None,
        install_instructions: Optional[str] = None
    ):
        message = f"Required tool '{tool_name}' not found in PATH"

        if required_for:
            message += f" (required for {required_for})"

        help_text = f"Install '{tool_name}' before running this command"

        if install_instructions:
            help_text += f"\n\n{install_instructions}"
        else:
            install_hints = {
                "cargo": "Install from: https://rustup.rs/",
                "cross": "Install with: cargo install cross",
                "probe-rs": "Install with: cargo install probe-rs-tools",
            }

            if tool_name in install_hints:
                help_text += f"\n\n{install_hints[tool_name]}"

        super().__init__(message, help_text)
        self.tool_name = tool_name
        self.required_for = required_for


class ScaffoldError(MTRError):
    """Raised when the scaffolder cannot create or update a generated unit"""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Cannot scaffold '{path}': {reason}",
            "Run 'mtr glue validate' to see the required workspace changes"
        )
        self.path = path
        self.reason = reason
