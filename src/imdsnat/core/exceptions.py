"""Custom exceptions for imdsnat.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from typing import Optional


class ImdsNatError(Exception):
    """Base exception for all imdsnat errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(ImdsNatError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class MissingConfigurationError(ConfigurationError):
    """A required configuration value was not supplied.

    The host IP in particular is never auto-detected; hosts with several
    addresses make that choice ambiguous.
    """

    def __init__(
        self,
        message: str,
        *,
        setting: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.setting = setting


class ValidationError(ImdsNatError):
    """Input validation errors.

    Raised when:
    - Port out of range
    - Invalid IP address or CIDR notation
    - Malformed interface name
    """
    exit_code = 3


class ExecutionError(ImdsNatError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code and the caller asked to check it
    - Command times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        output: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if output:
            details.append(f"Output: {output.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.output = output


class PrerequisiteError(ImdsNatError):
    """Missing prerequisites on the host."""
    exit_code = 6


class InterfaceNotFoundError(PrerequisiteError):
    """A non-wildcard host interface does not exist."""

    def __init__(
        self,
        interface: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(
            f"Network interface not found: {interface}",
            hint=hint,
            details=details,
        )
        self.interface = interface


class ToolUnavailableError(PrerequisiteError):
    """The nft management tool is not on the execution path."""

    def __init__(
        self,
        tool: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(
            f"{tool} command not found",
            hint=hint or f"Install the nftables package that provides '{tool}'",
            details=details,
        )
        self.tool = tool


class NftablesError(ImdsNatError):
    """nftables command failures.

    Keeps the failing command and the engine's combined output so the
    operator sees exactly what nft reported.
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        output: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if command:
            details.append(f"Command: {command}")
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if output:
            details.append(f"Output: {output.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.output = output


class ProvisioningError(NftablesError):
    """Table or chain creation failed for a reason other than already-exists."""


class QueryError(NftablesError):
    """Listing the redirect chain failed for a reason other than absence."""


class InstallError(NftablesError):
    """Appending the redirect rule failed."""
