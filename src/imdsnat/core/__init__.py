"""Core framework components for imdsnat."""

from imdsnat.core.exceptions import (
    ImdsNatError,
    ConfigurationError,
    MissingConfigurationError,
    ValidationError,
    ExecutionError,
    PrerequisiteError,
    InterfaceNotFoundError,
    ToolUnavailableError,
    NftablesError,
    ProvisioningError,
    QueryError,
    InstallError,
)

from imdsnat.core.context import ExecutionContext, create_context
from imdsnat.core.output import console, Console, Verbosity
from imdsnat.core.config import AppConfig, ImdsNatConfig, RedirectConfig
from imdsnat.core.audit import (
    AuditLogger,
    AuditEvent,
    AuditEventType,
    AuditResult,
    configure_audit_logger,
    get_audit_logger,
)
from imdsnat.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "ImdsNatError",
    "ConfigurationError",
    "MissingConfigurationError",
    "ValidationError",
    "ExecutionError",
    "PrerequisiteError",
    "InterfaceNotFoundError",
    "ToolUnavailableError",
    "NftablesError",
    "ProvisioningError",
    "QueryError",
    "InstallError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "ImdsNatConfig",
    "RedirectConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "configure_audit_logger",
    "get_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
