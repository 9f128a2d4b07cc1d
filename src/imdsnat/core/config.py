"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides
- Configuration initialization and display

Precedence, highest first: explicit overrides (CLI options), environment
variables, the config file, built-in defaults.
"""

import os
from pathlib import Path
from typing import Any, Callable, Optional

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from imdsnat.core.exceptions import ConfigurationError, ValidationError
from imdsnat.core.validation import (
    validate_address_or_cidr,
    validate_interface_name,
    validate_ip_address,
    validate_port,
)


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/imdsnat/config.yaml")
DEFAULT_LOG_DIR = Path("/var/log/imdsnat")
DEFAULT_AUDIT_LOG_PATH = DEFAULT_LOG_DIR / "audit.log"

DEFAULT_APP_PORT = "8181"
DEFAULT_METADATA_ADDRESS = "169.254.169.254"
DEFAULT_HOST_INTERFACE = "docker0"


def _check(validator: Callable[[Any], Any], value: Any) -> Any:
    # pydantic only wraps ValueError into its own ValidationError
    try:
        return validator(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


class RedirectConfig(BaseModel):
    """Desired redirect parameters."""

    app_port: str = DEFAULT_APP_PORT
    metadata_address: str = DEFAULT_METADATA_ADDRESS
    host_interface: str = DEFAULT_HOST_INTERFACE
    host_ip: str = ""
    nft_timeout: Optional[int] = None

    @field_validator("app_port", mode="before")
    @classmethod
    def validate_app_port(cls, v: Any) -> str:
        return _check(validate_port, v)

    @field_validator("metadata_address")
    @classmethod
    def validate_metadata_address(cls, v: str) -> str:
        return _check(validate_address_or_cidr, v)

    @field_validator("host_interface")
    @classmethod
    def validate_host_interface(cls, v: str) -> str:
        return _check(validate_interface_name, v)

    @field_validator("host_ip")
    @classmethod
    def validate_host_ip(cls, v: str) -> str:
        # Empty is allowed here; reconciliation reports it as missing
        if not v.strip():
            return ""
        return _check(validate_ip_address, v)

    @field_validator("nft_timeout")
    @classmethod
    def validate_nft_timeout(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("nft_timeout must be a positive number of seconds")
        return v


class AuditConfig(BaseModel):
    """Audit log configuration."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH


class ImdsNatConfig(BaseModel):
    """Root configuration model, loaded from /etc/imdsnat/config.yaml."""

    redirect: RedirectConfig = Field(default_factory=RedirectConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "ImdsNatConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: imdsnat config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
            )

        try:
            return cls(**data)
        except pydantic.ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {path}",
                details=[err["msg"] for err in e.errors()],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "ImdsNatConfig":
        """Load configuration, falling back to defaults if file doesn't exist.

        Args:
            path: Path to configuration file (uses default if None)

        Returns:
            Loaded or default configuration
        """
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvironmentOverrides(BaseSettings):
    """Redirect settings taken from IMDSNAT_* environment variables."""

    app_port: Optional[str] = Field(None, alias="IMDSNAT_APP_PORT")
    metadata_address: Optional[str] = Field(None, alias="IMDSNAT_METADATA_ADDRESS")
    host_interface: Optional[str] = Field(None, alias="IMDSNAT_HOST_INTERFACE")
    host_ip: Optional[str] = Field(None, alias="IMDSNAT_HOST_IP")

    class Config:
        extra = "ignore"

    def as_dict(self) -> dict[str, str]:
        """Return only the variables that are set."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[ImdsNatConfig] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or ImdsNatConfig.load_or_default(self.config_path)
        self._env = EnvironmentOverrides()

    @property
    def config(self) -> ImdsNatConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def audit(self) -> AuditConfig:
        """Shortcut to audit config."""
        return self._config.audit

    def redirect(self, **overrides: Any) -> RedirectConfig:
        """Resolve the effective redirect settings.

        Args:
            **overrides: Explicit values (e.g. CLI options); None is ignored

        Returns:
            Validated RedirectConfig

        Raises:
            ConfigurationError: If the merged values are invalid
        """
        data = self._config.redirect.model_dump()
        data.update(self._env.as_dict())
        data.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return RedirectConfig(**data)
        except pydantic.ValidationError as e:
            raise ConfigurationError(
                "Invalid redirect settings",
                details=[err["msg"] for err in e.errors()],
            ) from e


def get_example_config() -> str:
    """Generate example configuration file content."""
    return f"""# imdsnat configuration
# Every redirect value can also be set with IMDSNAT_<NAME> environment
# variables (e.g. IMDSNAT_HOST_IP) or command-line options.

redirect:
  # Port the local metadata proxy listens on
  app_port: "{DEFAULT_APP_PORT}"
  # Metadata service address (IP or CIDR) to intercept on TCP port 80
  metadata_address: {DEFAULT_METADATA_ADDRESS}
  # Interface carrying pod traffic; a trailing + matches a prefix (cali+)
  host_interface: {DEFAULT_HOST_INTERFACE}
  # Address the proxy listens on; required, never auto-detected
  host_ip: ""
  # Optional per-command timeout for nft in seconds
  # nft_timeout: 30

audit:
  enabled: true
  log_path: {DEFAULT_AUDIT_LOG_PATH}
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o600)
