# src/siteagent/core/config.py
"""
Configuration schema and loading for the site agent.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from siteagent.contracts.bootstrap import KEY_CA_CERT, KEY_CERT, KEY_KEY, KEY_TOKEN
from siteagent.contracts.enums import SecretBackend
from siteagent.contracts.retry import BACKOFF_COEFFICIENT, ActivityOptions, RetryPolicy


class RetrySettings(BaseModel):
    """Retry behavior for one workflow phase.

    max_attempts is the TOTAL number of tries. The backoff coefficient is
    fixed at 2.0; it is exposed only so a misconfiguration fails loudly.
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=7, gt=0, description="Total attempts, first try included")
    initial_interval_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_interval_seconds: float = Field(default=60.0, gt=0, description="Maximum backoff delay")
    backoff_coefficient: float = Field(default=BACKOFF_COEFFICIENT, description="Exponential backoff base")

    @field_validator("backoff_coefficient")
    @classmethod
    def validate_fixed_coefficient(cls, v: float) -> float:
        if v != BACKOFF_COEFFICIENT:
            raise ValueError(f"backoff_coefficient is fixed at {BACKOFF_COEFFICIENT}")
        return v

    @model_validator(mode="after")
    def validate_interval_order(self) -> "RetrySettings":
        if self.max_interval_seconds < self.initial_interval_seconds:
            raise ValueError("max_interval_seconds must be >= initial_interval_seconds")
        return self

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            initial_interval=self.initial_interval_seconds,
            backoff_coefficient=self.backoff_coefficient,
            maximum_interval=self.max_interval_seconds,
            maximum_attempts=self.max_attempts,
        )


class WorkflowSettings(BaseModel):
    """Execution settings for the two-phase engine and the local substrate."""

    model_config = {"frozen": True}

    activity_timeout_seconds: float = Field(default=60.0, gt=0, description="Start-to-close timeout for backend invocation")
    publish_timeout_seconds: float = Field(default=60.0, gt=0, description="Start-to-close timeout for publish")
    max_workers: int = Field(default=16, gt=0, description="Concurrent workflows on the local worker pool")
    retry: RetrySettings = Field(default_factory=RetrySettings)
    publish_retry: RetrySettings = Field(default_factory=RetrySettings)

    def activity_options(self) -> ActivityOptions:
        return ActivityOptions(start_to_close_timeout=self.activity_timeout_seconds, retry_policy=self.retry.to_policy())

    def publish_options(self) -> ActivityOptions:
        return ActivityOptions(start_to_close_timeout=self.publish_timeout_seconds, retry_policy=self.publish_retry.to_policy())


class BackendSettings(BaseModel):
    """Site controller connection settings."""

    model_config = {"frozen": True}

    address: str = Field(description="Base URL of the site controller API")
    tls_enabled: bool = Field(default=True, description="Use mutual TLS with the downloaded site credentials")
    server_name: str | None = Field(default=None, description="TLS server name override")
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    cert_poll_interval_seconds: float = Field(default=30.0, gt=0, description="How often to check certificates for rotation")
    page_size: int = Field(default=100, gt=0, description="Page size for list calls")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("backend.address must be an http(s) URL")
        return v.rstrip("/")


class ControlPlaneSettings(BaseModel):
    """Remote control plane the agent publishes outcomes to."""

    model_config = {"frozen": True}

    url: str = Field(description="Base URL of the control plane workflow API")
    namespace: str = Field(default="cloud", description="Namespace publish workflows run in")
    publish_queue: str = Field(default="cloud", description="Task queue for publish workflows")
    subscribe_queue: str = Field(default="site", description="Task queue this agent serves")
    tls_enabled: bool = Field(default=True)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("control_plane.url must be an http(s) URL")
        return v.rstrip("/")


class BootstrapSettings(BaseModel):
    """Credential bootstrap and rotation settings.

    File names inside secret_dir are fixed by the bootstrap secret layout:
    site-uuid, otp, creds-url, cacert.
    """

    model_config = {"frozen": True}

    enabled: bool = Field(default=True, description="Run bootstrap on the master replica")
    secret_dir: Path = Field(default=Path("/etc/sitereg"), description="Mounted bootstrap secret directory")
    bootstrap_secret_name: str = Field(default="bootstrap-info")
    credentials_dir: Path = Field(default=Path("/etc/temporal-certs"), description="Directory holding downloaded credentials")
    credentials_secret_name: str = Field(default="site-credentials")
    secret_backend: SecretBackend = Field(default=SecretBackend.FILE)
    keyvault_url: str | None = Field(default=None, description="Azure Key Vault URL (secret_backend=keyvault)")
    download_timeout_seconds: float = Field(default=60.0, gt=0)
    download_max_attempts: int = Field(default=5, gt=0)
    token_file: str = Field(default="otp")
    ca_cert_file: str = Field(default="ca.crt")
    cert_file: str = Field(default="tls.crt")
    key_file: str = Field(default="tls.key")

    @model_validator(mode="after")
    def validate_keyvault_url(self) -> "BootstrapSettings":
        if self.secret_backend == SecretBackend.KEYVAULT and not self.keyvault_url:
            raise ValueError("bootstrap.keyvault_url is required when secret_backend is 'keyvault'")
        return self

    def credential_file_names(self) -> dict[str, str]:
        """Credential secret keys mapped to file names in credentials_dir."""
        return {
            KEY_TOKEN: self.token_file,
            KEY_CA_CERT: self.ca_cert_file,
            KEY_CERT: self.cert_file,
            KEY_KEY: self.key_file,
        }

    @property
    def ca_cert_path(self) -> Path:
        return self.credentials_dir / self.ca_cert_file

    @property
    def cert_path(self) -> Path:
        return self.credentials_dir / self.cert_file

    @property
    def key_path(self) -> Path:
        return self.credentials_dir / self.key_file


class LoggingSettings(BaseModel):
    """Log output settings."""

    model_config = {"frozen": True}

    level: str = Field(default="INFO")
    json_output: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v.upper()


class SiteAgentSettings(BaseModel):
    """Top-level site agent configuration.

    This is the single source of truth for agent configuration.
    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    site_id: str | None = Field(default=None, description="Site identifier; defaults to the bootstrap site UUID")
    is_master: bool = Field(default=True, description="Only the master replica runs bootstrap and rotation")
    inventory_cron: str | None = Field(default=None, description="Cron expression for inventory collection")

    backend: BackendSettings
    control_plane: ControlPlaneSettings
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    bootstrap: BootstrapSettings = Field(default_factory=BootstrapSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("inventory_cron")
    @classmethod
    def validate_cron(cls, v: str | None) -> str | None:
        if v is None:
            return v
        from croniter import croniter

        if not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: {v!r}")
        return v


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # Unset with no default: keep the literal so validation reports it
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lowercase_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lowercase_keys(v) for k, v in value.items()}
    return value


def load_settings(config_path: Path) -> SiteAgentSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SITEAGENT_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: SITEAGENT_BACKEND__ADDRESS for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated SiteAgentSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="SITEAGENT",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lowercase_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return SiteAgentSettings(**raw_config)
