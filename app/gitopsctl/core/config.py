"""Controller configuration and settings.

This module provides the configuration model and I/O functions for the
gitopsctl controller: scheduling, cluster connection, manifest source
access and credential lookup.

Configuration is stored in ~/.config/gitopsctl/config.toml
"""

import logging
import tomllib
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from gitopsctl.core.backoff import RetryPolicy
from gitopsctl.core.paths import get_config_path
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.utils.files import atomic_write_toml

logger = logging.getLogger(__name__)

# Secret data key holding the source access token
TOKEN_SECRET_KEY = "token"

StoreBackend = Literal["file", "kubernetes"]


class ControllerSettings(BaseModel):
    """Scheduling and apply behaviour.

    Attributes:
        workers: Maximum number of passes running concurrently.
        poll_seconds: Interval between scans of the application store.
        retry_base_seconds: Delay after the first failed pass.
        retry_max_seconds: Upper bound for retry delays.
        default_namespace: Namespace for target resources that declare none.
        store: Backend holding Application records.
        dry_run: Send writes as server-side dry runs.
    """

    model_config = ConfigDict(extra="forbid")

    workers: Annotated[int, Field(ge=1, le=64, description="Concurrent passes")] = 4
    poll_seconds: Annotated[
        float,
        Field(gt=0, description="Seconds between application store scans"),
    ] = 5.0
    retry_base_seconds: Annotated[
        float,
        Field(gt=0, description="Delay after the first failed pass"),
    ] = 10.0
    retry_max_seconds: Annotated[
        float,
        Field(gt=0, description="Upper bound for retry delays"),
    ] = 300.0
    default_namespace: Annotated[
        str,
        Field(min_length=1, description="Fallback namespace for target resources"),
    ] = DEFAULT_NAMESPACE
    store: Annotated[StoreBackend, Field(description="Application record backend")] = "file"
    dry_run: Annotated[bool, Field(description="Server-side dry run for writes")] = False

    @model_validator(mode="after")
    def validate_retry_bounds(self) -> "ControllerSettings":
        """Validate that the retry cap is not below the base delay."""
        if self.retry_max_seconds < self.retry_base_seconds:
            msg = "retry_max_seconds must not be smaller than retry_base_seconds"
            raise ValueError(msg)
        return self

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy for failed passes."""
        return RetryPolicy(
            base_seconds=self.retry_base_seconds,
            max_seconds=self.retry_max_seconds,
        )


class ClusterConfig(BaseModel):
    """Kubernetes connection settings.

    Attributes:
        in_cluster: Force (True) or forbid (False) in-cluster config.
            None tries in-cluster first, then kubeconfig.
        kubeconfig: Path to a kubeconfig file.
        context: Kubeconfig context to use.
    """

    model_config = ConfigDict(extra="forbid")

    in_cluster: bool | None = None
    kubeconfig: str | None = None
    context: str | None = None


class SourceConfig(BaseModel):
    """Manifest source access settings."""

    model_config = ConfigDict(extra="forbid")

    api_url: Annotated[str, Field(description="GitHub REST API base URL")] = (
        "https://api.github.com"
    )
    host: Annotated[str, Field(description="Repository host served by the API")] = "github.com"
    timeout_seconds: Annotated[float, Field(gt=0, le=600)] = 30.0


class CredentialsConfig(BaseModel):
    """Where the source access token comes from.

    A referenced Secret takes precedence over the environment variable.
    The token is read from the Secret's ``token`` key.

    Attributes:
        token_env: Environment variable holding the token.
        secret_name: Name of a Secret holding the token.
        secret_namespace: Namespace of that Secret.
    """

    model_config = ConfigDict(extra="forbid")

    token_env: str = "GITHUB_TOKEN"
    secret_name: str | None = None
    secret_namespace: str = DEFAULT_NAMESPACE


class ControllerConfig(BaseModel):
    """Complete gitopsctl configuration."""

    model_config = ConfigDict(extra="forbid")

    controller: Annotated[ControllerSettings, Field(default_factory=ControllerSettings)]
    cluster: Annotated[ClusterConfig, Field(default_factory=ClusterConfig)]
    source: Annotated[SourceConfig, Field(default_factory=SourceConfig)]
    credentials: Annotated[CredentialsConfig, Field(default_factory=CredentialsConfig)]


class ConfigFileError(Exception):
    """Raised when the config file cannot be read or is invalid."""


def load_config(path: Path | None = None) -> ControllerConfig:
    """Load controller configuration from a TOML file.

    A missing file yields the default configuration.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated ControllerConfig object.

    Raises:
        ConfigFileError: If the file cannot be read, the TOML syntax is
            invalid, or the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        logger.debug("No config file at %s, using defaults", config_path)
        return ControllerConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigFileError(f"Invalid TOML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"Failed to read config {config_path}: {e}") from e

    try:
        return ControllerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigFileError(f"Invalid config content in {config_path}: {e}") from e


def save_config(config: ControllerConfig, path: Path | None = None) -> Path:
    """Save controller configuration to a TOML file.

    Only non-None values are written.

    Args:
        config: The configuration to save.
        path: Destination path. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigFileError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    try:
        return atomic_write_toml(config_path, config.model_dump(exclude_none=True))
    except OSError as e:
        raise ConfigFileError(f"Failed to write config {config_path}: {e}") from e
