# src/roomrelay/config/models.py
"""
Pydantic models for RoomRelay configuration validation.

The configuration hierarchy:
    RelayConfig (root)
    ├── OllamaConfig     - Backend endpoint, credential and default model
    ├── SessionsConfig   - Per-room history bound and persona
    ├── ExchangeConfig   - Idle / hard deadline policy
    ├── RetentionConfig  - Background sweep of aged messages
    └── LoggingConfig    - Console / file logging

Usage:
    >>> from roomrelay.config import load_relay_config
    >>> config = load_relay_config()  # packaged defaults
    >>> config.sessions.max_history
    25

    >>> config = load_relay_config(config_dict={"exchange": {"idle_timeout": 30}})
    >>> config.exchange.hard_timeout
    45.0
"""

from __future__ import annotations

import importlib.resources
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigError

# =============================================================================
# BACKEND CONFIGURATION
# =============================================================================


class OllamaConfig(BaseModel):
    """
    Configuration for the shared Ollama backend connection.

    Examples:
        >>> OllamaConfig().default_model
        'llama3.2'
    """

    host: str | None = Field(
        default=None,
        description="Ollama server URL; the ollama library default is used when unset",
    )
    api_key: str | None = Field(
        default=None,
        description=(
            "Bearer credential sent in the Authorization header. "
            "Environment variable references ($VAR / ${VAR}) are expanded."
        ),
    )
    default_model: str = Field(
        default="llama3.2",
        min_length=1,
        description="Model used when neither start() nor a request names one",
    )
    request_timeout: float | None = Field(
        default=None,
        gt=0,
        description="HTTP client timeout in seconds (None keeps the library default)",
    )
    log_raw_payloads: bool = Field(
        default=False,
        description="Log raw request payloads and stream chunks at DEBUG level",
    )
    autostart: bool = Field(
        default=False,
        description="Start the backend service when the API server boots",
    )

    @field_validator("api_key")
    @classmethod
    def expand_api_key_env_vars(cls, v: str | None) -> str | None:
        """Expand environment variable references; an empty result means no credential."""
        if v is None:
            return None
        expanded = os.path.expandvars(v)
        if not expanded or expanded.startswith("$"):
            return None
        return expanded


# =============================================================================
# SESSIONS CONFIGURATION
# =============================================================================


class SessionsConfig(BaseModel):
    """
    Configuration for the per-room session store.

    ``max_history`` bounds the stored turns: after each user append at most
    ``max_history - 1`` messages remain, leaving room for the assistant reply.
    """

    max_history: int = Field(
        default=25,
        ge=2,
        le=1000,
        description="History bound per room (persona excluded)",
    )
    persona: str | None = Field(
        default=None,
        description="System persona text; the built-in persona is used when unset",
    )
    serialize_rooms: bool = Field(
        default=False,
        description="Hold a per-room lock for the whole exchange so overlapping requests queue",
    )


# =============================================================================
# EXCHANGE CONFIGURATION
# =============================================================================


class ExchangeConfig(BaseModel):
    """
    Deadline policy applied to every exchange.

    The idle deadline is pushed back by each received output unit; the hard
    deadline is fixed at ``idle_timeout * hard_timeout_factor`` from start.
    """

    idle_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Seconds without backend activity before the exchange is cancelled",
    )
    hard_timeout_factor: float = Field(
        default=1.5,
        ge=1.0,
        le=10.0,
        description="Hard ceiling as a multiple of idle_timeout",
    )

    @property
    def hard_timeout(self) -> float:
        return self.idle_timeout * self.hard_timeout_factor


# =============================================================================
# RETENTION CONFIGURATION
# =============================================================================


class RetentionConfig(BaseModel):
    """Configuration for the background retention sweeper."""

    enabled: bool = Field(
        default=True,
        description="Run the periodic sweep of aged messages and empty rooms",
    )
    max_message_age: float = Field(
        default=2 * 60 * 60,
        gt=0,
        description="Messages older than this many seconds are dropped by a sweep",
    )
    sweep_interval: float = Field(
        default=60 * 60,
        gt=0,
        description="Seconds between sweep passes",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


class LoggingConfig(BaseModel):
    """Console and file logging settings (see roomrelay.logging_config)."""

    console_enabled: bool = True
    console_level: str = "INFO"
    console_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_enabled: bool = False
    file_level: str = "DEBUG"
    file_directory: str = "~/.local/share/roomrelay/logs"
    file_mode: str = Field(default="single", description="'single' (rotating) or 'per_run'")
    file_single_name: str = "{app}.log"
    file_name_pattern: str = "{app}_{timestamp:%Y%m%d_%H%M%S}.log"
    file_format: str = "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)"
    rotation_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    rotation_backup_count: int = Field(default=5, ge=0)
    components: dict[str, str] = Field(default_factory=dict)

    @field_validator("file_mode")
    @classmethod
    def validate_file_mode(cls, v: str) -> str:
        if v not in ("single", "per_run"):
            raise ValueError(f"file_mode must be 'single' or 'per_run', got '{v}'")
        return v


# =============================================================================
# ROOT
# =============================================================================


class RelayConfig(BaseModel):
    """
    Root configuration for RoomRelay.

    Usage:
        >>> config = RelayConfig(exchange=ExchangeConfig(idle_timeout=10))
        >>> config.exchange.hard_timeout
        15.0
    """

    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# HELPER: LOAD FROM TOML
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_default_config() -> dict[str, Any]:
    default_path = importlib.resources.files("roomrelay.config").joinpath("default_config.toml")
    with default_path.open("rb") as f:
        return tomllib.load(f)


def load_relay_config(
    config_dict: dict[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> RelayConfig:
    """
    Load RoomRelay configuration.

    Sources are merged in order: packaged defaults, the TOML file at
    ``config_path``, then ``config_dict``.

    Args:
        config_dict: Pre-parsed overrides.
        config_path: Path to a user TOML file.

    Returns:
        Validated RelayConfig instance.

    Raises:
        ConfigError: If the file is missing or unreadable, or validation fails.
    """
    try:
        data = _load_default_config()
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load packaged default configuration: {e}")

    if config_path is not None:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "rb") as f:
                data = _deep_merge(data, tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}")

    if config_dict:
        data = _deep_merge(data, config_dict)

    try:
        return RelayConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid RoomRelay configuration: {e}")
