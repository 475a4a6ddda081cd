"""
Configuration module for the RoomRelay library.

Settings are validated with Pydantic models and loaded from TOML: the
packaged ``default_config.toml`` first, then an optional user file, then
an optional dictionary of overrides.
"""

from .models import (
    ExchangeConfig,
    LoggingConfig,
    OllamaConfig,
    RelayConfig,
    RetentionConfig,
    SessionsConfig,
    load_relay_config,
)

__all__ = [
    "ExchangeConfig",
    "LoggingConfig",
    "OllamaConfig",
    "RelayConfig",
    "RetentionConfig",
    "SessionsConfig",
    "load_relay_config",
]
