# src/roomrelay/logging_config.py
"""
Logging configuration for RoomRelay.

Provides a single entry point, ``configure_logging``, that installs a
console handler and, optionally, a file handler on the root logger and
applies per-component log levels. Library modules only ever call
``logging.getLogger(__name__)``; handlers are the application's business.

File logging supports two modes:

    **single**: one persistent file with ``RotatingFileHandler`` rotation
    once it exceeds ``rotation_max_bytes``.

    **per_run**: a new timestamped file for every process.

Usage:
    from roomrelay.config import load_relay_config
    from roomrelay.logging_config import configure_logging

    config = load_relay_config()
    configure_logging(config.logging)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

from .config.models import LoggingConfig

logger = logging.getLogger(__name__)


def _resolve_level(level: Union[str, int], fallback: int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else fallback


class RelayLoggingManager:
    """
    Singleton manager for the logging configuration.

    Ensures handlers are only installed once (unless forced) and allows
    runtime adjustment of component levels.
    """
    _instance: Optional["RelayLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Optional[Path] = None
    _console_handler: Optional[logging.Handler] = None
    _file_handler: Optional[logging.Handler] = None

    def __new__(cls) -> "RelayLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        """Check if logging has been configured."""
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Optional[Path]:
        """Get the current log file path, if file logging is active."""
        return cls._log_file_path

    def configure(
        self,
        config: LoggingConfig,
        app_name: str = "roomrelay",
        force_reconfigure: bool = False,
    ) -> Optional[Path]:
        """
        Install handlers on the root logger.

        Args:
            config: Validated logging section.
            app_name: Used in log file names.
            force_reconfigure: Replace handlers installed by an earlier call.

        Returns:
            Path to the log file if file logging is enabled, otherwise None.
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        root_logger = logging.getLogger()
        for handler in (self._console_handler, self._file_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self._console_handler = None
        self._file_handler = None
        RelayLoggingManager._log_file_path = None

        root_logger.setLevel(logging.DEBUG)

        if config.console_enabled:
            self._console_handler = logging.StreamHandler(sys.stderr)
            self._console_handler.setLevel(_resolve_level(config.console_level, logging.INFO))
            self._console_handler.setFormatter(logging.Formatter(config.console_format))
            root_logger.addHandler(self._console_handler)

        if config.file_enabled:
            self._file_handler, log_file_path = self._create_file_handler(config, app_name)
            if self._file_handler:
                root_logger.addHandler(self._file_handler)
                RelayLoggingManager._log_file_path = log_file_path

        for component_name, level_str in config.components.items():
            level = logging.getLevelName(level_str.upper())
            if isinstance(level, int):
                logging.getLogger(component_name).setLevel(level)

        RelayLoggingManager._configured = True
        logger.debug(f"Logging configured (console={config.console_enabled}, file={self._log_file_path})")
        return self._log_file_path

    def _create_file_handler(
        self, config: LoggingConfig, app_name: str
    ) -> tuple[Optional[logging.Handler], Optional[Path]]:
        """Create the file handler for the configured mode."""
        log_dir = Path(os.path.expanduser(config.file_directory))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if config.file_mode == "single":
            try:
                filename = config.file_single_name.format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.rotation_max_bytes,
                    backupCount=config.rotation_backup_count,
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            timestamp = datetime.now()
            try:
                filename = config.file_name_pattern.format(app=app_name, timestamp=timestamp)
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_resolve_level(config.file_level, logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.file_format))
        return handler, log_file_path

    def set_component_level(self, component: str, level: Union[str, int]) -> None:
        """Change a specific component's log level at runtime."""
        logging.getLogger(component).setLevel(_resolve_level(level, logging.INFO))


def configure_logging(
    config: Union[LoggingConfig, dict[str, Any], None] = None,
    app_name: str = "roomrelay",
    force_reconfigure: bool = False,
) -> Optional[Path]:
    """
    Configure logging for the application.

    Call this early in application startup. Library code never calls it.

    Args:
        config: A LoggingConfig, a raw ``[logging]`` dictionary, or None for defaults.
        app_name: Name of the application (used in log file names).
        force_reconfigure: If True, reconfigure even if already configured.

    Returns:
        Path to the log file if file logging is enabled.
    """
    if config is None:
        config = LoggingConfig()
    elif isinstance(config, dict):
        config = LoggingConfig(**config)
    return RelayLoggingManager().configure(config, app_name=app_name, force_reconfigure=force_reconfigure)


def set_component_level(component: str, level: Union[str, int]) -> None:
    """Change a component's log level at runtime."""
    RelayLoggingManager().set_component_level(component, level)
