"""
Refresh Worker - Logging Utility
================================

Loguru sinks driven by the ``logging:`` section of ``config/settings.yaml``:
console, rotating worker log, error-only log and an optional JSON log for
aggregation. ``LOG_LEVEL`` in the environment overrides the configured level.
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

DEFAULT_LOGGING: Dict[str, Any] = {
    "level": "INFO",
    "format": DEFAULT_FORMAT,
    "console": {"enabled": True, "colorize": True},
    "file": {
        "enabled": True,
        "path": "./logs/refresh-worker.log",
        "rotation": "100 MB",
        "retention": "14 days",
        "compression": "zip",
    },
    "error_file": {
        "enabled": True,
        "path": "./logs/errors.log",
        "level": "ERROR",
        "rotation": "50 MB",
        "retention": "30 days",
    },
    "json": {"enabled": False, "path": "./logs/refresh-worker.json"},
}


def _merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class LoggerSetup:
    """Installs the worker's loguru sinks."""

    def __init__(self, config_path: Optional[str] = None):
        self.config = self._load_config(config_path)
        self.level = os.getenv("LOG_LEVEL") or self.config["level"]
        self._install()

    def _load_config(self, config_path: Optional[str] = None) -> Dict[str, Any]:
        path = Path(config_path) if config_path else Path(__file__).parent.parent.parent / "config" / "settings.yaml"
        try:
            with open(path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except FileNotFoundError:
            loaded = {}
        return _merge(DEFAULT_LOGGING, loaded.get("logging") or {})

    def _file_sink(self, section: Dict[str, Any], *, level: str, **extra) -> None:
        path = Path(section["path"])
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            level=level,
            rotation=section.get("rotation", "100 MB"),
            retention=section.get("retention", "14 days"),
            **extra,
        )

    def _install(self) -> None:
        logger.remove()
        log_format = self.config.get("format") or DEFAULT_FORMAT

        console = self.config["console"]
        if console.get("enabled", True):
            logger.add(
                sys.stderr,
                format=log_format,
                level=self.level,
                colorize=console.get("colorize", True),
                backtrace=True,
                diagnose=False,
            )

        worker_file = self.config["file"]
        if worker_file.get("enabled", True):
            self._file_sink(
                worker_file,
                level=self.level,
                format=log_format,
                compression=worker_file.get("compression"),
                backtrace=True,
                diagnose=False,
            )

        errors = self.config["error_file"]
        if errors.get("enabled", True):
            self._file_sink(
                errors,
                level=errors.get("level", "ERROR"),
                format=log_format,
                backtrace=True,
                diagnose=False,
            )

        # Structured records for log aggregation
        json_sink = self.config["json"]
        if json_sink.get("enabled", False):
            self._file_sink(
                {**worker_file, **json_sink},
                level=self.level,
                format="{message}",
                serialize=True,
            )


_logger_setup: Optional[LoggerSetup] = None


def setup_logging(config_path: Optional[str] = None) -> LoggerSetup:
    """Install sinks from ``config_path`` (defaults to ``config/settings.yaml``)."""
    global _logger_setup
    _logger_setup = LoggerSetup(config_path)
    logger.info(f"Logging initialised at level {_logger_setup.level}")
    return _logger_setup


def get_logger(name: Optional[str] = None):
    """
    Logger bound to ``name`` (usually ``__name__``); installs default sinks on first use.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("[worker] next cycle in 300s")
    """
    if _logger_setup is None:
        setup_logging()
    return logger.bind(name=name) if name else logger
