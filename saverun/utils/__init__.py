"""
saverun Utilities Package.

Settings, logging and error types shared across all modules.
Requires Python 3.11+.
"""

from saverun.utils.config import Settings, get_settings
from saverun.utils.errors import (
    ConfigurationError,
    KillError,
    SaverunError,
    SpawnError,
    WatchSourceError,
)
from saverun.utils.logger import configure_logging, get_logger, logger, LoggerMixin

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "logger",
    "LoggerMixin",
    "SaverunError",
    "ConfigurationError",
    "WatchSourceError",
    "SpawnError",
    "KillError",
]
