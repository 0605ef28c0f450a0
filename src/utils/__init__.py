"""
Gomon Utilities Package.

Configuration, logging and errors shared by all packages.
Requires Python 3.11+.
"""

from utils.config import Settings, get_settings
from utils.errors import (
    EnumerationError,
    GomonError,
    LaunchError,
    WatchError,
    WatcherInitError,
)
from utils.logger import configure_logging, get_logger, LoggerMixin

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "LoggerMixin",
    "GomonError",
    "EnumerationError",
    "WatcherInitError",
    "WatchError",
    "LaunchError",
]
