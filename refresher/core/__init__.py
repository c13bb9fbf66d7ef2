"""Core infrastructure: configuration, errors, cache and cookie helpers."""

from .clock import SystemClock
from .errors import (
    CacheUnavailable,
    ConfigError,
    LoginError,
    RefresherError,
    ScheduleIndexUnavailable,
    SessionStoreError,
)

__all__ = [
    "SystemClock",
    "CacheUnavailable",
    "ConfigError",
    "LoginError",
    "RefresherError",
    "ScheduleIndexUnavailable",
    "SessionStoreError",
]
