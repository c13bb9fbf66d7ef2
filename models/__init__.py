"""Model exports for the session refresh worker."""

from .account import (
    REFRESH_BUFFER_MS,
    Account,
    DueAccount,
    ScheduleEntry,
    SessionRecord,
    next_refresh_for,
)

__all__ = [
    "REFRESH_BUFFER_MS",
    "Account",
    "DueAccount",
    "ScheduleEntry",
    "SessionRecord",
    "next_refresh_for",
]
