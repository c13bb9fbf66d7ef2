"""
Refresh worker error hierarchy for clear classification in logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RefresherError(Exception):
    """Base class for all refresh worker errors."""

    def __init__(
        self,
        message: str,
        *,
        account_id: Optional[str] = None,
        phase: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.account_id = account_id
        self.phase = phase
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        """Serializable representation for logs."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "account_id": self.account_id,
            "phase": self.phase,
            "details": self.details,
        }


class LoginError(RefresherError):
    """Raised when a full login cannot produce a usable session."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        kwargs.setdefault("phase", "full-login")
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class CacheUnavailable(RefresherError):
    """Raised when the Redis cache layer cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation
        self.key = key
        if operation is not None:
            self.details["operation"] = operation
        if key is not None:
            self.details["key"] = key


class ScheduleIndexUnavailable(RefresherError):
    """Raised when the ordered refresh schedule index cannot be queried."""

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("phase", "schedule-scan")
        super().__init__(message, **kwargs)


class SessionStoreError(RefresherError):
    """Raised during read/write of cached session cookies."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation
        if operation is not None:
            self.details["operation"] = operation


class ConfigError(RefresherError):
    """Raised on missing/invalid configuration values."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        section: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.key = key
        self.section = section
        if key is not None:
            self.details["key"] = key
        if section is not None:
            self.details["section"] = section
