"""Collaborator contracts consumed by the refresh scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from models.account import Account, SessionRecord


@dataclass(slots=True)
class LoginResult:
    success: bool
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    expiry_ts: Optional[int] = None


@dataclass(slots=True)
class KeepAliveResult:
    """Outcome of a keep-alive check.

    ``success`` means the session was extended, ``needs_full_refresh`` means
    the session is definitely gone; neither flag set is inconclusive.
    """

    success: bool
    needs_full_refresh: bool = False
    expiry_ts: Optional[int] = None
    status_code: int = 0
    error: Optional[str] = None


class LoginClient(Protocol):
    async def login(self, account: Account) -> LoginResult:
        ...


class KeepAliveClient(Protocol):
    async def keep_alive(self, account_id: str) -> KeepAliveResult:
        ...


class SessionStore(Protocol):
    async def get(self, account_id: str) -> Optional[SessionRecord]:
        ...

    async def save(
        self,
        account_id: str,
        cookies: List[Dict[str, Any]],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SessionRecord:
        ...

    async def invalidate(self, account_id: str, at_ms: int) -> None:
        ...

    async def reschedule(self, account_id: str, at_ms: int) -> None:
        ...

    def is_expired(self, cookies: Optional[List[Dict[str, Any]]]) -> bool:
        ...

    def min_expiration_seconds(self, cookies: Optional[List[Dict[str, Any]]]) -> Optional[int]:
        ...


class ScheduleIndex(Protocol):
    """Ordered deadlines plus individually keyed copies for fallback reads."""

    async def add(self, account_id: str, deadline: int) -> None:
        ...

    async def remove(self, account_id: str) -> None:
        ...

    async def range_by_score(self, minimum: float, maximum: float) -> List[Tuple[str, int]]:
        ...

    async def first(self) -> Optional[Tuple[str, int]]:
        ...

    async def get_deadline(self, account_id: str) -> Optional[int]:
        ...

    async def set_deadline(self, account_id: str, deadline: int) -> None:
        ...

    async def delete_deadline(self, account_id: str) -> None:
        ...


class AccountDirectory(Protocol):
    async def list_active_accounts(self) -> List[Account]:
        ...

    async def list_all_accounts(self) -> List[Account]:
        ...


class LockStore(Protocol):
    async def has_manual_refresh_lock(self, account_id: str) -> bool:
        ...

    async def acquire_manual_refresh_lock(self, account_id: str, ttl: int = 300) -> bool:
        ...

    async def release_manual_refresh_lock(self, account_id: str) -> None:
        ...

    async def set_flag(self, key: str, ttl: int) -> None:
        ...

    async def get_flag(self, key: str) -> bool:
        ...

    async def clear_flag(self, key: str) -> None:
        ...

    async def get_value(self, key: str) -> Optional[str]:
        ...

    async def set_value(self, key: str, value: str, ttl: int) -> None:
        ...


class Clock(Protocol):
    def now_ms(self) -> int:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


__all__ = [
    "LoginResult",
    "KeepAliveResult",
    "LoginClient",
    "KeepAliveClient",
    "SessionStore",
    "ScheduleIndex",
    "AccountDirectory",
    "LockStore",
    "Clock",
]
