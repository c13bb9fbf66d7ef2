"""Domain model for managed accounts and their cached sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

REFRESH_BUFFER_MS = 15 * 60 * 1000


@dataclass(slots=True)
class Account:
    """External identity whose portal session is kept alive."""

    account_id: str
    credential: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    status: Optional[str] = None

    def __post_init__(self) -> None:
        self.account_id = str(self.account_id).strip()
        if not self.name:
            self.name = self.credential.get("phone") or self.account_id

    @property
    def is_active(self) -> bool:
        # Only an explicit "inactive" marks an account as inactive.
        if not self.status:
            return True
        return "inactive" not in str(self.status).lower()

    @classmethod
    def from_document(cls, payload: Mapping[str, Any]) -> Optional["Account"]:
        account_id = payload.get("_id") or payload.get("id")
        phone = payload.get("phone") or ""
        password = payload.get("password") or ""
        if not account_id or not phone or not password:
            return None

        status = payload.get("status")
        if not status:
            nested = payload.get("alfaData")
            if isinstance(nested, Mapping):
                status = nested.get("status")

        return cls(
            account_id=str(account_id),
            credential={"phone": str(phone), "password": str(password)},
            name=payload.get("name") or str(phone),
            status=str(status) if status else None,
        )


@dataclass(slots=True)
class SessionRecord:
    """Cached proof-of-authentication for one account (timestamps in epoch ms)."""

    account_id: str
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    expiry_ts: Optional[int] = None
    next_refresh_ts: Optional[int] = None
    saved_at: Optional[int] = None

    @property
    def has_cookies(self) -> bool:
        return bool(self.cookies)

    def best_expiry(self) -> Optional[int]:
        if self.expiry_ts is not None:
            return self.expiry_ts
        return self.next_refresh_ts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "cookies": list(self.cookies),
            "expiry_ts": self.expiry_ts,
            "next_refresh_ts": self.next_refresh_ts,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SessionRecord":
        return cls(
            account_id=str(payload.get("account_id", "")),
            cookies=list(payload.get("cookies") or []),
            expiry_ts=_optional_int(payload.get("expiry_ts")),
            next_refresh_ts=_optional_int(payload.get("next_refresh_ts")),
            saved_at=_optional_int(payload.get("saved_at")),
        )


def next_refresh_for(expiry_ts: Optional[int], *, now_ms: int, buffer_ms: int = REFRESH_BUFFER_MS) -> Optional[int]:
    """Deadline that precedes ``expiry_ts`` by the refresh buffer, never before ``now_ms``."""
    if expiry_ts is None:
        return None
    return max(expiry_ts - buffer_ms, now_ms)


@dataclass(slots=True)
class ScheduleEntry:
    account_id: str
    deadline: int


@dataclass(slots=True)
class DueAccount:
    account: Account
    deadline: int


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


__all__ = [
    "REFRESH_BUFFER_MS",
    "Account",
    "SessionRecord",
    "ScheduleEntry",
    "DueAccount",
    "next_refresh_for",
]
