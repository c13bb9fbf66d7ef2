"""Refresh decision engine: skip, keep-alive, or full login for one account."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from models.account import Account, SessionRecord
from refresher.core.clock import SystemClock
from refresher.core.interfaces import (
    Clock,
    KeepAliveClient,
    LockStore,
    LoginClient,
    SessionStore,
)
from refresher.core.errors import LoginError
from refresher.refresh.locks import LoginGate, LoginSlotTimeout
from refresher.utils.logger import get_logger

log = get_logger(__name__)


class SkipReason(str, Enum):
    LOCKED = "locked"
    LOGIN_IN_PROGRESS = "login-in-progress"
    NOT_DUE = "not-due"
    SCHEDULED = "scheduled"


@dataclass(slots=True)
class Skipped:
    reason: SkipReason
    expiry_ts: Optional[int] = None
    detail: Optional[str] = None

    @property
    def scheduled(self) -> bool:
        return self.reason is SkipReason.SCHEDULED


@dataclass(slots=True)
class RefreshedViaKeepAlive:
    expiry_ts: Optional[int] = None


@dataclass(slots=True)
class RefreshedViaFullLogin:
    expiry_ts: Optional[int] = None


@dataclass(slots=True)
class Failed:
    error: str
    phase: Optional[str] = None


DecisionOutcome = Union[Skipped, RefreshedViaKeepAlive, RefreshedViaFullLogin, Failed]


@dataclass(slots=True)
class DueCheck:
    due: bool
    reason: str
    expiry_ts: Optional[int] = None
    expired: bool = False


def evaluate_due(
    session: Optional[SessionRecord],
    now_ms: int,
    is_expired: Callable[[Optional[List[dict]]], bool],
) -> DueCheck:
    """Only passed deadlines count; a deadline that is merely close never does."""
    if session is None or not session.has_cookies:
        return DueCheck(True, "no cookies", None, expired=True)

    expiry = session.expiry_ts
    if is_expired(session.cookies):
        return DueCheck(True, "cookies expired", expiry, expired=True)
    if expiry is not None and expiry <= now_ms:
        return DueCheck(True, f"expiry passed {int((now_ms - expiry) / 1000)}s ago", expiry, expired=True)

    next_refresh = session.next_refresh_ts
    if next_refresh is not None and next_refresh <= now_ms:
        return DueCheck(True, f"refresh overdue by {int((now_ms - next_refresh) / 1000)}s", expiry)

    return DueCheck(False, "not due", session.best_expiry())


class RefreshDecisionEngine:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        locks: LockStore,
        login_client: LoginClient,
        keep_alive_client: KeepAliveClient,
        gate: LoginGate,
        clock: Optional[Clock] = None,
        keep_alive_timeout: float = 7.5,
        login_timeout: float = 180.0,
        slot_wait_timeout: Optional[float] = 10.0,
        slot_retry_delay: float = 5.0,
    ) -> None:
        self.sessions = sessions
        self.locks = locks
        self.login_client = login_client
        self.keep_alive_client = keep_alive_client
        self.gate = gate
        self.clock = clock or SystemClock()
        self.keep_alive_timeout = keep_alive_timeout
        self.login_timeout = login_timeout
        self.slot_wait_timeout = slot_wait_timeout
        self.slot_retry_delay = slot_retry_delay

    async def decide(self, account: Account, *, force: bool = False) -> DecisionOutcome:
        account_id = account.account_id
        try:
            if await self.locks.has_manual_refresh_lock(account_id):
                log.debug(f"[refresh] SKIP {account_id} reason=manual refresh in progress")
                return Skipped(SkipReason.LOCKED)

            if await self.gate.is_login_in_progress(account_id):
                log.debug(f"[refresh] SKIP {account_id} reason=login already in progress")
                return Skipped(SkipReason.LOGIN_IN_PROGRESS)

            now = self.clock.now_ms()
            session = await self.sessions.get(account_id)
            check = evaluate_due(session, now, self.sessions.is_expired)

            if not check.due and not force:
                return Skipped(SkipReason.NOT_DUE, expiry_ts=check.expiry_ts)

            if check.expired:
                log.info(f"[refresh] RUN {account_id} method=full-login reason={check.reason}")
                return await self._full_login(account)

            reason = check.reason if check.due else "forced check"
            log.info(f"[refresh] RUN {account_id} method=keep-alive reason={reason}")
            return await self._keep_alive_then_login(account, force=force)
        except Exception as exc:  # noqa: BLE001
            log.error(f"[refresh] FAIL {account_id}: {exc}")
            return Failed(str(exc) or exc.__class__.__name__)

    async def _keep_alive_then_login(self, account: Account, *, force: bool = False) -> DecisionOutcome:
        account_id = account.account_id
        try:
            result = await asyncio.wait_for(
                self.keep_alive_client.keep_alive(account_id),
                timeout=self.keep_alive_timeout,
            )
        except asyncio.TimeoutError:
            log.warning(f"[refresh] keep-alive timed out for {account_id}, escalating to full login")
            return await self._full_login(account)
        except Exception as exc:  # noqa: BLE001
            log.warning(f"[refresh] keep-alive errored for {account_id} ({exc}), escalating to full login")
            return await self._full_login(account)

        if result.success:
            expiry = result.expiry_ts or await self._stored_expiry(account_id)
            log.info(f"[refresh] OK {account_id} method=keep-alive expiry={expiry}")
            return RefreshedViaKeepAlive(expiry_ts=expiry)

        if result.needs_full_refresh and force:
            log.info(f"[refresh] keep-alive rejected for {account_id} (HTTP {result.status_code}), logging in now")
            return await self._full_login(account)

        if result.needs_full_refresh:
            # Leave the login to a later pass; the session is marked dead so
            # that pass goes straight to a full login.
            await self.sessions.invalidate(account_id, self.clock.now_ms())
            log.info(f"[refresh] DEFER {account_id} reason=session expired (HTTP {result.status_code})")
            return Skipped(SkipReason.SCHEDULED, detail="needs full refresh")

        log.warning(f"[refresh] keep-alive inconclusive for {account_id} ({result.error}), escalating to full login")
        return await self._full_login(account)

    async def _full_login(self, account: Account) -> DecisionOutcome:
        account_id = account.account_id
        try:
            async with self.gate.slot(account_id, self.slot_wait_timeout):
                result = await asyncio.wait_for(
                    self.login_client.login(account),
                    timeout=self.login_timeout,
                )
                if not result.success or not result.cookies:
                    raise LoginError("login returned no session", account_id=account_id)
                record = await self.sessions.save(account_id, result.cookies, {"expiry_ts": result.expiry_ts})
        except LoginSlotTimeout:
            retry_at = self.clock.now_ms() + int(self.slot_retry_delay * 1000)
            await self.sessions.reschedule(account_id, retry_at)
            log.warning(f"[refresh] DEFER {account_id} reason=no login slot, retry at {retry_at}")
            return Skipped(SkipReason.SCHEDULED, detail="login slot timeout")
        except asyncio.TimeoutError:
            log.error(f"[refresh] FAIL {account_id} method=full-login reason=timeout after {self.login_timeout}s")
            return Failed("login timed out", phase="full-login")
        except Exception as exc:  # noqa: BLE001
            log.error(f"[refresh] FAIL {account_id} method=full-login: {exc}")
            return Failed(str(exc) or exc.__class__.__name__, phase="full-login")

        expiry = record.expiry_ts or result.expiry_ts
        log.info(f"[refresh] OK {account_id} method=full-login expiry={expiry}")
        return RefreshedViaFullLogin(expiry_ts=expiry)

    async def _stored_expiry(self, account_id: str) -> Optional[int]:
        session = await self.sessions.get(account_id)
        return session.best_expiry() if session else None


__all__ = [
    "SkipReason",
    "Skipped",
    "RefreshedViaKeepAlive",
    "RefreshedViaFullLogin",
    "Failed",
    "DecisionOutcome",
    "DueCheck",
    "evaluate_due",
    "RefreshDecisionEngine",
]
