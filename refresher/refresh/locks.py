"""Bounded full-login slots guarded by a TTL login-in-progress flag."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from refresher.core.cache import user_key
from refresher.core.interfaces import LockStore
from refresher.utils.logger import get_logger

log = get_logger(__name__)

LOGIN_IN_PROGRESS_TTL = 5 * 60


def login_flag_key(account_id: str) -> str:
    return user_key(account_id, "loginInProgress")


class LoginSlotTimeout(Exception):
    """No full-login slot freed up within the wait budget."""


class LoginGate:
    """Caps simultaneous full logins and marks each one in the lock store.

    The flag is set before the login starts and cleared on exit whatever the
    outcome; its TTL covers a process that dies mid-login.
    """

    def __init__(
        self,
        locks: LockStore,
        max_concurrent: int = 3,
        *,
        flag_ttl: int = LOGIN_IN_PROGRESS_TTL,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.locks = locks
        self.max_concurrent = max_concurrent
        self.flag_ttl = flag_ttl
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.active = 0
        self.peak = 0

    async def is_login_in_progress(self, account_id: str) -> bool:
        try:
            return await self.locks.get_flag(login_flag_key(account_id))
        except Exception as exc:  # noqa: BLE001
            log.warning(f"[login-gate] could not read login flag for {account_id}: {exc}")
            return False

    @asynccontextmanager
    async def slot(self, account_id: str, wait_timeout: Optional[float] = None) -> AsyncIterator[None]:
        try:
            if wait_timeout is None:
                await self._semaphore.acquire()
            else:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=wait_timeout)
        except asyncio.TimeoutError as exc:
            raise LoginSlotTimeout(f"no login slot for {account_id} within {wait_timeout}s") from exc

        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            try:
                await self.locks.set_flag(login_flag_key(account_id), self.flag_ttl)
            except Exception as exc:  # noqa: BLE001
                log.warning(f"[login-gate] failed to set login flag for {account_id}: {exc}")
            yield
        finally:
            self.active -= 1
            self._semaphore.release()
            try:
                await self.locks.clear_flag(login_flag_key(account_id))
            except Exception as exc:  # noqa: BLE001
                log.warning(f"[login-gate] failed to clear login flag for {account_id}: {exc}")


__all__ = ["LOGIN_IN_PROGRESS_TTL", "LoginGate", "LoginSlotTimeout", "login_flag_key"]
