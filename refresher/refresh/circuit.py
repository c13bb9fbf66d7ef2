"""Per-account circuit breaker for repeatedly failing refreshes."""

from __future__ import annotations

import json
from typing import Optional

from refresher.core.cache import user_key
from refresher.core.clock import SystemClock
from refresher.core.interfaces import Clock, LockStore, ScheduleIndex
from refresher.utils.logger import get_logger

log = get_logger(__name__)

FAILURE_WINDOW_SECONDS = 10 * 60
FAILURE_THRESHOLD = 3
COOL_OFF_SECONDS = 2 * 60


def failure_key(account_id: str) -> str:
    return user_key(account_id, "refreshFailures")


class CircuitBreaker:
    """Counts failures per account inside a rolling window.

    Reaching the threshold pushes the account's next refresh back so one
    broken account cannot be retried every cycle.
    """

    def __init__(
        self,
        locks: LockStore,
        index: ScheduleIndex,
        *,
        clock: Optional[Clock] = None,
        threshold: int = FAILURE_THRESHOLD,
        window_seconds: int = FAILURE_WINDOW_SECONDS,
        cool_off_seconds: int = COOL_OFF_SECONDS,
    ) -> None:
        self.locks = locks
        self.index = index
        self.clock = clock or SystemClock()
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.cool_off_seconds = cool_off_seconds

    async def failures(self, account_id: str) -> int:
        raw = await self.locks.get_value(failure_key(account_id))
        if not raw:
            return 0
        try:
            state = json.loads(raw)
        except json.JSONDecodeError:
            return 0
        window_start = self.clock.now_ms() - self.window_seconds * 1000
        if int(state.get("first", 0)) < window_start:
            return 0
        return int(state.get("count", 0))

    async def record_failure(self, account_id: str) -> bool:
        """Returns True when this failure tripped the breaker."""
        now = self.clock.now_ms()
        raw = await self.locks.get_value(failure_key(account_id))
        state = {"count": 0, "first": now}
        if raw:
            try:
                stored = json.loads(raw)
            except json.JSONDecodeError:
                stored = {}
            if int(stored.get("first", 0)) >= now - self.window_seconds * 1000:
                state = {"count": int(stored.get("count", 0)), "first": int(stored["first"])}

        state["count"] += 1
        await self.locks.set_value(failure_key(account_id), json.dumps(state), self.window_seconds)

        if state["count"] < self.threshold:
            return False

        retry_at = now + self.cool_off_seconds * 1000
        await self.index.add(account_id, retry_at)
        log.warning(
            f"[circuit] OPEN {account_id} failures={state['count']} "
            f"in {self.window_seconds}s, next refresh pushed to {retry_at}"
        )
        return True

    async def record_success(self, account_id: str) -> None:
        await self.locks.clear_flag(failure_key(account_id))


__all__ = ["CircuitBreaker", "failure_key"]
