"""
Background refresh worker.

Owns the cycle loop: find due accounts, run them through the pacing
controller, update cycle health, then sleep until the next deadline (or the
backoff while degraded). All mutable state lives on one ``SchedulerState``
held by the worker instance.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from models.account import DueAccount
from refresher.core.clock import SystemClock
from refresher.core.interfaces import Clock
from refresher.jobs.daily_check import DailySessionCheck
from refresher.refresh.cooldown import (
    BASE_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    MAX_SLEEP_SECONDS,
    MIN_SLEEP_SECONDS,
    CycleHealth,
    next_sleep_seconds,
)
from refresher.refresh.pacing import CycleTally, PacingController
from refresher.refresh.schedule import RefreshScheduleStore
from refresher.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(slots=True)
class SchedulerState:
    is_running: bool = False
    started: bool = False
    cycles: int = 0
    last_tally: Optional[CycleTally] = None
    last_cycle_at: Optional[int] = None
    next_sleep_seconds: Optional[float] = None
    health: CycleHealth = field(default_factory=CycleHealth)


class RefreshWorker:
    def __init__(
        self,
        schedule: RefreshScheduleStore,
        pacing: PacingController,
        *,
        clock: Optional[Clock] = None,
        min_sleep: float = MIN_SLEEP_SECONDS,
        max_sleep: float = MAX_SLEEP_SECONDS,
        base_backoff: float = BASE_BACKOFF_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        daily_check: Optional[DailySessionCheck] = None,
    ) -> None:
        self.schedule = schedule
        self.pacing = pacing
        self.clock = clock or SystemClock()
        self.min_sleep = min_sleep
        self.max_sleep = max_sleep
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self.daily_check = daily_check
        self.state = SchedulerState()
        self._cycle_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def run_cycle(self) -> Optional[CycleTally]:
        """One scan-process-assess pass. Returns None when a cycle is already running."""
        if self._cycle_lock.locked():
            log.info("[worker] cycle already running, dropping this wake-up")
            return None

        async with self._cycle_lock:
            self.state.is_running = True
            now = self.clock.now_ms()
            health = self.state.health
            try:
                due = await self.schedule.scan_due(now)
                if not due:
                    log.info("[worker] no accounts due for refresh")
                    health.record_empty_cycle()
                    tally = CycleTally()
                else:
                    tally = await self.pacing.process(due)
                    health.record_cycle(tally.refreshed, tally.failed, now_ms=self.clock.now_ms())
                    log.info(
                        f"[worker] cycle done refreshed={tally.refreshed} "
                        f"(keep-alive={tally.refreshed_by_keep_alive}, full-login={tally.refreshed_by_full_login}) "
                        f"skipped={tally.skipped} scheduled={tally.scheduled} failed={tally.failed} "
                        f"health={health.state.value}"
                    )
                self.state.last_tally = tally
                return tally
            except Exception as exc:  # noqa: BLE001
                health.record_exception(now_ms=self.clock.now_ms())
                log.exception(
                    f"[worker] cycle failed: {exc} "
                    f"(consecutive failures={health.consecutive_failures})"
                )
                return CycleTally()
            finally:
                self.state.cycles += 1
                self.state.last_cycle_at = now
                self.state.is_running = False

    async def compute_next_sleep(self) -> float:
        try:
            # Backoff does not depend on the schedule.
            earliest = None if self.state.health.consecutive_failures else await self.schedule.earliest_deadline()
            return next_sleep_seconds(
                self.state.health,
                earliest,
                self.clock.now_ms(),
                min_sleep=self.min_sleep,
                max_sleep=self.max_sleep,
                base_backoff=self.base_backoff,
                max_backoff=self.max_backoff,
            )
        except Exception as exc:  # noqa: BLE001
            log.warning(f"[worker] could not compute next sleep ({exc}), using {self.min_sleep}s")
            return float(self.min_sleep)

    async def tick(self) -> float:
        """Run a cycle, then sleep until the next one is due. Returns the sleep used."""
        try:
            await self.run_cycle()
        except Exception as exc:  # noqa: BLE001
            log.exception(f"[worker] unexpected error outside cycle boundary: {exc}")
        seconds = await self.compute_next_sleep()
        self.state.next_sleep_seconds = seconds
        log.info(f"[worker] next cycle in {seconds:.0f}s")
        await self.clock.sleep(seconds)
        return seconds

    async def _loop(self) -> None:
        while self.state.started:
            await self.tick()

    async def trigger_now(self) -> Optional[CycleTally]:
        log.info("[worker] manual refresh cycle requested")
        return await self.run_cycle()

    async def run_daily_check(self) -> CycleTally:
        """Force every account (active or not) through the engine; waits for any running cycle."""
        async with self._cycle_lock:
            self.state.is_running = True
            try:
                now = self.clock.now_ms()
                accounts = await self.schedule.directory.list_all_accounts()
                log.info(f"[worker] daily check over {len(accounts)} account(s)")
                due = [DueAccount(account=account, deadline=now) for account in accounts]
                tally = await self.pacing.process(due, force=True)
                log.info(f"[worker] daily check done {tally.as_dict()}")
                return tally
            finally:
                self.state.is_running = False

    def schedule_daily_check(self, *, hour: int = 6, timezone: str = "Asia/Beirut") -> DailySessionCheck:
        self.daily_check = DailySessionCheck(self.run_daily_check, hour=hour, timezone=timezone)
        return self.daily_check

    def start(self) -> None:
        if self.state.started:
            log.warning("[worker] already started")
            return
        self.state.started = True
        self._task = asyncio.create_task(self._loop(), name="refresh-worker")
        if self.daily_check is not None:
            self.daily_check.start()
        log.info("[worker] refresh worker started")

    async def stop(self) -> None:
        if not self.state.started:
            return
        self.state.started = False
        if self.daily_check is not None:
            self.daily_check.stop()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("[worker] refresh worker stopped")


async def start_worker(worker: RefreshWorker) -> RefreshWorker:
    worker.start()
    return worker


async def stop_worker(worker: RefreshWorker) -> None:
    await worker.stop()


__all__ = ["SchedulerState", "RefreshWorker", "start_worker", "stop_worker"]
