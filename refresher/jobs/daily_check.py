"""Once-a-day forced session check across every account."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from refresher.utils.logger import get_logger

log = get_logger(__name__)

JOB_ID = "daily_session_check"


class DailySessionCheck:
    """Schedules ``callback`` every day at ``hour:minute`` in ``timezone``."""

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        *,
        hour: int = 6,
        minute: int = 0,
        timezone: str = "Asia/Beirut",
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.callback = callback
        self.hour = hour
        self.minute = minute
        self.timezone = timezone
        self.scheduler = scheduler or AsyncIOScheduler()

    def trigger(self) -> CronTrigger:
        return CronTrigger(hour=self.hour, minute=self.minute, timezone=self.timezone)

    def start(self) -> None:
        self.scheduler.add_job(
            self._run,
            self.trigger(),
            id=JOB_ID,
            name=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        log.info(f"[daily-check] scheduled for {self.hour:02d}:{self.minute:02d} {self.timezone}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            log.info("[daily-check] stopped")

    async def _run(self) -> None:
        log.info("[daily-check] starting daily session check")
        try:
            await self.callback()
        except Exception as exc:  # noqa: BLE001
            log.exception(f"[daily-check] failed: {exc}")
        finally:
            log.info("[daily-check] daily session check completed")


__all__ = ["DailySessionCheck", "JOB_ID"]
