"""Wall-clock abstraction so scheduling can be driven by a virtual clock."""

from __future__ import annotations

import asyncio
import time


class SystemClock:
    """Real time: epoch milliseconds and ``asyncio.sleep``."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


__all__ = ["SystemClock"]
