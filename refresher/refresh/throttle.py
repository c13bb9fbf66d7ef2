"""Adjusts the refresh rate from the recent failure ratio."""

from __future__ import annotations

from collections import deque
from typing import Deque

from refresher.utils.logger import get_logger

log = get_logger(__name__)

WINDOW_SIZE = 20
MIN_SAMPLES = 10
HIGH_FAILURE_RATE = 0.5
LOW_FAILURE_RATE = 0.2
SLOW_DOWN_FACTOR = 0.7
SPEED_UP_FACTOR = 1.2


class FailureRateTracker:
    def __init__(
        self,
        base_rate: float = 10,
        *,
        min_rate: float = 3,
        window: int = WINDOW_SIZE,
        min_samples: int = MIN_SAMPLES,
    ) -> None:
        self.base_rate = float(base_rate)
        self.min_rate = float(min_rate)
        self.current_rate = float(base_rate)
        self.min_samples = min_samples
        self._outcomes: Deque[bool] = deque(maxlen=window)

    def record(self, success: bool) -> None:
        self._outcomes.append(bool(success))

    @property
    def samples(self) -> int:
        return len(self._outcomes)

    @property
    def failure_rate(self) -> float:
        if not self._outcomes:
            return 0.0
        failures = sum(1 for ok in self._outcomes if not ok)
        return failures / len(self._outcomes)

    def adjust(self) -> float:
        """Recompute the effective accounts-per-minute and return it."""
        if self.samples < self.min_samples:
            return self.current_rate

        rate = self.failure_rate
        previous = self.current_rate
        if rate > HIGH_FAILURE_RATE:
            self.current_rate = max(self.min_rate, self.current_rate * SLOW_DOWN_FACTOR)
        elif rate < LOW_FAILURE_RATE:
            self.current_rate = min(self.base_rate, self.current_rate * SPEED_UP_FACTOR)

        if self.current_rate != previous:
            log.info(
                f"[throttle] failure rate {rate:.0%}, accounts/min "
                f"{previous:.1f} -> {self.current_rate:.1f}"
            )
        return self.current_rate


__all__ = ["FailureRateTracker"]
