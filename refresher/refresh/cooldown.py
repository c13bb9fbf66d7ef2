"""Cycle health tracking and exponential backoff between refresh cycles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

BASE_BACKOFF_SECONDS = 60  # 1 minute
MAX_BACKOFF_SECONDS = 15 * 60  # 15 minutes
MIN_SLEEP_SECONDS = 5 * 60
MAX_SLEEP_SECONDS = 30 * 60


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


def compute_backoff(
    failures: int,
    base: float = BASE_BACKOFF_SECONDS,
    maximum: float = MAX_BACKOFF_SECONDS,
) -> float:
    if failures <= 0:
        return 0.0
    return float(min(base * (2 ** (failures - 1)), maximum))


@dataclass(slots=True)
class CycleHealth:
    consecutive_failures: int = 0
    last_failure_ts: Optional[int] = None

    @property
    def state(self) -> HealthState:
        return HealthState.DEGRADED if self.consecutive_failures > 0 else HealthState.HEALTHY

    def record_cycle(self, refreshed: int, failed: int, *, now_ms: Optional[int] = None) -> HealthState:
        if failed > refreshed:
            self.consecutive_failures += 1
            self.last_failure_ts = now_ms
        else:
            self.consecutive_failures = 0
        return self.state

    def record_empty_cycle(self) -> HealthState:
        self.consecutive_failures = 0
        return self.state

    def record_exception(self, *, now_ms: Optional[int] = None) -> HealthState:
        self.consecutive_failures += 1
        self.last_failure_ts = now_ms
        return self.state


def next_sleep_seconds(
    health: CycleHealth,
    earliest_deadline: Optional[int],
    now_ms: int,
    *,
    min_sleep: float = MIN_SLEEP_SECONDS,
    max_sleep: float = MAX_SLEEP_SECONDS,
    base_backoff: float = BASE_BACKOFF_SECONDS,
    max_backoff: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Seconds until the next cycle.

    While degraded the backoff replaces the schedule-driven value entirely.
    """
    if health.consecutive_failures > 0:
        return compute_backoff(health.consecutive_failures, base_backoff, max_backoff)
    if earliest_deadline is None:
        return float(max_sleep)
    until_deadline = (earliest_deadline - now_ms) / 1000.0
    return float(min(max(until_deadline, min_sleep), max_sleep))


__all__ = [
    "BASE_BACKOFF_SECONDS",
    "MAX_BACKOFF_SECONDS",
    "MIN_SLEEP_SECONDS",
    "MAX_SLEEP_SECONDS",
    "HealthState",
    "CycleHealth",
    "compute_backoff",
    "next_sleep_seconds",
]
