"""Refresh scheduling, decisions, pacing and backoff."""

from .cooldown import BASE_BACKOFF_SECONDS, MAX_BACKOFF_SECONDS, CycleHealth, HealthState, compute_backoff, next_sleep_seconds
from .decision import (
    DecisionOutcome,
    Failed,
    RefreshDecisionEngine,
    RefreshedViaFullLogin,
    RefreshedViaKeepAlive,
    SkipReason,
    Skipped,
    evaluate_due,
)
from .locks import LoginGate, LoginSlotTimeout
from .pacing import CycleTally, PacingController
from .schedule import RefreshScheduleStore

__all__ = [
    "BASE_BACKOFF_SECONDS",
    "MAX_BACKOFF_SECONDS",
    "CycleHealth",
    "HealthState",
    "compute_backoff",
    "next_sleep_seconds",
    "DecisionOutcome",
    "Failed",
    "RefreshDecisionEngine",
    "RefreshedViaFullLogin",
    "RefreshedViaKeepAlive",
    "SkipReason",
    "Skipped",
    "evaluate_due",
    "LoginGate",
    "LoginSlotTimeout",
    "CycleTally",
    "PacingController",
    "RefreshScheduleStore",
]
