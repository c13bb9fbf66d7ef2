"""Batch pacing for due accounts, with a cap on concurrent full logins."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

from models.account import DueAccount
from refresher.core.clock import SystemClock
from refresher.core.interfaces import Clock
from refresher.refresh.circuit import CircuitBreaker
from refresher.refresh.decision import (
    DecisionOutcome,
    Failed,
    RefreshDecisionEngine,
    RefreshedViaFullLogin,
    RefreshedViaKeepAlive,
    SkipReason,
    Skipped,
)
from refresher.refresh.locks import LoginGate
from refresher.refresh.throttle import FailureRateTracker
from refresher.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(slots=True)
class CycleTally:
    refreshed: int = 0
    refreshed_by_keep_alive: int = 0
    refreshed_by_full_login: int = 0
    skipped: int = 0
    skipped_locked: int = 0
    skipped_login_in_progress: int = 0
    skipped_not_due: int = 0
    scheduled: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.refreshed + self.skipped + self.failed

    def record(self, outcome: DecisionOutcome) -> None:
        if isinstance(outcome, RefreshedViaKeepAlive):
            self.refreshed += 1
            self.refreshed_by_keep_alive += 1
        elif isinstance(outcome, RefreshedViaFullLogin):
            self.refreshed += 1
            self.refreshed_by_full_login += 1
        elif isinstance(outcome, Skipped):
            self.skipped += 1
            if outcome.reason is SkipReason.LOCKED:
                self.skipped_locked += 1
            elif outcome.reason is SkipReason.LOGIN_IN_PROGRESS:
                self.skipped_login_in_progress += 1
            elif outcome.reason is SkipReason.NOT_DUE:
                self.skipped_not_due += 1
            else:
                self.scheduled += 1
        elif isinstance(outcome, Failed):
            self.failed += 1
        else:
            raise TypeError(f"unknown decision outcome: {outcome!r}")

    def merge(self, other: "CycleTally") -> "CycleTally":
        for name, value in asdict(other).items():
            setattr(self, name, getattr(self, name) + value)
        return self

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class PacingController:
    """Runs due accounts through the decision engine in paced batches.

    Every account in a batch starts together; the next batch waits long
    enough to keep the overall rate at ``accounts_per_minute``.
    """

    def __init__(
        self,
        engine: RefreshDecisionEngine,
        *,
        batch_size: int = 10,
        accounts_per_minute: float = 10,
        clock: Optional[Clock] = None,
        throttle: Optional[FailureRateTracker] = None,
        circuit: Optional[CircuitBreaker] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if accounts_per_minute <= 0:
            raise ValueError("accounts_per_minute must be positive")
        self.engine = engine
        self.batch_size = batch_size
        self.accounts_per_minute = float(accounts_per_minute)
        self.clock = clock or SystemClock()
        self.throttle = throttle
        self.circuit = circuit

    @property
    def gate(self) -> LoginGate:
        return self.engine.gate

    def batch_delay(self, batch_len: int) -> float:
        rate = self.throttle.current_rate if self.throttle else self.accounts_per_minute
        return batch_len * 60.0 / rate

    async def process(self, due_accounts: Sequence[DueAccount], *, force: bool = False) -> CycleTally:
        tally = CycleTally()
        batches = [
            list(due_accounts[i : i + self.batch_size])
            for i in range(0, len(due_accounts), self.batch_size)
        ]

        for number, batch in enumerate(batches, start=1):
            log.info(f"[pacing] batch {number}/{len(batches)} with {len(batch)} account(s)")
            results = await asyncio.gather(
                *(self._run_one(item, force=force) for item in batch),
                return_exceptions=True,
            )
            for item, result in zip(batch, results):
                if isinstance(result, BaseException):
                    log.error(f"[pacing] {item.account.account_id} raised past the engine: {result}")
                    result = Failed(str(result) or result.__class__.__name__)
                tally.record(result)

            if self.throttle:
                self.throttle.adjust()

            if number < len(batches):
                delay = self.batch_delay(len(batch))
                log.debug(f"[pacing] waiting {delay:.1f}s before next batch")
                await self.clock.sleep(delay)

        log.info(f"[pacing] cycle tally {tally.as_dict()} peak_logins={self.gate.peak}")
        return tally

    async def _run_one(self, item: DueAccount, *, force: bool) -> DecisionOutcome:
        account_id = item.account.account_id
        outcome = await self.engine.decide(item.account, force=force)

        if isinstance(outcome, (RefreshedViaKeepAlive, RefreshedViaFullLogin)):
            if self.throttle:
                self.throttle.record(True)
            if self.circuit:
                await self._guard(self.circuit.record_success(account_id), account_id)
        elif isinstance(outcome, Failed):
            if self.throttle:
                self.throttle.record(False)
            if self.circuit:
                await self._guard(self.circuit.record_failure(account_id), account_id)
        return outcome

    async def _guard(self, operation, account_id: str) -> None:
        try:
            await operation
        except Exception as exc:  # noqa: BLE001
            log.warning(f"[pacing] circuit bookkeeping failed for {account_id}: {exc}")


__all__ = ["CycleTally", "LoginGate", "PacingController"]
