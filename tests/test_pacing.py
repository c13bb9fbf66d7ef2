import asyncio
from types import SimpleNamespace

import pytest

from fakes import FakeCache, FakeClock, make_account, make_stack, rejected
from models.account import DueAccount
from refresher.refresh.circuit import CircuitBreaker
from refresher.refresh.decision import Failed, RefreshedViaFullLogin, RefreshedViaKeepAlive, SkipReason, Skipped
from refresher.refresh.pacing import CycleTally, PacingController
from refresher.refresh.throttle import FailureRateTracker
from refresher.stores.redis_stores import RedisLockStore, RedisScheduleIndex


def make_due(count, clock, prefix="acc"):
    return [DueAccount(account=make_account(f"{prefix}-{i}"), deadline=clock.now_ms()) for i in range(count)]


class ScriptedEngine:
    """Returns canned outcomes per account id; exceptions are raised."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.gate = SimpleNamespace(peak=0)
        self.seen = []

    async def decide(self, account, *, force=False):
        self.seen.append((account.account_id, force))
        outcome = self.outcomes.get(account.account_id, RefreshedViaKeepAlive())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_tally_counts_each_outcome():
    tally = CycleTally()
    tally.record(RefreshedViaKeepAlive())
    tally.record(RefreshedViaFullLogin())
    tally.record(Skipped(SkipReason.LOCKED))
    tally.record(Skipped(SkipReason.NOT_DUE))
    tally.record(Skipped(SkipReason.SCHEDULED))
    tally.record(Failed("boom"))

    assert tally.refreshed == 2
    assert tally.refreshed_by_keep_alive == 1
    assert tally.refreshed_by_full_login == 1
    assert tally.skipped == 3
    assert tally.skipped_locked == 1
    assert tally.skipped_not_due == 1
    assert tally.scheduled == 1
    assert tally.failed == 1
    assert tally.total == 6


def test_tally_merge_adds_fields():
    first = CycleTally(refreshed=1, failed=2)
    first.merge(CycleTally(refreshed=3, skipped=1))
    assert first.as_dict()["refreshed"] == 4
    assert first.as_dict()["failed"] == 2
    assert first.as_dict()["skipped"] == 1


def test_full_logins_never_exceed_cap():
    async def scenario():
        stack = make_stack([make_account(f"acc-{i}") for i in range(5)], max_concurrent=3, batch_size=10)
        tally = await stack.pacing.process(make_due(5, stack.clock))
        return stack, tally

    stack, tally = asyncio.run(scenario())
    assert tally.refreshed_by_full_login == 5
    assert tally.failed == 0
    assert len(stack.login.calls) == 5
    assert stack.login.max_in_flight <= 3
    assert stack.gate.peak <= 3
    # One batch, so no pacing pause.
    assert stack.clock.sleeps == []


def test_cap_holds_across_larger_batches():
    async def scenario():
        stack = make_stack(max_concurrent=2, batch_size=8)
        tally = await stack.pacing.process(make_due(8, stack.clock))
        return stack, tally

    stack, tally = asyncio.run(scenario())
    assert tally.refreshed == 8
    assert stack.login.max_in_flight == 2


def test_batches_are_paced_by_accounts_per_minute():
    async def scenario():
        clock = FakeClock()
        engine = ScriptedEngine({})
        pacing = PacingController(engine, batch_size=5, accounts_per_minute=10, clock=clock)
        tally = await pacing.process(make_due(12, clock))
        return clock, engine, tally

    clock, engine, tally = asyncio.run(scenario())
    assert tally.refreshed == 12
    assert clock.sleeps == [30.0, 30.0]
    assert len(engine.seen) == 12


def test_force_flag_reaches_engine():
    async def scenario():
        clock = FakeClock()
        engine = ScriptedEngine({})
        pacing = PacingController(engine, clock=clock)
        await pacing.process(make_due(2, clock), force=True)
        return engine

    engine = asyncio.run(scenario())
    assert all(force for _, force in engine.seen)


def test_account_exception_does_not_abort_batch():
    async def scenario():
        clock = FakeClock()
        engine = ScriptedEngine({"acc-1": RuntimeError("engine bug")})
        pacing = PacingController(engine, clock=clock)
        return await pacing.process(make_due(3, clock))

    tally = asyncio.run(scenario())
    assert tally.failed == 1
    assert tally.refreshed == 2


def test_invalid_pacing_settings_rejected():
    engine = ScriptedEngine({})
    with pytest.raises(ValueError):
        PacingController(engine, batch_size=0)
    with pytest.raises(ValueError):
        PacingController(engine, accounts_per_minute=0)


def test_throttle_slows_down_on_high_failure_rate():
    tracker = FailureRateTracker(10, min_rate=3)
    for _ in range(10):
        tracker.record(False)
    assert tracker.adjust() == pytest.approx(7.0)
    for _ in range(10):
        tracker.adjust()
    assert tracker.current_rate == pytest.approx(3.0)


def test_throttle_recovers_but_never_passes_base():
    tracker = FailureRateTracker(10, min_rate=3)
    tracker.current_rate = 5.0
    for _ in range(12):
        tracker.record(True)
    assert tracker.adjust() == pytest.approx(6.0)
    for _ in range(10):
        tracker.adjust()
    assert tracker.current_rate == pytest.approx(10.0)


def test_throttle_waits_for_enough_samples():
    tracker = FailureRateTracker(10)
    for _ in range(9):
        tracker.record(False)
    assert tracker.adjust() == 10.0


def test_throttle_window_keeps_last_twenty():
    tracker = FailureRateTracker(10)
    for _ in range(20):
        tracker.record(False)
    for _ in range(20):
        tracker.record(True)
    assert tracker.samples == 20
    assert tracker.failure_rate == 0.0


def test_pacing_uses_throttled_rate():
    async def scenario():
        clock = FakeClock()
        failures = {f"acc-{i}": Failed("down") for i in range(10)}
        engine = ScriptedEngine(failures)
        pacing = PacingController(
            engine,
            batch_size=10,
            accounts_per_minute=10,
            clock=clock,
            throttle=FailureRateTracker(10),
        )
        tally = await pacing.process(make_due(20, clock))
        return clock, tally

    clock, tally = asyncio.run(scenario())
    assert tally.failed == 10
    # After ten failures the rate drops to 7/min before the second batch.
    assert clock.sleeps == [pytest.approx(10 * 60 / 7.0)]


def make_circuit(clock):
    cache = FakeCache()
    index = RedisScheduleIndex(cache)
    return CircuitBreaker(RedisLockStore(cache), index, clock=clock), index


def test_circuit_opens_on_third_failure():
    async def scenario():
        clock = FakeClock()
        circuit, index = make_circuit(clock)
        tripped = [await circuit.record_failure("acc-1") for _ in range(3)]
        deadline = await index.get_deadline("acc-1")
        return clock, tripped, deadline

    clock, tripped, deadline = asyncio.run(scenario())
    assert tripped == [False, False, True]
    assert deadline == clock.now_ms() + 2 * 60 * 1000


def test_circuit_resets_on_success_and_after_window():
    async def scenario():
        clock = FakeClock()
        circuit, _ = make_circuit(clock)
        await circuit.record_failure("acc-1")
        await circuit.record_failure("acc-1")
        await circuit.record_success("acc-1")
        after_success = await circuit.failures("acc-1")

        await circuit.record_failure("acc-1")
        await circuit.record_failure("acc-1")
        clock.advance(11 * 60)
        after_window = await circuit.failures("acc-1")
        tripped = await circuit.record_failure("acc-1")
        return after_success, after_window, tripped

    after_success, after_window, tripped = asyncio.run(scenario())
    assert after_success == 0
    assert after_window == 0
    assert tripped is False


def test_pacing_feeds_circuit_breaker():
    async def scenario():
        stack = make_stack([make_account("acc-0")], with_circuit=True)
        stack.login.failing["acc-0"] = rejected("acc-0")
        due = make_due(1, stack.clock)
        for _ in range(3):
            await stack.pacing.process(due)
        deadline = await stack.index.get_deadline("acc-0")
        return stack, deadline

    stack, deadline = asyncio.run(scenario())
    assert len(stack.login.calls) == 3
    assert deadline == stack.clock.now_ms() + 2 * 60 * 1000
