from refresher.refresh.cooldown import (
    CycleHealth,
    HealthState,
    compute_backoff,
    next_sleep_seconds,
)

NOW = 1_700_000_000_000


def test_backoff_doubles_until_ceiling():
    sleeps = [compute_backoff(k) for k in range(1, 10)]
    assert sleeps[:5] == [60.0, 120.0, 240.0, 480.0, 900.0]
    for previous, current in zip(sleeps, sleeps[1:]):
        assert current >= previous
    assert set(sleeps[4:]) == {900.0}


def test_no_failures_means_no_backoff():
    assert compute_backoff(0) == 0.0


def test_three_failed_cycles_sleep_four_minutes():
    health = CycleHealth()
    for _ in range(3):
        health.record_cycle(refreshed=1, failed=2, now_ms=NOW)
    assert health.state is HealthState.DEGRADED
    assert next_sleep_seconds(health, NOW + 10_000, NOW) == 240.0


def test_successful_cycle_resets_health():
    health = CycleHealth(consecutive_failures=4, last_failure_ts=NOW)
    assert health.record_cycle(refreshed=3, failed=3) is HealthState.HEALTHY
    assert health.consecutive_failures == 0


def test_empty_cycle_resets_and_exception_degrades():
    health = CycleHealth(consecutive_failures=2)
    health.record_empty_cycle()
    assert health.state is HealthState.HEALTHY
    health.record_exception(now_ms=NOW)
    assert health.consecutive_failures == 1
    assert health.last_failure_ts == NOW


def test_healthy_sleep_tracks_earliest_deadline():
    health = CycleHealth()
    assert next_sleep_seconds(health, NOW + 600_000, NOW) == 600.0


def test_healthy_sleep_is_clamped():
    health = CycleHealth()
    assert next_sleep_seconds(health, NOW + 1_000, NOW) == 300.0
    assert next_sleep_seconds(health, NOW - 60_000, NOW) == 300.0
    assert next_sleep_seconds(health, NOW + 5 * 3600 * 1000, NOW) == 1800.0


def test_no_deadline_sleeps_max():
    assert next_sleep_seconds(CycleHealth(), None, NOW) == 1800.0


def test_degraded_ignores_schedule():
    health = CycleHealth(consecutive_failures=1)
    assert next_sleep_seconds(health, NOW + 20 * 60 * 1000, NOW) == 60.0
