"""Unit tests for the shared connection health record."""

import threading

import pytest

from resilientdb.core.pool import ConnectionHealth, ConnectionState


def _assert_consistent(health: ConnectionHealth) -> None:
    status = health.snapshot()
    assert status.failed_queries <= status.total_queries
    if status.is_healthy:
        assert status.consecutive_failures == 0


def test_initial_state() -> None:
    health = ConnectionHealth()
    status = health.snapshot()
    assert status.is_healthy is False
    assert status.consecutive_failures == 0
    assert status.total_queries == 0
    assert status.failed_queries == 0
    assert status.success_rate_percent == 100.0
    assert status.last_check_time is None
    assert status.seconds_since_last_check is None


def test_probe_failures_then_success() -> None:
    health = ConnectionHealth()
    health.mark_connected()
    assert health.record_probe_failure() == 1
    assert health.record_probe_failure() == 2
    assert health.is_healthy is False
    health.record_probe_success()
    assert health.is_healthy is True
    assert health.consecutive_failures == 0
    assert health.snapshot().last_check_time is not None


def test_running_mean_of_successful_latencies() -> None:
    health = ConnectionHealth()
    for latency in (0.1, 0.2, 0.3):
        health.record_query_success(latency)
    assert health.average_query_latency == pytest.approx(0.2)
    health.record_query_failure()
    health.record_query_success(0.6)
    assert health.average_query_latency == pytest.approx(0.3)
    assert health.snapshot().average_latency_ms == pytest.approx(300.0)


def test_success_rate() -> None:
    health = ConnectionHealth()
    for _ in range(3):
        health.record_query_success(0.01)
    health.record_query_failure()
    status = health.snapshot()
    assert status.total_queries == 4
    assert status.failed_queries == 1
    assert status.success_rate_percent == 75.0


def test_query_success_clears_failure_streak() -> None:
    health = ConnectionHealth()
    health.record_probe_failure()
    health.record_query_success(0.01)
    assert health.consecutive_failures == 0


def test_snapshot_carries_state() -> None:
    assert ConnectionHealth().snapshot(ConnectionState.CONNECTED).state is ConnectionState.CONNECTED


def test_counters_stay_consistent_under_concurrent_updates() -> None:
    health = ConnectionHealth()
    stop = threading.Event()
    violations: list[str] = []

    def watcher() -> None:
        while not stop.is_set():
            try:
                _assert_consistent(health)
            except AssertionError as e:
                violations.append(str(e))

    def writer(n: int) -> None:
        for i in range(500):
            if (i + n) % 3 == 0:
                health.record_query_failure()
            else:
                health.record_query_success(0.001 * (i % 7))
            if i % 50 == 0:
                health.record_probe_failure()
                health.mark_connected()

    watch = threading.Thread(target=watcher)
    watch.start()
    writers = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    watch.join()

    assert violations == []
    status = health.snapshot()
    assert status.total_queries == 8 * 500
    _assert_consistent(health)
