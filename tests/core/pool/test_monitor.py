"""Unit tests for the background health monitor."""

import threading
import time
from unittest.mock import MagicMock

from resilientdb.core.pool import ConnectionHealth, HealthMonitor


def _failing_probe() -> None:
    raise ConnectionError("connection refused")


def _monitor(probe, health: ConnectionHealth, on_degraded=None, **kwargs) -> HealthMonitor:  # type: ignore[no-untyped-def]
    kwargs.setdefault("interval", 3600)
    kwargs.setdefault("probe_timeout", 1.0)
    return HealthMonitor(probe, health, on_degraded or MagicMock(), **kwargs)


def test_tick_success_marks_healthy() -> None:
    health = ConnectionHealth()
    monitor = _monitor(lambda: None, health)
    try:
        assert monitor.tick() is True
        assert health.is_healthy is True
        assert health.consecutive_failures == 0
        assert health.snapshot().last_check_time is not None
    finally:
        monitor.stop()


def test_three_failures_trigger_one_reconnect_then_success_resets() -> None:
    health = ConnectionHealth()
    health.mark_connected()
    on_degraded = MagicMock()
    probe = MagicMock(side_effect=ConnectionError("connection reset"))
    monitor = _monitor(probe, health, on_degraded)
    try:
        assert monitor.tick() is False
        assert monitor.tick() is False
        on_degraded.assert_not_called()
        assert monitor.tick() is False
        on_degraded.assert_called_once()
        assert health.is_healthy is False
        assert health.consecutive_failures == 3

        probe.side_effect = None
        assert monitor.tick() is True
        assert health.consecutive_failures == 0
        assert health.is_healthy is True
        on_degraded.assert_called_once()
    finally:
        monitor.stop()


def test_probe_timeout_counts_as_failure() -> None:
    health = ConnectionHealth()
    release = threading.Event()
    monitor = _monitor(lambda: release.wait(5), health, probe_timeout=0.05)
    try:
        assert monitor.tick() is False
        assert health.consecutive_failures == 1
        # previous probe still hung: fail fast without stacking another one
        assert monitor.tick() is False
        assert health.consecutive_failures == 2
    finally:
        release.set()
        monitor.stop()


def test_background_loop_probes_on_interval() -> None:
    health = ConnectionHealth()
    probe = MagicMock()
    monitor = _monitor(probe, health, interval=0.01)
    monitor.start()
    try:
        deadline = time.monotonic() + 2
        while probe.call_count < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert probe.call_count >= 2
        assert health.is_healthy is True
    finally:
        monitor.stop()
    assert monitor.is_running is False


def test_start_twice_keeps_one_thread() -> None:
    monitor = _monitor(lambda: None, ConnectionHealth())
    monitor.start()
    monitor.start()
    try:
        names = [t.name for t in threading.enumerate() if t.name == "db-health-monitor"]
        assert len(names) == 1
    finally:
        monitor.stop()


def test_stop_is_idempotent_and_leaves_no_thread() -> None:
    monitor = _monitor(_failing_probe, ConnectionHealth(), interval=0.01)
    monitor.start()
    assert monitor.is_running is True
    monitor.stop()
    monitor.stop()
    assert monitor.is_running is False
    assert not any(t.name == "db-health-monitor" for t in threading.enumerate())


def test_stop_without_start_is_noop() -> None:
    _monitor(lambda: None, ConnectionHealth()).stop()
