"""
Shared connection health record.

One ConnectionHealth per ConnectionManager. The health monitor, the connection
manager and every executor thread write to it, so all access goes through a
single lock.
"""

import threading
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class HealthStatus(BaseModel):
    """Point-in-time view of ConnectionHealth for diagnostics endpoints."""

    state: ConnectionState | None = None
    is_healthy: bool
    consecutive_failures: int
    last_check_time: datetime | None = None
    seconds_since_last_check: float | None = None
    total_queries: int
    failed_queries: int
    average_latency_ms: float
    success_rate_percent: float


class ConnectionHealth:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._is_healthy = False
        self._consecutive_failures = 0
        self._last_check: datetime | None = None
        self._last_check_mono: float | None = None
        self._total_queries = 0
        self._failed_queries = 0
        self._average_latency = 0.0  # seconds, successful calls only

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return self._is_healthy

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def total_queries(self) -> int:
        with self._lock:
            return self._total_queries

    @property
    def failed_queries(self) -> int:
        with self._lock:
            return self._failed_queries

    @property
    def average_query_latency(self) -> float:
        with self._lock:
            return self._average_latency

    def _touch(self) -> None:
        self._last_check = datetime.now(timezone.utc)
        self._last_check_mono = time.monotonic()

    def mark_connected(self) -> None:
        """Connect or probe succeeded: healthy, failure streak cleared."""
        with self._lock:
            self._is_healthy = True
            self._consecutive_failures = 0
            self._touch()

    record_probe_success = mark_connected

    def mark_unhealthy(self) -> None:
        with self._lock:
            self._is_healthy = False

    def record_probe_failure(self) -> int:
        """Count a failed probe; returns the new consecutive failure count."""
        with self._lock:
            self._is_healthy = False
            self._consecutive_failures += 1
            self._touch()
            return self._consecutive_failures

    def record_query_success(self, latency: float) -> None:
        with self._lock:
            self._total_queries += 1
            self._consecutive_failures = 0
            samples = self._total_queries - self._failed_queries
            self._average_latency += (latency - self._average_latency) / samples

    def record_query_failure(self) -> None:
        """One failed call (fatal or retries exhausted), regardless of attempts."""
        with self._lock:
            self._total_queries += 1
            self._failed_queries += 1

    def snapshot(self, state: ConnectionState | None = None) -> HealthStatus:
        with self._lock:
            total = self._total_queries
            failed = self._failed_queries
            since = (
                time.monotonic() - self._last_check_mono
                if self._last_check_mono is not None
                else None
            )
            return HealthStatus(
                state=state,
                is_healthy=self._is_healthy,
                consecutive_failures=self._consecutive_failures,
                last_check_time=self._last_check,
                seconds_since_last_check=since,
                total_queries=total,
                failed_queries=failed,
                average_latency_ms=round(self._average_latency * 1000, 3),
                success_rate_percent=(
                    round((total - failed) / total * 100, 2) if total else 100.0
                ),
            )
