"""
Background health monitor: probe the database on a fixed interval.

Runs on its own daemon thread, independent of request traffic. After
``failure_threshold`` consecutive failed probes it calls ``on_degraded``,
which must return quickly (the connection manager hands the reconnect to
another thread).
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from .health import ConnectionHealth

_log = logging.getLogger(__name__)

DEFAULT_INTERVAL_SEC = 30.0
DEFAULT_PROBE_TIMEOUT_SEC = 5.0
DEFAULT_FAILURE_THRESHOLD = 3


class HealthMonitor:
    def __init__(
        self,
        probe: Callable[[], None],
        health: ConnectionHealth,
        on_degraded: Callable[[], None],
        *,
        interval: float = DEFAULT_INTERVAL_SEC,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT_SEC,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        self._probe = probe
        self._health = health
        self._on_degraded = on_degraded
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.failure_threshold = failure_threshold
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._probe_pool: ThreadPoolExecutor | None = None
        self._pending: Future[None] | None = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="db-health-monitor", daemon=True
            )
            self._thread.start()
        _log.debug("Health monitor started (interval=%ss)", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and wait for the thread. No-op if not running."""
        with self._lock:
            thread, self._thread = self._thread, None
            self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        with self._lock:
            pool, self._probe_pool = self._probe_pool, None
            self._pending = None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)
        if thread is not None:
            _log.debug("Health monitor stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception:
                _log.exception("Health monitor tick crashed")

    def _submit_probe(self) -> Future[None] | None:
        """Start a probe unless the previous one is still stuck."""
        with self._lock:
            if self._pending is not None and not self._pending.done():
                return None
            if self._probe_pool is None:
                self._probe_pool = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="db-health-probe"
                )
            self._pending = self._probe_pool.submit(self._probe)
            return self._pending

    def tick(self) -> bool:
        """Run one probe and update health. Returns True if the probe passed."""
        future = self._submit_probe()
        try:
            if future is None:
                raise TimeoutError("previous health probe is still running")
            future.result(timeout=self.probe_timeout)
        except Exception as e:
            error: BaseException = e
            if future is not None and not future.done():
                error = TimeoutError(
                    f"health probe did not finish within {self.probe_timeout:g}s"
                )
        else:
            self._health.record_probe_success()
            return True

        failures = self._health.record_probe_failure()
        _log.error("Health check failed (%d consecutive): %s", failures, error)
        if failures >= self.failure_threshold:
            _log.warning("Attempting reconnection due to health check failures")
            self._on_degraded()
        return False
