"""
Connection manager: owns the one DatabaseClient of the process.

Connects with retry and exponential backoff, starts the health monitor once
connected, hands out the live client, and reconnects when the monitor reports
degraded health. Constructed explicitly and passed to callers; there is no
module-level instance.
"""

import logging
import threading
from collections.abc import Callable

from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt

from .client import DatabaseClient
from .config import PoolConfig
from .errors import NotConnectedError
from .health import ConnectionHealth, ConnectionState, HealthStatus
from .monitor import (
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_INTERVAL_SEC,
    DEFAULT_PROBE_TIMEOUT_SEC,
    HealthMonitor,
)
from .retry import RetryPolicy, wait_backoff

_log = logging.getLogger(__name__)

DEFAULT_RECONNECT_ATTEMPTS = 3

_USABLE_STATES = (ConnectionState.CONNECTED, ConnectionState.RECONNECTING)


class ConnectionManager:
    def __init__(
        self,
        client: DatabaseClient,
        pool_config: PoolConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        health: ConnectionHealth | None = None,
        monitor_interval: float = DEFAULT_INTERVAL_SEC,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT_SEC,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.client = client
        self.pool_config = pool_config
        self.retry_policy = retry_policy or RetryPolicy()
        self.health = health or ConnectionHealth()
        self.reconnect_attempts = reconnect_attempts
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._connect_lock = threading.Lock()
        self._closing = threading.Event()
        self._reconnect_thread: threading.Thread | None = None
        self.monitor = HealthMonitor(
            self._probe,
            self.health,
            self.request_reconnect,
            interval=monitor_interval,
            probe_timeout=probe_timeout,
            failure_threshold=failure_threshold,
        )

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_closed(self) -> bool:
        return self._closing.is_set()

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            self._state = state

    def _probe(self) -> None:
        # Fails while DISCONNECTED, so the monitor keeps requesting reconnects
        self.current_handle().ping()

    def _pause(self, delay: float) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        else:
            # Returns early when disconnect_gracefully() is called
            self._closing.wait(delay)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        stop = retry_state.retry_object.stop
        total = getattr(stop, "max_attempt_number", 0)
        left = total - retry_state.attempt_number
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        _log.warning(
            "Connection attempt %d failed: %s. Retrying in %.2fs (%d attempts left)",
            retry_state.attempt_number,
            exc,
            delay,
            left,
        )

    def connect_with_retry(self, retries: int | None = None) -> bool:
        """
        Connect, retrying up to *retries* more times with exponential backoff.

        Never raises. Returns True once connected, False after the last
        attempt failed (or if the manager has been shut down). Concurrent
        callers share one attempt: whoever waits on the lock returns True
        straight away if the connection is healthy by then.
        """
        retries = self.retry_policy.max_retries if retries is None else retries
        with self._connect_lock:
            if self.is_closed:
                _log.debug("Connect skipped: manager is shut down")
                return False
            if self.state is ConnectionState.CONNECTED and self.health.is_healthy:
                return True

            previous = self.state
            self._set_state(
                ConnectionState.RECONNECTING
                if previous in _USABLE_STATES
                else ConnectionState.CONNECTING
            )
            retrying = Retrying(
                stop=stop_after_attempt(retries + 1),
                wait=wait_backoff(self.retry_policy),
                sleep=self._pause,
                before_sleep=self._log_retry,
            )
            try:
                for attempt in retrying:
                    with attempt:
                        if self.is_closed:
                            break
                        self.client.connect()
            except RetryError as e:
                _log.error(
                    "Failed to connect to database after %d attempts: %s",
                    e.last_attempt.attempt_number,
                    e.last_attempt.exception(),
                )
                self.health.mark_unhealthy()
                self._set_state(ConnectionState.DISCONNECTED)
                return False

            if self.is_closed:
                self._set_state(ConnectionState.DISCONNECTED)
                return False

            self.health.mark_connected()
            self._set_state(ConnectionState.CONNECTED)
            _log.info("Successfully connected to database")
            self.monitor.start()
        return True

    def request_reconnect(self) -> None:
        """Bounded reconnect on a background thread; skipped if one is already running."""
        with self._state_lock:
            if self._closing.is_set():
                return
            if self._reconnect_thread is not None and self._reconnect_thread.is_alive():
                _log.debug("Reconnect already in progress")
                return
            self._reconnect_thread = threading.Thread(
                target=self.connect_with_retry,
                args=(self.reconnect_attempts,),
                name="db-reconnect",
                daemon=True,
            )
            self._reconnect_thread.start()

    def current_handle(self) -> DatabaseClient:
        """The live client. Raises NotConnectedError unless connected or reconnecting."""
        state = self.state
        if state not in _USABLE_STATES:
            raise NotConnectedError(f"Database is not connected (state={state.value})")
        return self.client

    def get_health_status(self) -> HealthStatus:
        return self.health.snapshot(state=self.state)

    def disconnect_gracefully(self) -> None:
        """Stop the monitor, then close the client. Safe to call more than once."""
        with self._state_lock:
            if self._closing.is_set():
                return
            self._closing.set()

        # An in-flight connect sees the closing flag at its next attempt or
        # backoff sleep; once it has let go the monitor cannot be restarted.
        with self._connect_lock:
            self.monitor.stop()
        try:
            self.client.close()
            _log.info("Database connections closed gracefully")
        except Exception:
            _log.exception("Error during database disconnect")
        finally:
            self.health.mark_unhealthy()
            self._set_state(ConnectionState.DISCONNECTED)
