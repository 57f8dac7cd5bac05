"""
Process-level wiring: one Database per process, built from settings.

    database = build_database()
    database.start()            # background connect, never fails startup
    rows = database.execute(lambda s: s.exec(select(Item)).all())
    database.shutdown()
"""

import logging
import signal
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from resilientdb.core.config import Settings, settings as default_settings
from resilientdb.core.pool import (
    ConnectionManager,
    DatabaseClient,
    ExecuteOptions,
    HealthStatus,
    QueryExecutor,
    RetryPolicy,
    UnsupportedClient,
    UnsupportedRuntimeError,
    build_client,
    pool_config_from_settings,
)

_log = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """What request handlers and the process lifecycle talk to."""

    def __init__(self, manager: ConnectionManager, executor: QueryExecutor) -> None:
        self.manager = manager
        self.executor = executor
        self._shutdown_lock = threading.Lock()
        self._shut_down = False

    @property
    def supported(self) -> bool:
        """False in runtimes without database access (edge functions)."""
        return not isinstance(self.manager.client, UnsupportedClient)

    def _require_supported(self) -> None:
        client = self.manager.client
        if isinstance(client, UnsupportedClient):
            raise UnsupportedRuntimeError(client.reason)

    def start(self) -> threading.Thread | None:
        """Connect in the background. Startup never waits for, or fails on, the database."""
        if not self.supported:
            _log.info("Database client unsupported in this runtime; not connecting")
            return None
        thread = threading.Thread(
            target=self._connect_in_background, name="db-connect", daemon=True
        )
        thread.start()
        return thread

    def _connect_in_background(self) -> None:
        if not self.manager.connect_with_retry():
            _log.warning("App will continue but database operations may fail")

    def execute(
        self, work: Callable[[Any], T], options: ExecuteOptions | None = None
    ) -> T:
        self._require_supported()
        return self.executor.execute(work, options)

    def transaction(
        self, work: Callable[[Any], T], options: ExecuteOptions | None = None
    ) -> T:
        self._require_supported()
        return self.executor.transaction(work, options)

    def get_health_status(self) -> HealthStatus:
        return self.manager.get_health_status()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shut_down:
                return
            self._shut_down = True
        self.manager.disconnect_gracefully()
        self.executor.close()


def build_database(
    settings: Settings = default_settings, *, client: DatabaseClient | None = None
) -> Database:
    pool_config = pool_config_from_settings(settings)
    policy = RetryPolicy(
        max_retries=settings.DB_MAX_RETRIES,
        base_delay=settings.DB_RETRY_BASE_DELAY,
        max_delay=settings.DB_RETRY_MAX_DELAY,
    )
    manager = ConnectionManager(
        client or build_client(settings, pool_config),
        pool_config,
        retry_policy=policy,
        monitor_interval=settings.DB_HEALTH_CHECK_INTERVAL,
        probe_timeout=settings.DB_HEALTH_PROBE_TIMEOUT,
        failure_threshold=settings.DB_HEALTH_FAILURE_THRESHOLD,
        reconnect_attempts=settings.DB_RECONNECT_ATTEMPTS,
    )
    executor = QueryExecutor(
        manager, slow_query_threshold=settings.DB_SLOW_QUERY_THRESHOLD
    )
    _log.info(
        "Database configured: max_connections=%d min_connections=%d environment=%s",
        pool_config.max_connections,
        pool_config.min_connections,
        settings.ENVIRONMENT,
    )
    return Database(manager, executor)


def install_signal_handlers(
    database: Database, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)
) -> None:
    """
    Shut the database down on SIGINT/SIGTERM, then hand the signal to whatever
    handler was installed before (so Ctrl-C still raises KeyboardInterrupt).
    Must be called from the main thread.
    """
    for signum in signals:
        previous = signal.getsignal(signum)

        def _handler(
            received: int, frame: Any, _previous: Any = previous
        ) -> None:
            _log.info("Received signal %d, shutting down database", received)
            database.shutdown()
            if callable(_previous):
                _previous(received, frame)

        signal.signal(signum, _handler)
