"""
Query executor: run a unit of work with a deadline and retry transient failures.

A unit of work is any callable taking the session handed out by the client
(``work(session) -> result``). execute() runs it in a plain session,
transaction() inside BEGIN/COMMIT. Each attempt runs on a worker thread so the
caller can stop waiting when the deadline passes or the caller cancels.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)

from .client import DatabaseClient
from .errors import (
    QueryCancelledError,
    QueryTimeoutError,
    RetriesExhaustedError,
    classify,
    is_retryable,
)
from .health import ConnectionState
from .manager import ConnectionManager
from .retry import RetryPolicy, wait_backoff

_log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SLOW_QUERY_THRESHOLD_SEC = 5.0


class CancellationToken:
    """Caller-side cancel switch. cancel() wakes anyone waiting on the token."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._wakers: set[threading.Event] = set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            wakers = list(self._wakers)
        for w in wakers:
            w.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    @contextmanager
    def linked(self, waker: threading.Event) -> Iterator[None]:
        """Set *waker* on cancel while inside the block."""
        with self._lock:
            self._wakers.add(waker)
            if self._event.is_set():
                waker.set()
        try:
            yield
        finally:
            with self._lock:
                self._wakers.discard(waker)


@dataclass
class ExecuteOptions:
    """Per-call overrides; None means "use the executor default"."""

    max_retries: int | None = None
    timeout: float | None = None
    retry_base_delay: float | None = None
    cancel_token: CancellationToken | None = None
    # time.monotonic() value after which the caller no longer wants an answer
    deadline: float | None = None


class _Inflight:
    __slots__ = ("handle",)

    def __init__(self) -> None:
        self.handle: Any = None


class QueryExecutor:
    def __init__(
        self,
        manager: ConnectionManager,
        *,
        retry_policy: RetryPolicy | None = None,
        query_timeout: float | None = None,
        transaction_timeout: float | None = None,
        slow_query_threshold: float = DEFAULT_SLOW_QUERY_THRESHOLD_SEC,
        reconnect_attempts: int | None = None,
        max_workers: int | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        pool_config = manager.pool_config
        self.manager = manager
        self.retry_policy = retry_policy or manager.retry_policy
        self.query_timeout = query_timeout or pool_config.query_timeout
        self.transaction_timeout = transaction_timeout or pool_config.transaction_timeout
        self.slow_query_threshold = slow_query_threshold
        self.reconnect_attempts = (
            manager.reconnect_attempts if reconnect_attempts is None else reconnect_attempts
        )
        self._sleep = sleep
        # One worker per pooled connection; more would only queue on the pool
        self._workers = ThreadPoolExecutor(
            max_workers=max_workers or pool_config.max_connections,
            thread_name_prefix="db-query",
        )

    def execute(
        self, work: Callable[[Any], T], options: ExecuteOptions | None = None
    ) -> T:
        """Run ``work(session)`` with timeout and retry."""
        return self._run(work, "session", self.query_timeout, options or ExecuteOptions())

    def transaction(
        self, work: Callable[[Any], T], options: ExecuteOptions | None = None
    ) -> T:
        """Run ``work(session)`` inside one transaction; a failed attempt is rolled back."""
        return self._run(
            work, "transaction", self.transaction_timeout, options or ExecuteOptions()
        )

    def close(self) -> None:
        """Stop accepting work. Attempts already running finish on their own."""
        self._workers.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        work: Callable[[Any], T],
        mode: str,
        default_timeout: float,
        options: ExecuteOptions,
    ) -> T:
        policy = self.retry_policy
        if options.max_retries is not None:
            policy = replace(policy, max_retries=options.max_retries)
        if options.retry_base_delay is not None:
            policy = replace(policy, base_delay=options.retry_base_delay)
        timeout = options.timeout or default_timeout
        token = options.cancel_token

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_backoff(policy),
            retry=retry_if_exception(is_retryable),
            sleep=lambda delay: self._pause(delay, token, options.deadline),
            before_sleep=self._log_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._check_cancelled(token, options.deadline)
                    self._ensure_connected(attempt.retry_state.attempt_number)
                    result, latency = self._attempt(
                        work, mode, timeout, token, options.deadline
                    )
        except RetryError as e:
            last = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            self.manager.health.record_query_failure()
            _log.error("Database query failed after %d attempts: %s", attempts, last)
            raise RetriesExhaustedError(attempts, last) from last
        except QueryCancelledError:
            raise
        except Exception:
            self.manager.health.record_query_failure()
            raise

        self.manager.health.record_query_success(latency)
        if latency > self.slow_query_threshold:
            duration_ms = latency * 1000
            _log.warning(
                "Slow query detected: %.0fms",
                duration_ms,
                extra={
                    "duration_ms": duration_ms,
                    "attempts": attempt.retry_state.attempt_number,
                    "mode": mode,
                },
            )
        return result

    @staticmethod
    def _check_cancelled(
        token: CancellationToken | None, deadline: float | None
    ) -> None:
        if token is not None and token.cancelled:
            raise QueryCancelledError("Database call cancelled by caller")
        if deadline is not None and time.monotonic() >= deadline:
            raise QueryCancelledError("Caller deadline passed before the query finished")

    def _ensure_connected(self, attempt_number: int) -> None:
        if (
            self.manager.health.is_healthy
            and self.manager.state is ConnectionState.CONNECTED
        ):
            return
        _log.info(
            "Connection unhealthy, attempting reconnection (attempt %d)", attempt_number
        )
        # Failure is not fatal here: current_handle() raises NotConnectedError
        # and that attempt is retried like any other transient error.
        self.manager.connect_with_retry(self.reconnect_attempts)

    def _attempt(
        self,
        work: Callable[[Any], T],
        mode: str,
        timeout: float,
        token: CancellationToken | None,
        deadline: float | None,
    ) -> tuple[T, float]:
        client = self.manager.current_handle()
        inflight = _Inflight()
        wait_for = timeout
        deadline_binds = False
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining < wait_for:
                wait_for, deadline_binds = max(remaining, 0.0), True

        waker = threading.Event()
        started = time.monotonic()
        future = self._workers.submit(_invoke, client, mode, work, inflight)
        future.add_done_callback(lambda _: waker.set())
        if token is not None:
            with token.linked(waker):
                waker.wait(wait_for)
        else:
            waker.wait(wait_for)

        if future.done():
            return future.result(), time.monotonic() - started

        future.cancel()
        self._interrupt(client, inflight)
        if token is not None and token.cancelled:
            raise QueryCancelledError("Database call cancelled by caller")
        if deadline_binds:
            raise QueryCancelledError("Caller deadline passed before the query finished")
        raise QueryTimeoutError(timeout)

    @staticmethod
    def _interrupt(client: DatabaseClient, inflight: _Inflight) -> None:
        if inflight.handle is None:
            return
        try:
            client.interrupt(inflight.handle)
        except Exception:
            _log.debug("Interrupting timed-out query failed", exc_info=True)

    def _pause(
        self, delay: float, token: CancellationToken | None, deadline: float | None
    ) -> None:
        if deadline is not None:
            delay = min(delay, max(deadline - time.monotonic(), 0.0))
        if self._sleep is not None:
            self._sleep(delay)
        elif token is not None:
            token.wait(delay)
        else:
            time.sleep(delay)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        kind = classify(exc).value if exc is not None else "unknown"
        _log.warning(
            "Retryable database error (%s), retrying in %.2fs (attempt %d): %s",
            kind,
            delay,
            retry_state.attempt_number,
            exc,
        )


def _invoke(
    client: DatabaseClient, mode: str, work: Callable[[Any], T], inflight: _Inflight
) -> T:
    opener: Callable[[], AbstractContextManager[Any]] = (
        client.transaction if mode == "transaction" else client.session
    )
    with opener() as handle:
        inflight.handle = handle
        return work(handle)
