"""
Database error types and the retry-eligibility classifier.

classify() is the single place that decides whether a failure is worth
retrying. Known driver codes live in TRANSIENT_ERROR_CODES so the policy can
be audited and extended without touching the executor.
"""

from enum import Enum

import pymysql
from sqlalchemy import exc as sa_exc


class ErrorClass(str, Enum):
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    FATAL = "fatal"
    CANCELLED = "cancelled"


class DatabaseError(Exception):
    """Base class for errors raised by the database layer itself."""


class NotConnectedError(DatabaseError):
    """No usable connection handle (never connected, shut down, or reconnect failed)."""


class UnsupportedRuntimeError(DatabaseError):
    """Database access attempted from a runtime that has no database client."""


class QueryTimeoutError(DatabaseError, TimeoutError):
    """The executor's own deadline elapsed before the unit of work finished."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Database query timed out after {timeout:g}s")


class QueryCancelledError(DatabaseError):
    """The caller cancelled the call or its deadline passed."""


class RetriesExhaustedError(DatabaseError):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Database query failed after {attempts} attempts: {last_error}")


# Driver codes that mean "the connection, not the statement, is the problem".
# Keys are strings so SQLSTATE and MySQL errno share one table.
TRANSIENT_ERROR_CODES: dict[str, str] = {
    # PostgreSQL SQLSTATE
    "08000": "connection_exception",
    "08001": "sqlclient_unable_to_establish_sqlconnection",
    "08003": "connection_does_not_exist",
    "08004": "sqlserver_rejected_establishment_of_sqlconnection",
    "08006": "connection_failure",
    "08007": "transaction_resolution_unknown",
    "08P01": "protocol_violation",
    "53300": "too_many_connections",
    "57014": "query_canceled",
    "57P01": "admin_shutdown",
    "57P02": "crash_shutdown",
    "57P03": "cannot_connect_now",
    # MySQL / MariaDB errno
    "1040": "ER_CON_COUNT_ERROR",
    "1053": "ER_SERVER_SHUTDOWN",
    "1205": "ER_LOCK_WAIT_TIMEOUT",
    "2002": "CR_CONNECTION_ERROR",
    "2003": "CR_CONN_HOST_ERROR",
    "2006": "CR_SERVER_GONE_ERROR",
    "2013": "CR_SERVER_LOST",
    "2055": "CR_SERVER_LOST_EXTENDED",
    "3024": "ER_QUERY_TIMEOUT",
}

_TRANSIENT_MESSAGE_MARKERS = ("connection", "timeout")


def _error_code(error: BaseException) -> str | None:
    if isinstance(error, pymysql.err.MySQLError):
        if error.args and isinstance(error.args[0], int):
            return str(error.args[0])
        return None
    for attr in ("sqlstate", "pgcode", "code"):
        code = getattr(error, attr, None)
        if code is not None:
            return str(code)
    return None


def _related(error: BaseException) -> list[BaseException]:
    """The error plus the driver errors it wraps (SQLAlchemy .orig, __cause__)."""
    chain: list[BaseException] = []
    current: BaseException | None = error
    while current is not None and current not in chain and len(chain) < 5:
        chain.append(current)
        orig = getattr(current, "orig", None)
        current = orig if isinstance(orig, BaseException) else current.__cause__
    return chain


def classify(error: BaseException) -> ErrorClass:
    """Map any exception to TRANSIENT, TIMEOUT, FATAL or CANCELLED."""
    if isinstance(error, QueryCancelledError):
        return ErrorClass.CANCELLED
    if isinstance(error, QueryTimeoutError):
        return ErrorClass.TIMEOUT
    if isinstance(error, NotConnectedError):
        return ErrorClass.TRANSIENT
    if isinstance(error, (UnsupportedRuntimeError, RetriesExhaustedError)):
        return ErrorClass.FATAL

    # Pool exhaustion and invalidated connections
    if isinstance(error, (sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return ErrorClass.TRANSIENT
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return ErrorClass.TRANSIENT

    for e in _related(error):
        code = _error_code(e)
        if code is not None and code in TRANSIENT_ERROR_CODES:
            return ErrorClass.TRANSIENT
        if isinstance(e, (ConnectionError, TimeoutError)):
            return ErrorClass.TRANSIENT

    message = str(error).lower()
    if any(marker in message for marker in _TRANSIENT_MESSAGE_MARKERS):
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def is_retryable(error: BaseException) -> bool:
    return classify(error) in (ErrorClass.TRANSIENT, ErrorClass.TIMEOUT)
