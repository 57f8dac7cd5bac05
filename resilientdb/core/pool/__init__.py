"""
Resilient access to the application database.

The engine (psycopg / pymysql behind SQLAlchemy) owns the pool; this package
sizes it, watches it, reconnects it and retries transient failures.
"""

from .client import DatabaseClient, EngineClient, UnsupportedClient, build_client
from .config import PoolConfig, compute_pool_config, pool_config_from_settings
from .errors import (
    DatabaseError,
    ErrorClass,
    NotConnectedError,
    QueryCancelledError,
    QueryTimeoutError,
    RetriesExhaustedError,
    UnsupportedRuntimeError,
    classify,
    is_retryable,
)
from .executor import CancellationToken, ExecuteOptions, QueryExecutor
from .health import ConnectionHealth, ConnectionState, HealthStatus
from .manager import ConnectionManager
from .monitor import HealthMonitor
from .retry import RetryPolicy

__all__ = [
    "CancellationToken",
    "ConnectionHealth",
    "ConnectionManager",
    "ConnectionState",
    "DatabaseClient",
    "DatabaseError",
    "EngineClient",
    "ErrorClass",
    "ExecuteOptions",
    "HealthMonitor",
    "HealthStatus",
    "NotConnectedError",
    "PoolConfig",
    "QueryCancelledError",
    "QueryExecutor",
    "QueryTimeoutError",
    "RetriesExhaustedError",
    "RetryPolicy",
    "UnsupportedClient",
    "UnsupportedRuntimeError",
    "build_client",
    "classify",
    "compute_pool_config",
    "is_retryable",
    "pool_config_from_settings",
]
