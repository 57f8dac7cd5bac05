"""
Pool sizing for the application database.

The pool itself lives in the SQLAlchemy engine; this module only decides how
big it may grow and how long callers wait, based on where the process runs.
"""

from dataclasses import dataclass
from typing import Any

# (managed_platform, production) -> (max_connections, min_connections)
_POOL_BOUNDS: dict[tuple[bool, bool], tuple[int, int]] = {
    (True, True): (20, 2),
    (False, True): (15, 2),
    (True, False): (10, 1),
    (False, False): (10, 1),
}

POOL_TIMEOUT_SEC = 45.0
IDLE_TIMEOUT_SEC = 90.0
CONNECT_TIMEOUT_SEC = 30.0
QUERY_TIMEOUT_SEC = 60.0
TRANSACTION_TIMEOUT_SEC = 120.0


@dataclass(frozen=True)
class PoolConfig:
    """Immutable pool bounds and timeouts (seconds)."""

    max_connections: int
    min_connections: int
    pool_timeout: float = POOL_TIMEOUT_SEC
    idle_timeout: float = IDLE_TIMEOUT_SEC
    connect_timeout: float = CONNECT_TIMEOUT_SEC
    query_timeout: float = QUERY_TIMEOUT_SEC
    transaction_timeout: float = TRANSACTION_TIMEOUT_SEC

    def __post_init__(self) -> None:
        if self.min_connections < 1:
            raise ValueError("min_connections must be >= 1")
        if self.max_connections < self.min_connections:
            raise ValueError("max_connections must be >= min_connections")
        for name in (
            "pool_timeout",
            "idle_timeout",
            "connect_timeout",
            "query_timeout",
            "transaction_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @property
    def max_overflow(self) -> int:
        """Connections the engine may open beyond the persistent ``min_connections``."""
        return self.max_connections - self.min_connections


def compute_pool_config(is_managed_platform: bool, is_production: bool) -> PoolConfig:
    """Pool bounds for the deployment context. Pure and deterministic."""
    max_conn, min_conn = _POOL_BOUNDS[(bool(is_managed_platform), bool(is_production))]
    return PoolConfig(max_connections=max_conn, min_connections=min_conn)


def pool_config_from_settings(settings: Any) -> PoolConfig:
    return compute_pool_config(
        is_managed_platform=settings.MANAGED_PLATFORM,
        is_production=settings.is_production,
    )
