from collections.abc import Generator

import pytest

from resilientdb.core.pool import (
    ConnectionManager,
    PoolConfig,
    QueryExecutor,
    RetryPolicy,
)
from tests.utils.client import FakeClient


@pytest.fixture
def pool_config() -> PoolConfig:
    return PoolConfig(
        max_connections=4,
        min_connections=1,
        query_timeout=2.0,
        transaction_timeout=2.0,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the code under test (nothing actually sleeps)."""
    return []


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def manager(
    client: FakeClient, pool_config: PoolConfig, sleeps: list[float]
) -> Generator[ConnectionManager, None, None]:
    m = ConnectionManager(
        client,
        pool_config,
        retry_policy=RetryPolicy(max_retries=5, base_delay=1.0, max_delay=30.0),
        monitor_interval=3600,
        probe_timeout=1.0,
        sleep=sleeps.append,
    )
    yield m
    m.disconnect_gracefully()


@pytest.fixture
def executor(
    manager: ConnectionManager, sleeps: list[float]
) -> Generator[QueryExecutor, None, None]:
    ex = QueryExecutor(manager, sleep=sleeps.append)
    yield ex
    ex.close()
