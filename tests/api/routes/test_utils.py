"""Tests for /api/v1/utils routes (liveness, readiness and database health)."""

from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from resilientdb.api.deps import get_database
from resilientdb.core.config import settings
from resilientdb.core.db import Database, build_database
from resilientdb.core.pool import NotConnectedError, RetriesExhaustedError
from resilientdb.main import app, database_unavailable_handler
from tests.utils.client import FakeClient


@pytest.fixture
def database() -> Generator[Database, None, None]:
    db = build_database(settings, client=FakeClient())
    yield db
    db.shutdown()


@pytest.fixture
def client(database: Database) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_liveness(client: TestClient) -> None:
    r = client.get(f"{settings.API_V1_STR}/utils/liveness/")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_200_when_ready(
    client: TestClient, database: Database
) -> None:
    assert database.manager.connect_with_retry() is True
    r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_503_before_connect(client: TestClient) -> None:
    r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 503
    data = r.json()
    assert data.get("success") is False
    assert data["data"] == ["database"]


def test_health_check_returns_503_when_readiness_fails(client: TestClient) -> None:
    with patch(
        "resilientdb.api.routes.utils.readiness_check",
        return_value=(False, ["database"]),
    ):
        r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 503
    assert "database" in r.json()["data"]


def test_database_health_reports_status(
    client: TestClient, database: Database
) -> None:
    database.manager.connect_with_retry()
    database.execute(lambda session: None)
    r = client.get(f"{settings.API_V1_STR}/utils/health-check/database/")
    assert r.status_code == 200
    data = r.json()
    assert data["state"] == "connected"
    assert data["is_healthy"] is True
    assert data["consecutive_failures"] == 0
    assert data["total_queries"] == 1
    assert data["failed_queries"] == 0
    assert data["success_rate_percent"] == 100.0


@pytest.mark.parametrize(
    "error",
    [
        RetriesExhaustedError(6, ConnectionResetError("reset")),
        NotConnectedError("Database is not connected"),
    ],
)
def test_database_unavailable_maps_to_503(error: Exception) -> None:
    probe_app = FastAPI()
    probe_app.add_exception_handler(type(error), database_unavailable_handler)

    @probe_app.get("/items")
    def items() -> None:
        raise error

    r = TestClient(probe_app).get("/items")
    assert r.status_code == 503
    assert r.json() == {"detail": "Service temporarily unavailable"}


def test_lifespan_starts_and_shuts_down_database() -> None:
    db = build_database(settings, client=FakeClient())
    with patch("resilientdb.main.build_database", return_value=db):
        with TestClient(app):
            assert app.state.database is db
            assert db.manager.connect_with_retry() is True
    assert db.manager.is_closed is True
