"""
DatabaseClient: the capability the connection manager and executor need from a driver.

Two implementations, chosen once at construction:

- EngineClient: SQLAlchemy engine + SQLModel sessions (psycopg / pymysql).
- UnsupportedClient: for runtimes without database access; every unit of
  work fails with UnsupportedRuntimeError.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol

from sqlalchemy import Engine
from sqlmodel import Session, select

from .config import PoolConfig
from .connect import create_db_engine
from .errors import NotConnectedError, UnsupportedRuntimeError

_log = logging.getLogger(__name__)

# Session.info key holding the DBAPI connection checked out by the worker
DRIVER_CONNECTION_KEY = "driver_connection"


class DatabaseClient(Protocol):
    def connect(self) -> None:
        """Open (or re-open) the underlying connections; raise on failure."""
        ...

    def close(self) -> None: ...

    def ping(self) -> None:
        """Run a trivial query; raise on failure."""
        ...

    def session(self) -> AbstractContextManager[Any]: ...

    def transaction(self) -> AbstractContextManager[Any]: ...

    def interrupt(self, handle: Any) -> None:
        """Best-effort cancel of whatever is running on *handle*."""
        ...


class EngineClient:
    """DatabaseClient over a SQLAlchemy engine; the engine owns the pool."""

    def __init__(self, url: str, pool_config: PoolConfig, *, echo: bool = False) -> None:
        self.url = url
        self.pool_config = pool_config
        self.echo = echo
        self._engine: Engine | None = None
        self._lock = threading.Lock()

    @property
    def engine(self) -> Engine | None:
        return self._engine

    def connect(self) -> None:
        """
        Build a fresh engine, prove it with SELECT 1, then swap it in.

        The previous engine keeps serving until the swap, so readers never see
        a half-built engine. Checked-out connections of the old engine finish
        normally; dispose() only drops its idle ones.
        """
        engine = create_db_engine(self.url, self.pool_config, echo=self.echo)
        try:
            with Session(engine) as session:
                session.exec(select(1)).first()
        except Exception:
            engine.dispose()
            raise
        with self._lock:
            old, self._engine = self._engine, engine
        if old is not None:
            old.dispose()

    def close(self) -> None:
        with self._lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()

    def _require_engine(self) -> Engine:
        engine = self._engine
        if engine is None:
            raise NotConnectedError("Database engine is not connected")
        return engine

    def ping(self) -> None:
        with Session(self._require_engine()) as session:
            session.exec(select(1)).first()

    @staticmethod
    def _capture_driver_connection(session: Session) -> None:
        """
        Check out the connection on the calling (worker) thread and remember the
        driver connection, so interrupt() never has to touch the Session.
        """
        raw = session.connection().connection.driver_connection
        session.info[DRIVER_CONNECTION_KEY] = raw

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self._require_engine()) as session:
            self._capture_driver_connection(session)
            yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session inside BEGIN; commits on normal exit, rolls back on exception."""
        with Session(self._require_engine()) as session, session.begin():
            self._capture_driver_connection(session)
            yield session

    def interrupt(self, handle: Any) -> None:
        """
        Cancel the statement running on *handle*'s driver connection.

        Called from the waiting thread while the worker may still use the
        Session, so only the captured driver connection is read. A session
        still waiting for a pooled connection has nothing to cancel.
        """
        info = getattr(handle, "info", None)
        raw = info.get(DRIVER_CONNECTION_KEY) if isinstance(info, dict) else None
        if raw is None:
            _log.debug("No driver connection to interrupt")
            return
        # psycopg: cancel(); sqlite3: interrupt(); pymysql has neither
        for name in ("cancel", "interrupt"):
            fn = getattr(raw, name, None)
            if callable(fn):
                try:
                    fn()
                except Exception:
                    _log.debug("Driver %s() failed", name, exc_info=True)
                return


class UnsupportedClient:
    """Stand-in for runtimes that cannot reach the database (e.g. edge functions)."""

    def __init__(self, reason: str = "Database access is not supported in this runtime") -> None:
        self.reason = reason

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def ping(self) -> None:
        pass

    def session(self) -> AbstractContextManager[Any]:
        raise UnsupportedRuntimeError(self.reason)

    def transaction(self) -> AbstractContextManager[Any]:
        raise UnsupportedRuntimeError(self.reason)

    def interrupt(self, handle: Any) -> None:
        pass


def build_client(settings: Any, pool_config: PoolConfig) -> DatabaseClient:
    """Pick the client for this process from settings."""
    if settings.EDGE_RUNTIME:
        return UnsupportedClient("Database access is not available in the edge runtime")
    return EngineClient(
        settings.SQLALCHEMY_DATABASE_URI, pool_config, echo=settings.DB_ECHO
    )
