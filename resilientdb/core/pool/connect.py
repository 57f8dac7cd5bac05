"""
Engine construction for the application database.

psycopg (PostgreSQL) and pymysql (MySQL) are the drivers behind the
SQLAlchemy dialects; the URL picks one. Pool bounds come from PoolConfig.
"""

from typing import Any

from sqlalchemy import Engine
from sqlalchemy.engine import make_url
from sqlmodel import create_engine

from .config import PoolConfig


def _connect_args(backend: str, connect_timeout: float) -> dict[str, Any]:
    """Driver-level connect timeout. Both drivers want whole seconds."""
    if backend in ("postgresql", "mysql"):
        return {"connect_timeout": max(1, int(connect_timeout))}
    return {}


def engine_options(url: str, pool_config: PoolConfig) -> dict[str, Any]:
    """
    create_engine() keyword arguments for *url* sized by *pool_config*.

    - pool_size keeps ``min_connections`` open, max_overflow allows the rest up
      to ``max_connections``.
    - pool_timeout bounds the wait for a free connection.
    - pool_recycle drops connections older than ``idle_timeout``.
    """
    backend = make_url(url).get_backend_name()
    return {
        "pool_size": pool_config.min_connections,
        "max_overflow": pool_config.max_overflow,
        "pool_timeout": pool_config.pool_timeout,
        "pool_recycle": int(pool_config.idle_timeout),
        "pool_pre_ping": True,
        "connect_args": _connect_args(backend, pool_config.connect_timeout),
    }


def create_db_engine(url: str, pool_config: PoolConfig, *, echo: bool = False) -> Engine:
    return create_engine(url, echo=echo, **engine_options(url, pool_config))
