from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from app.config.settings import Settings
from app.logging.logger import Log

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_pool: ConnectionPool | None = None


def build_conninfo(settings: Settings) -> str:
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


def init_pool(settings: Settings, wait: bool = True) -> None:
    """Initialize the process connection pool from settings.

    With ``wait`` the call blocks until the database accepts connections or
    ``db_connect_timeout_seconds`` elapses (raises ``PoolTimeout``).
    """
    global _pool  # noqa: PLW0603
    if _pool is not None:
        return
    pool = ConnectionPool(
        build_conninfo(settings),
        min_size=1,
        max_size=settings.db_pool_max_size,
        open=True,
    )
    if wait:
        try:
            pool.wait(timeout=settings.db_connect_timeout_seconds)
        except Exception:
            pool.close()
            raise
    _pool = pool
    Log.info(f"Database pool ready ({settings.db_host}:{settings.db_port}/{settings.db_database})")


def close_pool() -> None:
    """Close the process connection pool."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        _pool.close()
        _pool = None
        Log.info("Database pool closed")


@contextmanager
def get_connection() -> Generator[psycopg.Connection[Any], None, None]:
    """Yield a connection from the pool. Caller manages commit/rollback."""
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    with _pool.connection() as conn:
        yield conn


def apply_schema() -> None:
    """Create tables and indexes if they do not exist."""
    sql = SCHEMA_PATH.read_text(encoding="utf-8")
    with get_connection() as conn:
        conn.execute(sql)  # type: ignore[arg-type]
        conn.commit()
    Log.info("Database schema applied")
