import os
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest
import redis

from app.config.settings import Settings
from app.database.connection import apply_schema, close_pool, get_connection, init_pool
from app.database.models import DocumentRecord, PreprocessState
from app.queue.models import JobOptions, QueueKeys


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docprep_test")
    os.environ.setdefault("REDIS_DB", "15")
    os.environ.setdefault("DB_CONNECT_TIMEOUT_SECONDS", "5")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def clean_tables(db_conn: psycopg.Connection[Any]) -> Generator[None, None, None]:
    db_conn.execute("TRUNCATE documents CASCADE")
    db_conn.commit()
    yield
    db_conn.execute("TRUNCATE documents CASCADE")
    db_conn.commit()


@pytest.fixture
def redis_conn(test_settings: Settings) -> Generator[redis.Redis, None, None]:
    client = redis.Redis(
        host=test_settings.redis_host,
        port=test_settings.redis_port,
        db=test_settings.redis_db,
        decode_responses=True,
        socket_connect_timeout=2,
    )
    try:
        client.ping()
    except redis.RedisError as e:
        client.close()
        pytest.skip(f"Redis not available: {e}")
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def queue_name(redis_conn: redis.Redis) -> Generator[str, None, None]:
    """Fresh queue per test; its keys are removed afterwards."""
    name = f"test-{uuid.uuid4().hex[:8]}"
    yield name
    keys = list(redis_conn.scan_iter(f"{QueueKeys.for_queue(name).prefix}:*"))
    if keys:
        redis_conn.delete(*keys)


@pytest.fixture
def job_options() -> JobOptions:
    return JobOptions(
        attempts=3, backoff_seconds=0, timeout_seconds=30, keep_completed=10, keep_failed=10
    )


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    root = tmp_path / "files"
    root.mkdir()
    return root


@pytest.fixture
def seed_documents(
    db_conn: psycopg.Connection[Any],
    clean_tables: None,
) -> Callable[..., DocumentRecord]:
    """Insert documents directly. Returns a function taking (id, status[, owner])."""

    def _seed(document_id: str, status: str, owner_id: str = "owner-1") -> DocumentRecord:
        db_conn.execute(
            """
            INSERT INTO documents
            (id, owner_id, url, original_name, size_bytes, preprocess_status)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (document_id, owner_id, f"file:///nowhere/{document_id}", "seed.pdf", 10, status),
        )
        db_conn.commit()
        return DocumentRecord(
            id=document_id,
            owner_id=owner_id,
            url=f"file:///nowhere/{document_id}",
            original_name="seed.pdf",
            size_bytes=10,
            preprocess=PreprocessState(status=status),
        )

    return _seed
