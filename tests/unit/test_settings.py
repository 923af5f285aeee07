import pytest
from pydantic import ValidationError

from app.config.settings import Settings


class TestSettingsDefaults:
    def test_default_app_env(self) -> None:
        s = Settings()
        assert s.app_env == "dev"

    def test_default_db_port(self) -> None:
        s = Settings()
        assert s.db_port == 5432

    def test_default_queue_name(self) -> None:
        s = Settings()
        assert s.queue_name == "document-preprocess"

    def test_default_retry_policy(self) -> None:
        s = Settings()
        assert s.max_job_attempts == 3
        assert s.job_backoff_seconds == 3

    def test_default_job_timeout(self) -> None:
        s = Settings()
        assert s.job_timeout_seconds == 60

    def test_default_retention(self) -> None:
        s = Settings()
        assert s.keep_completed_jobs == 100
        assert s.keep_failed_jobs == 200

    def test_default_chunking(self) -> None:
        s = Settings()
        assert s.chunk_size == 1200
        assert s.chunk_overlap == 250

    def test_default_source_limit_is_twenty_mib(self) -> None:
        s = Settings()
        assert s.max_source_size_bytes == 20 * 1024 * 1024

    def test_default_pdf_engine(self) -> None:
        s = Settings()
        assert s.pdf_engine == "pdfplumber"


class TestSettingsFromEnv:
    def test_loads_app_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_ENV", "production")
        s = Settings()
        assert s.app_env == "production"

    def test_loads_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        s = Settings()
        assert s.log_level == "DEBUG"

    def test_loads_db_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "db.example.com")
        s = Settings()
        assert s.db_host == "db.example.com"

    def test_loads_redis_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_PORT", "6380")
        s = Settings()
        assert s.redis_port == 6380

    def test_loads_worker_concurrency(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKER_CONCURRENCY", "4")
        s = Settings()
        assert s.worker_concurrency == 4

    def test_loads_db_apply_schema_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_APPLY_SCHEMA", "true")
        s = Settings()
        assert s.db_apply_schema is True

    def test_invalid_port_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PORT", "not_a_number")
        with pytest.raises(ValidationError):
            Settings()


class TestChunkingValidation:
    def test_overlap_must_be_smaller_than_chunk_size(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "100")
        monkeypatch.setenv("CHUNK_OVERLAP", "100")
        with pytest.raises(ValidationError, match="chunk_overlap"):
            Settings()

    def test_chunk_size_must_be_positive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "0")
        monkeypatch.setenv("CHUNK_OVERLAP", "0")
        with pytest.raises(ValidationError, match="chunk_size"):
            Settings()

    def test_negative_overlap_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_OVERLAP", "-1")
        with pytest.raises(ValidationError):
            Settings()
