from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "docprep"
    db_username: str = "docprep"
    db_password: str = "secret"
    db_pool_max_size: int = 10
    db_connect_timeout_seconds: int = 30
    db_apply_schema: bool = False

    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_db: int = 0
    redis_producer_max_retries: int = 1
    redis_consumer_backoff_cap_seconds: int = 10

    queue_name: str = "document-preprocess"
    max_job_attempts: int = 3
    job_backoff_seconds: int = 3
    job_timeout_seconds: int = 60
    keep_completed_jobs: int = 100
    keep_failed_jobs: int = 200
    job_poll_interval_seconds: int = 5
    stalled_check_interval_seconds: int = 30
    worker_concurrency: int = 2

    max_source_size_bytes: int = 20 * 1024 * 1024
    download_timeout_seconds: int = 30
    chunk_size: int = 1200
    chunk_overlap: int = 250

    pdf_engine: str = "pdfplumber"

    blob_store: str = "local"
    files_root: str = "/app/files"
    blob_public_base_url: str = ""

    shutdown_timeout_seconds: int = 30
    respawn_delay_seconds: float = 1.0

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
        return self
