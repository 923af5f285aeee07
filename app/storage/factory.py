from pathlib import Path

from app.config.settings import Settings
from app.storage.base import BaseBlobStore
from app.storage.local_adapter import LocalBlobStore


class BlobStoreFactory:
    """Creates the blob store named by ``settings.blob_store``."""

    @classmethod
    def create(cls, settings: Settings) -> BaseBlobStore:
        kind = settings.blob_store.strip().lower()
        if kind == "local":
            return LocalBlobStore(
                files_root=Path(settings.files_root),
                public_base_url=settings.blob_public_base_url,
                download_timeout_seconds=settings.download_timeout_seconds,
            )
        raise ValueError(f"Unknown blob store '{kind}'. Choose from: ['local']")
