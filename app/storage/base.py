from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class StoredBlob:
    """Location of an uploaded object. ``key`` doubles as the document id."""

    key: str
    url: str
    size_bytes: int


class BaseBlobStore(ABC):
    """Contract for the storage that hosts original uploads."""

    @abstractmethod
    def upload(self, data: bytes, name: str) -> StoredBlob:
        """Store ``data`` under a new unique key."""

    @abstractmethod
    def download(self, url: str) -> bytes:
        """Fetch an object by URL.

        Raises:
            BlobDownloadError: on any failure, including timeouts.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove an object. Deleting a missing key is not an error."""
