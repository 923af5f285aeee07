class BlobStoreError(Exception):
    """Base exception for blob store operations."""


class BlobDownloadError(BlobStoreError):
    """Raised when a blob cannot be fetched. Treated as transient."""


class BlobNotFoundError(BlobStoreError):
    """Raised when a key does not resolve to a stored object."""
