import re
import uuid
from pathlib import Path
from urllib.parse import unquote, urlparse

from app.storage.base import BaseBlobStore, StoredBlob
from app.storage.exceptions import BlobDownloadError, BlobNotFoundError
from app.storage.http_download import download_bytes

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class LocalBlobStore(BaseBlobStore):
    """Stores uploads as files under ``files_root``.

    URLs are ``{public_base_url}/{key}`` when a base URL is configured (files
    are served by something in front of the directory), otherwise ``file://``
    URLs that the worker reads straight from disk.
    """

    def __init__(
        self,
        files_root: Path,
        public_base_url: str = "",
        download_timeout_seconds: float = 30,
    ) -> None:
        self._files_root = files_root
        self._public_base_url = public_base_url.rstrip("/")
        self._download_timeout_seconds = download_timeout_seconds

    def upload(self, data: bytes, name: str) -> StoredBlob:
        key = self._new_key(name)
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return StoredBlob(key=key, url=self._url_for(key, path), size_bytes=len(data))

    def download(self, url: str) -> bytes:
        if url.startswith("file://"):
            path = Path(unquote(urlparse(url).path))
            try:
                return path.read_bytes()
            except OSError as exc:
                raise BlobDownloadError(f"Cannot read {path}: {exc}") from exc
        return download_bytes(url, self._download_timeout_seconds)

    def delete(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)

    def _resolve(self, key: str) -> Path:
        root = self._files_root.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise BlobNotFoundError(f"Key escapes storage root: {key}")
        return path

    def _url_for(self, key: str, path: Path) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return path.as_uri()

    @staticmethod
    def _new_key(name: str) -> str:
        stem = _UNSAFE_NAME_CHARS.sub("_", Path(name).name).strip("._") or "upload"
        return f"{uuid.uuid4().hex}-{stem[:80]}"
