import time

import httpx

from app.storage.exceptions import BlobDownloadError


def download_bytes(
    url: str,
    timeout_seconds: float,
    client: httpx.Client | None = None,
) -> bytes:
    """GET ``url`` into memory with a wall-clock timeout.

    httpx timeouts bound each connect/read on their own, so the body is
    streamed and checked against a deadline covering the whole transfer.

    Raises:
        BlobDownloadError: invalid URL, non-2xx status, network error or timeout.
    """
    if not url or not isinstance(url, str):
        raise BlobDownloadError("Invalid download URL")

    deadline = time.monotonic() + timeout_seconds
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout_seconds, follow_redirects=True)
    try:
        with http.stream("GET", url, timeout=timeout_seconds) as response:
            response.raise_for_status()
            body = bytearray()
            for chunk in response.iter_bytes():
                body.extend(chunk)
                if time.monotonic() > deadline:
                    raise BlobDownloadError(
                        f"Download timed out after {timeout_seconds}s: {url}"
                    )
            return bytes(body)
    except httpx.TimeoutException as exc:
        raise BlobDownloadError(
            f"Download timed out after {timeout_seconds}s: {url}"
        ) from exc
    except httpx.HTTPStatusError as exc:
        raise BlobDownloadError(
            f"Download failed with status {exc.response.status_code}: {url}"
        ) from exc
    except httpx.HTTPError as exc:
        raise BlobDownloadError(f"Download failed: {exc}") from exc
    finally:
        if owns_client:
            http.close()
