"""
Streaming download helper for the content cache.

Provides :func:`stream_download_to_file`, which
- streams a response body into a temp file next to the destination,
- requires a 2xx final status,
- optionally verifies the byte count against Content-Length,
- promotes the temp file with an atomic ``os.replace``,
- removes the temp file on every failure path.

A half-written download is therefore never visible under its final name.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import httpx
import tenacity

from ReadTracker.CatalogSync.errors import StorageError, TransportError

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


def _stream_once(
    client: httpx.Client,
    url: str,
    dest: Path,
    *,
    chunk_size: int,
    verify_content_length: bool,
) -> int:
    """One download attempt. Raises raw ``httpx`` errors for the retry layer."""

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=dest.parent, prefix=TEMP_PREFIX, suffix=".part", delete=False
        ) as tmp_file:
            temp_path = Path(tmp_file.name)

            with client.stream("GET", url) as resp:
                resp.raise_for_status()

                expected_length = int(resp.headers.get("Content-Length", 0) or 0)
                bytes_written = 0
                for chunk in resp.iter_bytes(chunk_size=chunk_size):
                    if chunk:
                        tmp_file.write(chunk)
                        bytes_written += len(chunk)

            tmp_file.flush()
            os.fsync(tmp_file.fileno())

        # Content-Length describes the encoded body; skip the check when compressed
        encoded = resp.headers.get("Content-Encoding", "identity").lower() != "identity"
        if verify_content_length and expected_length and not encoded:
            if bytes_written != expected_length:
                raise TransportError(
                    f"Size mismatch for {url}: expected {expected_length}, got {bytes_written}",
                    url=url,
                    status_code=resp.status_code,
                )

        os.replace(temp_path, dest)
        temp_path = None
        return bytes_written
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to cleanup temp file {temp_path}: {e}")


def stream_download_to_file(
    client: httpx.Client,
    url: str,
    dest: Path,
    *,
    retrying: tenacity.Retrying | None = None,
    chunk_size: int = 1 << 16,
    verify_content_length: bool = True,
) -> Path:
    """
    Download ``url`` to ``dest`` with streaming and atomic promotion.

    Args:
        client: Shared HTTPX client
        url: URL to download
        dest: Final destination path
        retrying: Optional tenacity controller for transient failures
        chunk_size: Stream chunk size
        verify_content_length: Compare bytes written with Content-Length

    Returns:
        ``dest``

    Raises:
        TransportError: Bad URL, non-2xx status, network failure, short body
        StorageError: Local I/O failure while writing or renaming
    """

    def attempt() -> int:
        return _stream_once(
            client,
            url,
            dest,
            chunk_size=chunk_size,
            verify_content_length=verify_content_length,
        )

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        bytes_written = retrying.copy()(attempt) if retrying is not None else attempt()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise TransportError(f"HTTP {status} for {url}", url=url, status_code=status) from e
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise TransportError(f"Malformed URL {url!r}: {e}", url=url) from e
    except httpx.HTTPError as e:
        raise TransportError(f"Network error for {url}: {e}", url=url) from e
    except OSError as e:
        raise StorageError(f"Cannot write {dest}: {e}", operation="cache_write") from e

    logger.info(f"Downloaded {url} → {dest} ({bytes_written} bytes)")
    return dest
