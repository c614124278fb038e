"""Content-addressed download cache for catalog documents.

Layout: ``<root_dir>/<subdir>/<sha256(remote_document_url)><extension>``.

Responsibilities
----------------
- Map every remote document URL to a deterministic cache path
  (:func:`cache_key`) so re-downloading the same document is a no-op once the
  file exists.
- Materialise a record (:meth:`ContentCache.ensure_cached`) by reusing the
  cached file, reusing a still-present legacy file reference, or streaming
  the document into a temp file and renaming it into place.
- Remove cache files that no record references any more
  (:meth:`ContentCache.remove_orphans`) and empty the cache on demand
  (:meth:`ContentCache.clear`).
- Tag the cache directory so backup tools skip it; the content is
  re-derivable from the remote source.

Design Notes
------------
- Writes are entry-disjoint: each entry has its own content-addressed
  destination and its own temp file, so concurrent ``ensure_cached`` calls
  for different entries never interfere, and a failure never touches another
  entry's file.
- The cache does not write to the local catalog store; it reports a
  :class:`CacheResult` and the orchestrator records the reference.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Set, Union

import httpx
import tenacity

from ReadTracker.CatalogSync.errors import StorageError, TransportError
from ReadTracker.CatalogSync.models import CatalogEntry, LocalCatalogRecord
from ReadTracker.CatalogSync.net.download_helper import TEMP_PREFIX, stream_download_to_file
from ReadTracker.CatalogSync.pages import count_pdf_pages

__all__ = ["CACHEDIR_TAG", "CacheResult", "ContentCache", "cache_key"]

logger = logging.getLogger(__name__)

CACHEDIR_TAG = "CACHEDIR.TAG"
_CACHEDIR_TAG_BODY = (
    "Signature: 8a477f597d28d172789f06886806bc55\n"
    "# This file is a cache directory tag created by ReadTracker.\n"
    "# Its contents are re-downloaded on demand and need not be backed up.\n"
    "# For information about cache directory tags see https://bford.info/cachedir/\n"
)


def cache_key(url: str) -> str:
    """Return the lowercase hex SHA-256 of ``url``."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheResult:
    """Where a document lives after :meth:`ContentCache.ensure_cached`."""

    path: Path
    downloaded: bool
    page_count: Optional[int] = None


class ContentCache:
    """Content-addressed store of downloaded documents on local disk."""

    def __init__(
        self,
        directory: Path,
        client: httpx.Client,
        *,
        extension: str = ".pdf",
        retrying: Optional[tenacity.Retrying] = None,
        chunk_size: int = 1 << 16,
        verify_content_length: bool = True,
        exclude_from_backup: bool = True,
        count_pages: bool = True,
    ):
        self.directory = Path(directory).expanduser()
        self.client = client
        self.extension = extension
        self.retrying = retrying
        self.chunk_size = chunk_size
        self.verify_content_length = verify_content_length
        self.exclude_from_backup = exclude_from_backup
        self.count_pages = count_pages
        self._prepare_directory()

    def _prepare_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create cache directory {self.directory}: {e}", operation="cache_init"
            ) from e
        if self.exclude_from_backup:
            self.mark_excluded_from_backup()

    def mark_excluded_from_backup(self) -> None:
        """Write a cache directory tag (and, on macOS, a Time Machine exclusion)."""
        tag = self.directory / CACHEDIR_TAG
        if not tag.exists():
            try:
                tag.write_text(_CACHEDIR_TAG_BODY, encoding="utf-8")
            except OSError as e:
                raise StorageError(
                    f"Cannot tag cache directory {self.directory}: {e}", operation="cache_init"
                ) from e

        if sys.platform == "darwin" and shutil.which("tmutil"):
            completed = subprocess.run(
                ["tmutil", "addexclusion", str(self.directory)],
                capture_output=True,
                text=True,
                check=False,
            )
            if completed.returncode != 0:
                logger.debug(f"tmutil addexclusion failed: {completed.stderr.strip()}")

    def path_for(self, url: str) -> Path:
        return self.directory / f"{cache_key(url)}{self.extension}"

    def ensure_cached(self, record: Union[LocalCatalogRecord, CatalogEntry]) -> CacheResult:
        """Make sure ``record``'s document is on disk and return where it is.

        Raises:
            TransportError: Bad URL, non-2xx status or network failure
            StorageError: Local I/O failure while writing the file
        """
        url = record.remote_document_url
        candidate = self.path_for(url)

        if candidate.is_file():
            logger.debug(f"Cache hit for {record.id}: {candidate.name}")
            return CacheResult(
                path=candidate, downloaded=False, page_count=self._page_count(candidate, record)
            )

        legacy = getattr(record, "local_file_reference", None)
        if legacy is not None and legacy.is_file():
            logger.debug(f"Reusing existing file for {record.id}: {legacy}")
            return CacheResult(
                path=legacy, downloaded=False, page_count=self._page_count(legacy, record)
            )

        self._validate_url(url)
        stream_download_to_file(
            self.client,
            url,
            candidate,
            retrying=self.retrying,
            chunk_size=self.chunk_size,
            verify_content_length=self.verify_content_length,
        )
        page_count = count_pdf_pages(candidate) if self.count_pages else None
        return CacheResult(path=candidate, downloaded=True, page_count=page_count)

    def _page_count(
        self, path: Path, record: Union[LocalCatalogRecord, CatalogEntry]
    ) -> Optional[int]:
        known = getattr(record, "page_count", None)
        if known is not None or not self.count_pages:
            return known
        return count_pdf_pages(path)

    @staticmethod
    def _validate_url(url: str) -> None:
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as e:
            raise TransportError(f"Malformed document URL {url!r}: {e}", url=url) from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise TransportError(f"Malformed document URL {url!r}", url=url)

    def remove_orphans(
        self,
        removed: Iterable[LocalCatalogRecord],
        keep: Iterable[LocalCatalogRecord] = (),
    ) -> int:
        """Delete cache files of ``removed`` records no ``keep`` record still uses.

        Files outside the cache directory are never touched.
        """
        referenced: Set[Path] = set()
        for record in keep:
            referenced.add(self.path_for(record.remote_document_url))
            if record.local_file_reference is not None:
                referenced.add(record.local_file_reference)

        deleted = 0
        for record in removed:
            candidates = {self.path_for(record.remote_document_url)}
            if record.local_file_reference is not None:
                candidates.add(record.local_file_reference)
            for path in candidates:
                if path in referenced or path.parent != self.directory or not path.is_file():
                    continue
                try:
                    path.unlink()
                except OSError as e:
                    raise StorageError(
                        f"Cannot remove orphaned file {path}: {e}", operation="cache_prune"
                    ) from e
                deleted += 1
                logger.info(f"Removed orphaned cache file for {record.id}: {path.name}")
        return deleted

    def clear(self) -> int:
        """Delete every cached document and stray temp file; keep the directory tag."""
        try:
            entries = list(self.directory.iterdir())
        except FileNotFoundError:
            self._prepare_directory()
            entries = []
        except OSError as e:
            raise StorageError(
                f"Cannot list cache {self.directory}: {e}", operation="cache_clear"
            ) from e

        deleted = 0
        for path in entries:
            if path.name == CACHEDIR_TAG:
                continue
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink()
            except FileNotFoundError:
                # removed concurrently, e.g. a finished temp file
                continue
            except OSError as e:
                raise StorageError(
                    f"Cannot clear cache {self.directory}: {e}", operation="cache_clear"
                ) from e
            deleted += 1
        logger.info(f"Cleared {deleted} file(s) from {self.directory}")
        return deleted

    def cached_files(self) -> list[Path]:
        return sorted(
            path
            for path in self.directory.glob(f"*{self.extension}")
            if path.is_file() and not path.name.startswith(TEMP_PREFIX)
        )
