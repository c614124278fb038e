"""Remote catalog store: the durable, queryable index of catalog entries.

Two backends are provided:

- :class:`SQLiteRemoteCatalog` keeps the index in a SQLite file (for example
  on shared storage).
- :class:`HttpRemoteCatalog` talks to a keyed document collection over HTTP
  (``GET``/``PUT``/``DELETE`` on ``{base_url}/{collection}[/{id}]``).

Both store one record per document id with the fields
``{id, title, role, document_url}``; :meth:`RemoteCatalogStore.add_entries`
upserts, so the last write for a duplicated id wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
import tenacity

from ReadTracker.CatalogSync.catalog._sqlite import connect, storage_errors, utcnow_iso
from ReadTracker.CatalogSync.errors import DecodeError, TransportError
from ReadTracker.CatalogSync.models import Audience, CatalogEntry

__all__ = ["RemoteCatalogStore", "SQLiteRemoteCatalog", "HttpRemoteCatalog"]

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id           TEXT PRIMARY KEY,
    title        TEXT NOT NULL,
    role         TEXT NOT NULL,
    document_url TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_books_role ON books(role);
"""


class RemoteCatalogStore:
    """Protocol-like base class for remote catalog backends."""

    def delete_all(self) -> int:
        """Delete every entry; return how many were removed."""
        raise NotImplementedError

    def add_entries(self, entries: Sequence[CatalogEntry]) -> None:
        """Upsert ``entries`` keyed by id (last write wins)."""
        raise NotImplementedError

    def fetch_all(self) -> List[CatalogEntry]:
        """Return every stored entry."""
        raise NotImplementedError

    def fetch_by_audience(self, audience: Audience) -> List[CatalogEntry]:
        """Return the entries of one audience partition."""
        return [entry for entry in self.fetch_all() if entry.audience == audience]

    def count(self) -> int:
        return len(self.fetch_all())

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SQLiteRemoteCatalog(RemoteCatalogStore):
    """Remote catalog index kept in a SQLite database."""

    def __init__(self, path: str, wal_mode: bool = True):
        self.path = path
        self._lock = threading.RLock()
        self.conn = connect(path, wal_mode=wal_mode, schema=_SCHEMA)
        logger.info(f"Initialized remote catalog at {path}")

    def delete_all(self) -> int:
        with self._lock, storage_errors("remote delete"), self.conn:
            cursor = self.conn.execute("DELETE FROM books")
            return cursor.rowcount

    def add_entries(self, entries: Sequence[CatalogEntry]) -> None:
        now = utcnow_iso()
        rows = [
            (entry.id, entry.title, entry.audience.value, entry.remote_document_url, now)
            for entry in entries
        ]
        with self._lock, storage_errors("remote insert"), self.conn:
            self.conn.executemany(
                """
                INSERT INTO books (id, title, role, document_url, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    role = excluded.role,
                    document_url = excluded.document_url,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
        logger.debug(f"Upserted {len(rows)} remote catalog entries")

    def fetch_all(self) -> List[CatalogEntry]:
        with self._lock, storage_errors("remote fetch"):
            rows = self.conn.execute(
                "SELECT id, title, role, document_url FROM books ORDER BY id"
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def fetch_by_audience(self, audience: Audience) -> List[CatalogEntry]:
        with self._lock, storage_errors("remote fetch"):
            rows = self.conn.execute(
                "SELECT id, title, role, document_url FROM books WHERE role = ? ORDER BY id",
                (audience.value,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def count(self) -> int:
        with self._lock, storage_errors("remote count"):
            return self.conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    @staticmethod
    def _row_to_entry(row) -> CatalogEntry:
        return CatalogEntry(
            id=row["id"],
            title=row["title"],
            audience=Audience.parse(row["role"]),
            remote_document_url=row["document_url"],
        )


class HttpRemoteCatalog(RemoteCatalogStore):
    """Remote catalog index behind a keyed document collection API."""

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        *,
        collection: str = "books",
        retrying: Optional[tenacity.Retrying] = None,
    ):
        self.client = client
        self.collection_url = f"{base_url.rstrip('/')}/{quote(collection, safe='')}"
        self.retrying = retrying

    def document_url(self, entry_id: str) -> str:
        return f"{self.collection_url}/{quote(entry_id, safe='')}"

    def delete_all(self) -> int:
        removed = 0
        for entry_id in self._fetch_ids():
            response = self._request("DELETE", self.document_url(entry_id), allow_404=True)
            if response.status_code != 404:
                removed += 1
        logger.debug(f"Deleted {removed} remote catalog documents")
        return removed

    def add_entries(self, entries: Sequence[CatalogEntry]) -> None:
        for entry in entries:
            self._request(
                "PUT",
                self.document_url(entry.id),
                json={
                    "id": entry.id,
                    "title": entry.title,
                    "role": entry.audience.value,
                    "document_url": entry.remote_document_url,
                },
            )
        logger.debug(f"Upserted {len(entries)} remote catalog documents")

    def fetch_all(self) -> List[CatalogEntry]:
        entries = []
        for document in self._fetch_documents():
            entry = self._document_to_entry(document)
            if entry is None:
                logger.warning(f"Skipping malformed remote catalog document: {document!r}")
                continue
            entries.append(entry)
        return entries

    def _fetch_ids(self) -> List[str]:
        ids = []
        for document in self._fetch_documents():
            entry_id = document.get("id")
            if isinstance(entry_id, str) and entry_id:
                ids.append(entry_id)
        return ids

    def _fetch_documents(self) -> List[Dict[str, Any]]:
        response = self._request("GET", self.collection_url)
        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(
                f"Remote catalog {self.collection_url} is not valid JSON", url=self.collection_url
            ) from e
        if isinstance(payload, dict) and isinstance(payload.get("documents"), list):
            payload = payload["documents"]
        if not isinstance(payload, list):
            raise DecodeError(
                f"Remote catalog {self.collection_url} did not return a list",
                url=self.collection_url,
            )
        return [document for document in payload if isinstance(document, dict)]

    @staticmethod
    def _document_to_entry(document: Dict[str, Any]) -> Optional[CatalogEntry]:
        entry_id = document.get("id")
        title = document.get("title")
        role = document.get("role", document.get("audience"))
        url = document.get("document_url")
        if not all(isinstance(value, str) and value for value in (entry_id, title, role, url)):
            return None
        return CatalogEntry(
            id=entry_id,
            title=title,
            audience=Audience.parse(role),
            remote_document_url=url,
        )

    def _request(
        self, method: str, url: str, *, allow_404: bool = False, **kwargs: Any
    ) -> httpx.Response:
        def attempt() -> httpx.Response:
            response = self.client.request(method, url, **kwargs)
            if not (allow_404 and response.status_code == 404):
                response.raise_for_status()
            return response

        try:
            return self.retrying.copy()(attempt) if self.retrying is not None else attempt()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"Remote catalog {method} {url} returned HTTP {status}", url=url, status_code=status
            ) from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise TransportError(f"Malformed remote catalog URL {url!r}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Remote catalog {method} {url} failed: {e}", url=url) from e
