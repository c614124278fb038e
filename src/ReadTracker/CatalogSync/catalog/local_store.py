"""Local catalog store: the device's persisted mirror of the remote catalog.

Records mirror :class:`~ReadTracker.CatalogSync.models.CatalogEntry` and add
the device-local ``local_file_path`` and ``total_pages`` columns.

Design Notes
------------
- :meth:`SQLiteLocalCatalog.reconcile` is a set reconciliation, not a
  clear-and-reinsert: surviving records keep their local file reference and
  page count, new ones are inserted empty, and records whose id left the
  remote catalog are swept in the same transaction.
- Every write goes through one connection guarded by ``self._lock``, so
  completions arriving from download workers are applied one at a time.
- A record is never handed out pointing at a file that no longer exists;
  :meth:`SQLiteLocalCatalog.records_missing_file` clears such references.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ReadTracker.CatalogSync.catalog._sqlite import connect, storage_errors, utcnow_iso
from ReadTracker.CatalogSync.models import (
    Audience,
    Cached,
    CatalogEntry,
    LocalCatalogRecord,
    NotCached,
    ReconcileResult,
)

__all__ = ["SQLiteLocalCatalog"]

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    audience        TEXT NOT NULL,
    document_url    TEXT NOT NULL,
    local_file_path TEXT,
    total_pages     INTEGER,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_books_audience ON books(audience);
"""

_COLUMNS = "id, title, audience, document_url, local_file_path, total_pages"


class SQLiteLocalCatalog:
    """SQLite-backed local catalog with set reconciliation."""

    def __init__(self, path: str, wal_mode: bool = True):
        """Open (or create) the local catalog at ``path``.

        Raises:
            StorageError: If the database cannot be opened
        """
        self.path = path
        self._lock = threading.RLock()
        self.conn = connect(path, wal_mode=wal_mode, schema=_SCHEMA)
        logger.info(f"Initialized local catalog at {path}")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, remote_entries: Sequence[CatalogEntry]) -> ReconcileResult:
        """Make the local store match ``remote_entries`` exactly.

        Existing records get their title, audience and document URL updated in
        place; local fields are preserved. Unknown ids are inserted with empty
        local fields. Records absent from ``remote_entries`` are deleted and
        returned in :attr:`ReconcileResult.removed`.
        """
        # last write wins for duplicated ids
        wanted: Dict[str, CatalogEntry] = {}
        for entry in remote_entries:
            wanted[entry.id] = entry

        result = ReconcileResult()
        now = utcnow_iso()
        with self._lock, storage_errors("reconcile"), self.conn:
            existing = {
                row["id"]: self._row_to_record(row)
                for row in self.conn.execute(f"SELECT {_COLUMNS} FROM books").fetchall()
            }

            for entry_id, entry in wanted.items():
                if entry_id in existing:
                    self.conn.execute(
                        """
                        UPDATE books
                        SET title = ?, audience = ?, document_url = ?, updated_at = ?
                        WHERE id = ?
                        """,
                        (entry.title, entry.audience.value, entry.remote_document_url, now, entry_id),
                    )
                    result.updated.append(entry_id)
                else:
                    self.conn.execute(
                        """
                        INSERT INTO books (id, title, audience, document_url, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (entry_id, entry.title, entry.audience.value, entry.remote_document_url, now),
                    )
                    result.inserted.append(entry_id)

            for entry_id, record in existing.items():
                if entry_id not in wanted:
                    self.conn.execute("DELETE FROM books WHERE id = ?", (entry_id,))
                    result.removed.append(record)

        logger.info(
            f"Reconciled local catalog: {len(result.inserted)} new, "
            f"{len(result.updated)} updated, {len(result.removed)} deleted"
        )
        return result

    # ------------------------------------------------------------------
    # Device-local fields
    # ------------------------------------------------------------------

    def set_local_file(self, entry_id: str, path: Path, page_count: Optional[int] = None) -> bool:
        """Record that ``entry_id`` is materialised at ``path``.

        Returns False when the record no longer exists (it was swept while the
        download was in flight).
        """
        with self._lock, storage_errors("update"), self.conn:
            cursor = self.conn.execute(
                """
                UPDATE books
                SET local_file_path = ?, total_pages = COALESCE(?, total_pages), updated_at = ?
                WHERE id = ?
                """,
                (str(path), page_count, utcnow_iso(), entry_id),
            )
        if cursor.rowcount == 0:
            logger.warning(f"Local record {entry_id!r} vanished before its file was recorded")
            return False
        return True

    def clear_local_file(self, entry_id: str) -> None:
        with self._lock, storage_errors("update"), self.conn:
            self.conn.execute(
                "UPDATE books SET local_file_path = NULL, updated_at = ? WHERE id = ?",
                (utcnow_iso(), entry_id),
            )

    def records_missing_file(self) -> List[LocalCatalogRecord]:
        """Return records that need materialising.

        References to files that no longer exist are cleared on the way, so the
        returned records are all :class:`NotCached`.
        """
        missing: List[LocalCatalogRecord] = []
        stale: List[str] = []
        for record in self.list_records():
            path = record.local_file_reference
            if path is None:
                missing.append(record)
            elif not path.is_file():
                stale.append(record.id)
                missing.append(
                    LocalCatalogRecord(
                        id=record.id,
                        title=record.title,
                        audience=record.audience,
                        remote_document_url=record.remote_document_url,
                        cache_state=NotCached(),
                        page_count=record.page_count,
                    )
                )

        for entry_id in stale:
            logger.info(f"Clearing stale file reference for {entry_id!r}")
            self.clear_local_file(entry_id)
        return missing

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> Optional[LocalCatalogRecord]:
        with self._lock, storage_errors("fetch"):
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM books WHERE id = ?", (entry_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_records(self, audience: Optional[Audience] = None) -> List[LocalCatalogRecord]:
        with self._lock, storage_errors("fetch"):
            if audience is None:
                rows = self.conn.execute(f"SELECT {_COLUMNS} FROM books ORDER BY title").fetchall()
            else:
                rows = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM books WHERE audience = ? ORDER BY title",
                    (audience.value,),
                ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._lock, storage_errors("count"):
            return self.conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]

    def delete_all(self) -> int:
        with self._lock, storage_errors("delete"), self.conn:
            return self.conn.execute("DELETE FROM books").rowcount

    def close(self) -> None:
        with self._lock:
            self.conn.close()
            logger.debug("Local catalog connection closed")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> LocalCatalogRecord:
        path = row["local_file_path"]
        return LocalCatalogRecord(
            id=row["id"],
            title=row["title"],
            audience=Audience.parse(row["audience"]),
            remote_document_url=row["document_url"],
            cache_state=Cached(Path(path)) if path else NotCached(),
            page_count=row["total_pages"],
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
