"""SQLite connection helpers shared by the catalog stores."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from ReadTracker.CatalogSync.errors import StorageError

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def connect(path: str, *, wal_mode: bool = True, schema: str = "") -> sqlite3.Connection:
    """Open ``path`` (creating parent directories) and apply ``schema``.

    Raises:
        StorageError: If the database cannot be opened or initialised
    """
    try:
        if path != MEMORY:
            db_path = Path(path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            path = str(db_path)
        conn = sqlite3.connect(path, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        if wal_mode and path != MEMORY:
            conn.execute("PRAGMA journal_mode=WAL")
        if schema:
            conn.executescript(schema)
            conn.commit()
    except (sqlite3.Error, OSError) as e:
        raise StorageError(f"Cannot open database {path}: {e}", operation="open") from e
    return conn


@contextlib.contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate ``sqlite3.Error`` raised inside the block into :class:`StorageError`."""
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"SQLite {operation} failed: {e}")
        raise StorageError(f"Catalog {operation} failed: {e}", operation=operation) from e


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
