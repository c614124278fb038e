"""Staleness policy: decide whether a full catalog refresh is due.

The policy reads a single persisted timestamp (``last_full_sync_at`` under a
namespaced key). A refresh is due when the timestamp is missing or at least
``interval`` old. Reading never writes; :meth:`StalenessPolicy.mark_refreshed`
is the only writer and the orchestrator calls it only after a refresh has
completed end-to-end.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ReadTracker.CatalogSync.catalog._sqlite import connect, storage_errors

__all__ = ["SQLiteSyncState", "StalenessPolicy", "DEFAULT_STATE_KEY", "utcnow"]

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "ReadTracker.CatalogSync.last_full_sync_at"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_state (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Return ``value`` in UTC; naive values are taken as local time."""
    return value.astimezone(timezone.utc)


class SQLiteSyncState:
    """Durable key-value state kept in a SQLite table."""

    def __init__(self, path: str, wal_mode: bool = True):
        self._lock = threading.RLock()
        self.conn = connect(path, wal_mode=wal_mode, schema=_SCHEMA)

    def get(self, key: str) -> Optional[str]:
        with self._lock, storage_errors("state read"):
            row = self.conn.execute("SELECT value FROM sync_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock, storage_errors("state write"), self.conn:
            self.conn.execute(
                "INSERT INTO sync_state (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._lock, storage_errors("state write"), self.conn:
            self.conn.execute("DELETE FROM sync_state WHERE key = ?", (key,))

    def close(self) -> None:
        with self._lock:
            self.conn.close()


class StalenessPolicy:
    """Time-based refresh decision over a persisted last-sync timestamp."""

    def __init__(
        self,
        state: SQLiteSyncState,
        *,
        interval: timedelta = timedelta(hours=24),
        key: str = DEFAULT_STATE_KEY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.state = state
        self.interval = interval
        self.key = key
        self.clock = clock

    @property
    def last_successful_sync_at(self) -> Optional[datetime]:
        raw = self.state.get(self.key)
        if raw is None:
            return None
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(f"Ignoring unparsable {self.key} value {raw!r}")
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def should_refresh(self) -> bool:
        last = self.last_successful_sync_at
        if last is None:
            return True
        return _as_utc(self.clock()) - last >= self.interval

    def mark_refreshed(self) -> datetime:
        now = _as_utc(self.clock())
        self.state.set(self.key, now.isoformat())
        logger.info(f"Catalog marked fresh at {now.isoformat()}")
        return now

    def reset(self) -> None:
        """Forget the last sync so the next check forces a refresh."""
        self.state.delete(self.key)
