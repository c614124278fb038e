"""Remote and local catalog stores."""

from __future__ import annotations

from ReadTracker.CatalogSync.catalog.local_store import SQLiteLocalCatalog
from ReadTracker.CatalogSync.catalog.remote_store import (
    HttpRemoteCatalog,
    RemoteCatalogStore,
    SQLiteRemoteCatalog,
)

__all__ = [
    "HttpRemoteCatalog",
    "RemoteCatalogStore",
    "SQLiteLocalCatalog",
    "SQLiteRemoteCatalog",
]
