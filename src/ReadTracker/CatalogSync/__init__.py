"""
Catalog synchronisation and content-addressed download cache.

Keeps an offline-capable local store of reading material consistent with a
remote catalog listing and a durable remote catalog index, without
redundant downloads and without overlapping refresh runs.

Typical use::

    from ReadTracker.CatalogSync import build_orchestrator, load_config

    with build_orchestrator(load_config("sync.yaml")) as sync:
        sync.refresh_if_needed()
        books = sync.local_store.list_records()
"""

from __future__ import annotations

from ReadTracker.CatalogSync.bootstrap import build_orchestrator
from ReadTracker.CatalogSync.catalog import (
    HttpRemoteCatalog,
    RemoteCatalogStore,
    SQLiteLocalCatalog,
    SQLiteRemoteCatalog,
)
from ReadTracker.CatalogSync.config import CatalogSyncConfig, load_config
from ReadTracker.CatalogSync.content_cache import CacheResult, ContentCache, cache_key
from ReadTracker.CatalogSync.errors import (
    CatalogSyncError,
    ConcurrencyError,
    DecodeError,
    MaterializeError,
    StorageError,
    TransportError,
    get_actionable_error_message,
)
from ReadTracker.CatalogSync.fetcher import CatalogFetcher
from ReadTracker.CatalogSync.models import (
    Audience,
    Cached,
    CatalogEntry,
    LocalCatalogRecord,
    NotCached,
    RefreshReport,
)
from ReadTracker.CatalogSync.orchestrator import SyncOrchestrator
from ReadTracker.CatalogSync.staleness import SQLiteSyncState, StalenessPolicy

__version__ = "1.0.0"
__all__ = [
    "Audience",
    "CacheResult",
    "Cached",
    "CatalogEntry",
    "CatalogFetcher",
    "CatalogSyncConfig",
    "CatalogSyncError",
    "ConcurrencyError",
    "ContentCache",
    "DecodeError",
    "HttpRemoteCatalog",
    "LocalCatalogRecord",
    "MaterializeError",
    "NotCached",
    "RefreshReport",
    "RemoteCatalogStore",
    "SQLiteLocalCatalog",
    "SQLiteRemoteCatalog",
    "SQLiteSyncState",
    "StalenessPolicy",
    "StorageError",
    "SyncOrchestrator",
    "TransportError",
    "build_orchestrator",
    "cache_key",
    "get_actionable_error_message",
    "load_config",
]
