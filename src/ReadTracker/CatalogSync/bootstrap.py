"""Wire a :class:`SyncOrchestrator` from configuration.

Application start-up or foreground logic calls :func:`build_orchestrator`
once and keeps the orchestrator for the life of the process; its lock then
guards every refresh issued through it.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from ReadTracker.CatalogSync.catalog.local_store import SQLiteLocalCatalog
from ReadTracker.CatalogSync.catalog.remote_store import (
    HttpRemoteCatalog,
    RemoteCatalogStore,
    SQLiteRemoteCatalog,
)
from ReadTracker.CatalogSync.config.models import CatalogSyncConfig
from ReadTracker.CatalogSync.content_cache import ContentCache
from ReadTracker.CatalogSync.fetcher import CatalogFetcher
from ReadTracker.CatalogSync.logging_utils import setup_logging
from ReadTracker.CatalogSync.net.client import build_http_client
from ReadTracker.CatalogSync.net.retry import build_retrying
from ReadTracker.CatalogSync.orchestrator import SyncOrchestrator
from ReadTracker.CatalogSync.staleness import SQLiteSyncState, StalenessPolicy, utcnow

__all__ = ["build_orchestrator"]

logger = logging.getLogger(__name__)


def _build_remote_store(
    config: CatalogSyncConfig, client: httpx.Client, retrying
) -> RemoteCatalogStore:
    cfg = config.remote_store
    if cfg.backend == "http":
        return HttpRemoteCatalog(
            client, cfg.base_url or "", collection=cfg.collection, retrying=retrying
        )
    return SQLiteRemoteCatalog(cfg.path)


def build_orchestrator(
    config: Optional[CatalogSyncConfig] = None,
    *,
    client: Optional[httpx.Client] = None,
    clock: Callable = utcnow,
    configure_logging: bool = False,
) -> SyncOrchestrator:
    """Build every collaborator from ``config`` and return the orchestrator.

    Args:
        config: Validated configuration (defaults when omitted)
        client: Pre-built HTTPX client; when omitted one is built and owned
            by the orchestrator
        clock: Time source for the staleness policy
        configure_logging: Install the package log handlers from ``config.logging``

    Returns:
        A ready :class:`SyncOrchestrator`; close it to release resources
    """
    config = config or CatalogSyncConfig()
    if configure_logging:
        setup_logging(
            level=config.logging.level,
            log_dir=Path(config.logging.log_dir) if config.logging.log_dir else None,
        )

    closers: List[Callable[[], None]] = []
    if client is None:
        client = build_http_client(config)
        closers.append(client.close)
    retrying = build_retrying(config.retry)

    fetcher = CatalogFetcher(
        client,
        config.listing.base_url,
        partitions=config.listing.partitions,
        extension=config.listing.document_extension,
        retrying=retrying,
    )
    remote_store = _build_remote_store(config, client, retrying)
    local_store = SQLiteLocalCatalog(config.local_store.path, wal_mode=config.local_store.wal_mode)
    state = SQLiteSyncState(config.local_store.path, wal_mode=config.local_store.wal_mode)
    cache = ContentCache(
        Path(config.cache.root_dir).expanduser() / config.cache.subdir,
        client,
        extension=config.listing.document_extension,
        retrying=retrying,
        chunk_size=config.cache.chunk_size_bytes,
        verify_content_length=config.cache.verify_content_length,
        exclude_from_backup=config.cache.exclude_from_backup,
        count_pages=config.cache.count_pages,
    )
    staleness = StalenessPolicy(
        state,
        interval=timedelta(seconds=config.staleness.refresh_interval_s),
        key=config.staleness.state_key,
        clock=clock,
    )
    closers.extend([remote_store.close, local_store.close, state.close])

    logger.info(f"Catalog sync ready (config {config.config_hash()[:8]})")
    return SyncOrchestrator(
        fetcher=fetcher,
        remote_store=remote_store,
        local_store=local_store,
        content_cache=cache,
        staleness=staleness,
        max_workers=config.materialize.max_workers,
        on_close=closers,
    )
