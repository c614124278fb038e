"""
HTTPX client factory for CatalogSync.

The orchestrator owns one client for the lifetime of a sync context; the
fetcher, the HTTP remote store and the content cache share it so connection
pools are reused across the listing, index and download calls.
"""

from __future__ import annotations

import logging

import httpx

from ReadTracker.CatalogSync.config.models import CatalogSyncConfig

logger = logging.getLogger(__name__)


def build_http_client(
    config: CatalogSyncConfig,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build a new HTTPX client from config.

    Args:
        config: CatalogSyncConfig with http settings
        transport: Optional transport override (tests pass ``httpx.MockTransport``)

    Returns:
        Configured ``httpx.Client``; the caller is responsible for closing it
    """
    cfg = config.http

    timeout = httpx.Timeout(
        connect=cfg.timeout_connect_s,
        read=cfg.timeout_read_s,
        write=cfg.timeout_write_s,
        pool=cfg.timeout_pool_s,
    )
    limits = httpx.Limits(
        max_connections=cfg.max_connections,
        max_keepalive_connections=cfg.max_keepalive_connections,
    )

    client = httpx.Client(
        transport=transport,
        timeout=timeout,
        limits=limits,
        verify=cfg.verify_tls,
        follow_redirects=True,
        headers={"User-Agent": cfg.user_agent, "Accept": "application/json, */*"},
    )
    logger.debug(
        f"HTTPX client built (timeout_read={cfg.timeout_read_s}s, "
        f"max_connections={cfg.max_connections})"
    )
    return client
