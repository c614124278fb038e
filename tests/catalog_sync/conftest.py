"""Shared fixtures for CatalogSync tests."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from ReadTracker.CatalogSync.catalog.local_store import SQLiteLocalCatalog
from ReadTracker.CatalogSync.catalog.remote_store import SQLiteRemoteCatalog
from ReadTracker.CatalogSync.config.models import RetryPolicy
from ReadTracker.CatalogSync.content_cache import ContentCache
from ReadTracker.CatalogSync.fetcher import CatalogFetcher
from ReadTracker.CatalogSync.net.retry import build_retrying
from ReadTracker.CatalogSync.orchestrator import SyncOrchestrator
from ReadTracker.CatalogSync.staleness import SQLiteSyncState, StalenessPolicy

from .fakes import LISTING_BASE, FakeClock, FakeServer


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def client(server: FakeServer):
    with httpx.Client(transport=httpx.MockTransport(server.handler)) as http_client:
        yield http_client


@pytest.fixture
def retrying():
    policy = RetryPolicy(max_attempts=3, backoff_multiplier_s=0, backoff_max_s=0)
    return build_retrying(policy, sleep=lambda _: None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "support" / "Books"


@pytest.fixture
def fetcher(client, retrying) -> CatalogFetcher:
    return CatalogFetcher(client, LISTING_BASE, retrying=retrying)


@pytest.fixture
def remote_store(tmp_path: Path):
    store = SQLiteRemoteCatalog(str(tmp_path / "remote.sqlite"))
    yield store
    store.close()


@pytest.fixture
def local_store(tmp_path: Path):
    store = SQLiteLocalCatalog(str(tmp_path / "local.sqlite"))
    yield store
    store.close()


@pytest.fixture
def content_cache(cache_dir: Path, client, retrying) -> ContentCache:
    return ContentCache(cache_dir, client, retrying=retrying)


@pytest.fixture
def sync_state(tmp_path: Path):
    state = SQLiteSyncState(str(tmp_path / "local.sqlite"))
    yield state
    state.close()


@pytest.fixture
def staleness(sync_state, clock) -> StalenessPolicy:
    return StalenessPolicy(sync_state, clock=clock)


@pytest.fixture
def orchestrator(fetcher, remote_store, local_store, content_cache, staleness) -> SyncOrchestrator:
    return SyncOrchestrator(
        fetcher=fetcher,
        remote_store=remote_store,
        local_store=local_store,
        content_cache=content_cache,
        staleness=staleness,
    )

