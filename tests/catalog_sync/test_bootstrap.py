"""Tests for wiring an orchestrator from configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from ReadTracker.CatalogSync import build_orchestrator, load_config
from ReadTracker.CatalogSync.catalog.remote_store import HttpRemoteCatalog, SQLiteRemoteCatalog
from ReadTracker.CatalogSync.content_cache import CACHEDIR_TAG, cache_key
from ReadTracker.CatalogSync.errors import ConcurrencyError

from .fakes import INDEX_BASE, LISTING_BASE, LISTING_HOST


@pytest.fixture
def config(tmp_path: Path):
    return load_config(
        overrides={
            "listing": {"base_url": LISTING_BASE},
            "remote_store": {"path": str(tmp_path / "remote.sqlite")},
            "local_store": {"path": str(tmp_path / "catalog.sqlite")},
            "cache": {"root_dir": str(tmp_path / "support")},
            "retry": {"max_attempts": 1},
        }
    )


class TestBuildOrchestrator:
    """Test build_orchestrator wiring."""

    def test_wires_configured_components(self, config, client, tmp_path):
        """Collaborators reflect the configuration."""
        with build_orchestrator(config, client=client) as orchestrator:
            assert isinstance(orchestrator.remote_store, SQLiteRemoteCatalog)
            assert orchestrator.content_cache.directory == tmp_path / "support" / "Books"
            assert (tmp_path / "support" / "Books" / CACHEDIR_TAG).is_file()
            assert orchestrator.max_workers == 3
            assert orchestrator.fetcher.base_url == LISTING_BASE

    def test_refresh_end_to_end(self, config, server, client, clock, tmp_path):
        """A wired orchestrator refreshes once and then skips."""
        url = server.add_document("child", "Alpha.pdf")

        with build_orchestrator(config, client=client, clock=clock) as orchestrator:
            first = orchestrator.refresh_if_needed()
            second = orchestrator.refresh_if_needed()
            record = orchestrator.local_store.get("Alpha")

        assert first.skipped is False
        assert second.skipped is True
        assert record.local_file_reference == (
            tmp_path / "support" / "Books" / f"{cache_key(url)}.pdf"
        )
        assert server.count(LISTING_HOST) == 2

    def test_staleness_persists_across_instances(self, config, server, client, clock):
        """A new orchestrator on the same files sees the earlier refresh."""
        server.add_document("child", "Alpha.pdf")
        with build_orchestrator(config, client=client, clock=clock) as orchestrator:
            orchestrator.refresh_if_needed()

        clock.advance(hours=1)
        with build_orchestrator(config, client=client, clock=clock) as orchestrator:
            assert orchestrator.refresh_if_needed().skipped is True

    def test_http_remote_backend(self, tmp_path, server, client, clock):
        """backend='http' stores the index in the document collection."""
        config = load_config(
            overrides={
                "listing": {"base_url": LISTING_BASE},
                "remote_store": {"backend": "http", "base_url": INDEX_BASE},
                "local_store": {"path": str(tmp_path / "catalog.sqlite")},
                "cache": {"root_dir": str(tmp_path / "support")},
            }
        )
        server.add_document("parent", "Guide.pdf")

        with build_orchestrator(config, client=client, clock=clock) as orchestrator:
            assert isinstance(orchestrator.remote_store, HttpRemoteCatalog)
            orchestrator.refresh()

        assert set(server.collection) == {"Guide"}
        assert server.collection["Guide"]["role"] == "parent"

    def test_caller_client_is_not_closed(self, config, client):
        """A client passed in stays open after the orchestrator closes."""
        orchestrator = build_orchestrator(config, client=client)
        orchestrator.close()

        assert not client.is_closed
        with pytest.raises(ConcurrencyError):
            orchestrator.refresh()
