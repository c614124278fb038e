"""Tests for the remote catalog store backends."""

from __future__ import annotations

import httpx
import pytest

from ReadTracker.CatalogSync.catalog.remote_store import HttpRemoteCatalog, SQLiteRemoteCatalog
from ReadTracker.CatalogSync.errors import DecodeError, TransportError
from ReadTracker.CatalogSync.models import Audience, CatalogEntry

from .fakes import INDEX_BASE, INDEX_HOST, entry_ids


def _entry(entry_id: str, audience: Audience = Audience.CHILD, title: str = "") -> CatalogEntry:
    return CatalogEntry(
        id=entry_id,
        title=title or entry_id,
        audience=audience,
        remote_document_url=f"https://files.test/{audience.value}/{entry_id}.pdf",
    )


class TestSQLiteRemoteCatalog:
    """Test the SQLite-backed remote catalog."""

    def test_add_and_fetch(self, remote_store):
        """Added entries are returned by fetch_all."""
        entries = [_entry("Alpha"), _entry("Guide", Audience.PARENT)]

        remote_store.add_entries(entries)

        assert sorted(remote_store.fetch_all(), key=lambda e: e.id) == entries
        assert remote_store.count() == 2

    def test_upsert_last_write_wins(self, remote_store):
        """Re-adding an id replaces the stored fields."""
        remote_store.add_entries([_entry("Alpha", title="First")])
        remote_store.add_entries([_entry("Alpha", title="Second")])

        assert [e.title for e in remote_store.fetch_all()] == ["Second"]

    def test_duplicate_ids_in_one_batch(self, remote_store):
        """Within a batch the later entry for an id wins."""
        remote_store.add_entries(
            [_entry("Alpha", Audience.PARENT), _entry("Alpha", Audience.CHILD)]
        )

        (stored,) = remote_store.fetch_all()
        assert stored.audience is Audience.CHILD

    def test_fetch_by_audience(self, remote_store):
        """Entries can be filtered by audience partition."""
        remote_store.add_entries(
            [_entry("Alpha"), _entry("Beta"), _entry("Guide", Audience.PARENT)]
        )

        assert entry_ids(remote_store.fetch_by_audience(Audience.CHILD)) == ["Alpha", "Beta"]
        assert entry_ids(remote_store.fetch_by_audience(Audience.PARENT)) == ["Guide"]
        assert remote_store.fetch_by_audience(Audience.UNKNOWN) == []

    def test_delete_all(self, remote_store):
        """delete_all empties the index and reports the count."""
        remote_store.add_entries([_entry("Alpha"), _entry("Beta")])

        assert remote_store.delete_all() == 2
        assert remote_store.fetch_all() == []

    def test_unknown_role_decodes_as_unknown(self, tmp_path):
        """Unrecognised stored roles map to the unknown audience."""
        store = SQLiteRemoteCatalog(str(tmp_path / "remote.sqlite"))
        try:
            store.add_entries([_entry("Alpha")])
            with store.conn:
                store.conn.execute("UPDATE books SET role = 'teen'")

            assert store.fetch_all()[0].audience is Audience.UNKNOWN
        finally:
            store.close()


class TestHttpRemoteCatalog:
    """Test the document-collection backend against the fake index."""

    @pytest.fixture
    def http_store(self, client, retrying) -> HttpRemoteCatalog:
        return HttpRemoteCatalog(client, INDEX_BASE, retrying=retrying)

    def test_collection_urls(self, http_store):
        """Document URLs are collection URL plus quoted id."""
        assert http_store.collection_url == f"{INDEX_BASE}/books"
        assert http_store.document_url("Alpha") == f"{INDEX_BASE}/books/Alpha"

    def test_add_and_fetch(self, server, http_store):
        """Entries are PUT per id and read back from the collection."""
        entries = [_entry("Alpha"), _entry("Guide", Audience.PARENT)]

        http_store.add_entries(entries)

        assert server.count(INDEX_HOST, "PUT") == 2
        assert server.collection["Alpha"] == {
            "id": "Alpha",
            "title": "Alpha",
            "role": "child",
            "document_url": "https://files.test/child/Alpha.pdf",
        }
        assert sorted(http_store.fetch_all(), key=lambda e: e.id) == entries

    def test_fetch_by_audience(self, http_store):
        """Audience filtering works on the HTTP backend too."""
        http_store.add_entries([_entry("Alpha"), _entry("Guide", Audience.PARENT)])

        assert entry_ids(http_store.fetch_by_audience(Audience.PARENT)) == ["Guide"]
        assert http_store.count() == 2

    def test_delete_all(self, server, http_store):
        """Every document is deleted individually."""
        http_store.add_entries([_entry("Alpha"), _entry("Beta")])

        assert http_store.delete_all() == 2
        assert server.collection == {}
        assert server.count(INDEX_HOST, "DELETE") == 2

    def test_malformed_documents_are_skipped(self, server, http_store):
        """Documents missing required fields are ignored."""
        server.collection["ok"] = {
            "id": "ok", "title": "OK", "role": "parent", "document_url": "https://f.test/ok.pdf"
        }
        server.collection["bad"] = {"id": "bad", "title": "Bad"}

        assert [e.id for e in http_store.fetch_all()] == ["ok"]

    def test_non_list_response_is_decode_error(self):
        """A collection response that is not a list raises DecodeError."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"oops": 1}))
        with httpx.Client(transport=transport) as odd_client:
            store = HttpRemoteCatalog(odd_client, INDEX_BASE)
            with pytest.raises(DecodeError):
                store.fetch_all()

    def test_documents_envelope_is_accepted(self):
        """A ``{"documents": [...]}`` envelope is unwrapped."""
        document = {
            "id": "Alpha", "title": "Alpha", "role": "child", "document_url": "https://f.test/a.pdf"
        }
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"documents": [document]})
        )
        with httpx.Client(transport=transport) as odd_client:
            store = HttpRemoteCatalog(odd_client, INDEX_BASE)
            assert [e.id for e in store.fetch_all()] == ["Alpha"]

    def test_server_error_is_transport_error(self):
        """Non-2xx responses surface as TransportError with the status."""
        transport = httpx.MockTransport(lambda request: httpx.Response(401))
        with httpx.Client(transport=transport) as odd_client:
            store = HttpRemoteCatalog(odd_client, INDEX_BASE)
            with pytest.raises(TransportError) as exc_info:
                store.add_entries([_entry("Alpha")])

        assert exc_info.value.status_code == 401
