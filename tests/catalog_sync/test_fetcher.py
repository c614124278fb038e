"""Tests for the listing-backed catalog fetcher."""

from __future__ import annotations

import pytest

from ReadTracker.CatalogSync.errors import DecodeError, TransportError
from ReadTracker.CatalogSync.fetcher import (
    CatalogFetcher,
    derive_entry_id,
    entry_from_listing_item,
)
from ReadTracker.CatalogSync.models import Audience, ListingItem

from .fakes import LISTING_BASE, LISTING_HOST, doc_url, entry_ids


class TestEntryMapping:
    """Test listing item → catalog entry mapping."""

    def test_derive_entry_id_strips_all_whitespace(self):
        """Ids drop every whitespace character."""
        assert derive_entry_id("Little Bear") == "LittleBear"
        assert derive_entry_id(" The\tBig  Book\n") == "TheBigBook"

    def test_title_is_filename_without_extension(self):
        """The title is the listed name minus the extension, spaces kept."""
        item = ListingItem(name="Green Eggs and Ham.pdf", download_url="https://x.test/g.pdf")

        entry = entry_from_listing_item(item, Audience.CHILD)

        assert entry is not None
        assert entry.title == "Green Eggs and Ham"
        assert entry.id == "GreenEggsandHam"
        assert entry.audience is Audience.CHILD
        assert entry.remote_document_url == "https://x.test/g.pdf"

    def test_percent_sequences_are_kept_verbatim(self):
        """Names containing percent escapes are not decoded."""
        item = ListingItem(name="100%25 Fun.pdf", download_url="https://x.test/fun.pdf")

        entry = entry_from_listing_item(item, Audience.CHILD)

        assert entry.title == "100%25 Fun"
        assert entry.id == "100%25Fun"

    def test_non_documents_are_skipped(self):
        """Other extensions and directories map to None."""
        readme = ListingItem(name="README.md", download_url="https://x.test/README.md")
        folder = ListingItem(name="archive.pdf", download_url=None)

        assert entry_from_listing_item(readme, Audience.PARENT) is None
        assert entry_from_listing_item(folder, Audience.PARENT) is None

    def test_custom_extension(self):
        """The recognised extension is configurable."""
        item = ListingItem(name="Guide.epub", download_url="https://x.test/Guide.epub")

        assert entry_from_listing_item(item, Audience.PARENT) is None
        entry = entry_from_listing_item(item, Audience.PARENT, extension=".epub")
        assert entry is not None and entry.title == "Guide"


class TestFetchCatalog:
    """Test fetching and joining partitions."""

    def test_joins_both_partitions(self, server, fetcher):
        """Entries from parent and child partitions are returned together."""
        server.add_document("child", "Alpha.pdf")
        server.add_document("child", "Beta.pdf")
        server.add_document("parent", "Sleep Guide.pdf")
        server.listings["parent"].append(
            {"name": "notes.txt", "download_url": doc_url("parent", "notes.txt")}
        )
        server.listings["parent"].append({"name": "old", "download_url": None, "type": "dir"})

        entries = fetcher.fetch_catalog()

        assert entry_ids(entries) == ["Alpha", "Beta", "SleepGuide"]
        by_id = {entry.id: entry for entry in entries}
        assert by_id["Alpha"].audience is Audience.CHILD
        assert by_id["SleepGuide"].audience is Audience.PARENT
        assert by_id["SleepGuide"].title == "Sleep Guide"
        assert server.count(LISTING_HOST) == 2

    def test_encoded_and_plain_names_stay_distinct(self, server, fetcher):
        """A plain name and its percent-encoded twin are two documents."""
        server.add_document("child", "A.pdf")
        server.add_document("child", "%41.pdf")

        entries = fetcher.fetch_catalog()

        assert entry_ids(entries) == ["%41", "A"]

    def test_empty_listing(self, fetcher):
        """Empty partitions produce an empty catalog."""
        assert fetcher.fetch_catalog() == []

    def test_duplicate_ids_last_partition_wins(self, server, fetcher):
        """The same id in both partitions keeps the later partition's entry."""
        server.add_document("parent", "Alpha.pdf")
        server.add_document("child", "Alpha.pdf")

        entries = fetcher.fetch_catalog()

        assert len(entries) == 1
        assert entries[0].audience is Audience.CHILD

    def test_partition_url(self, fetcher):
        """Partition names are appended to the base URL."""
        assert fetcher.partition_url(Audience.CHILD) == f"{LISTING_BASE}child"

    def test_base_url_gets_trailing_slash(self, client):
        """A base URL without a trailing slash still yields partition URLs."""
        fetcher = CatalogFetcher(client, LISTING_BASE.rstrip("/"))
        assert fetcher.partition_url(Audience.PARENT) == f"{LISTING_BASE}parent"

    def test_only_configured_partitions_are_listed(self, server, client):
        """A fetcher restricted to one partition never lists the other."""
        server.add_document("child", "Alpha.pdf")
        server.add_document("parent", "Guide.pdf")
        fetcher = CatalogFetcher(client, LISTING_BASE, partitions=["child"])

        assert entry_ids(fetcher.fetch_catalog()) == ["Alpha"]
        assert server.count(LISTING_HOST) == 1


class TestFetchFailures:
    """Test error mapping for listing failures."""

    def test_http_error_fails_whole_fetch(self, server, fetcher):
        """A non-2xx partition raises TransportError; no partial catalog."""
        server.add_document("child", "Alpha.pdf")
        server.listing_status["parent"] = 404

        with pytest.raises(TransportError) as exc_info:
            fetcher.fetch_catalog()

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == f"{LISTING_BASE}parent"

    def test_unexpected_shape_is_decode_error(self, server, fetcher):
        """An object instead of a list is a DecodeError."""
        server.listings["child"] = {"message": "rate limited"}

        with pytest.raises(DecodeError):
            fetcher.fetch_catalog()

    def test_items_missing_name_are_decode_error(self, server, fetcher):
        """List items without a name fail validation."""
        server.listings["child"] = [{"download_url": doc_url("child", "x.pdf")}]

        with pytest.raises(DecodeError):
            fetcher.fetch_catalog()

    def test_invalid_json_is_decode_error(self, server, fetcher):
        """A body that is not JSON is a DecodeError."""
        server.listings["parent"] = b"<html>oops</html>"

        with pytest.raises(DecodeError):
            fetcher.fetch_catalog()

    def test_transient_status_is_retried(self, server, fetcher):
        """A 503 is retried and the retry succeeds."""
        server.add_document("child", "Alpha.pdf")
        server.listing_flaky["child"] = 1

        entries = fetcher.fetch_catalog()

        assert entry_ids(entries) == ["Alpha"]
        assert server.count(LISTING_HOST) == 3

    def test_client_error_is_not_retried(self, server, fetcher):
        """A 403 fails on the first attempt."""
        server.listing_status["child"] = 403

        with pytest.raises(TransportError):
            fetcher.fetch_catalog()

        child_requests = sum(
            n for (host, _, path), n in server.requests.items()
            if host == LISTING_HOST and path.endswith("/child")
        )
        assert child_requests == 1

