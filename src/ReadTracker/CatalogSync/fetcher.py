"""Catalog fetcher backed by a directory-style HTTP listing.

Responsibilities
----------------
- List every configured audience partition (``<base_url><partition>``)
  concurrently and join the results.
- Keep only items whose name ends in the recognised document extension and
  map each to a :class:`~ReadTracker.CatalogSync.models.CatalogEntry`.
- Derive the entry title by stripping the extension from the filename as
  listed (no decoding), and the entry id by removing all whitespace from it.

Design Notes
------------
- A failed partition fails the whole fetch. Partial catalogs are never
  returned because the populate stage would otherwise tombstone the entries
  of the missing partition.
- Listing calls are retried through the shared tenacity controller before the
  failure is surfaced as :class:`~ReadTracker.CatalogSync.errors.TransportError`.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

import httpx
import tenacity
from pydantic import TypeAdapter, ValidationError

from ReadTracker.CatalogSync.errors import DecodeError, TransportError
from ReadTracker.CatalogSync.models import Audience, CatalogEntry, ListingItem

__all__ = ["CatalogFetcher", "derive_entry_id", "entry_from_listing_item"]

logger = logging.getLogger(__name__)

_LISTING_ADAPTER = TypeAdapter(List[ListingItem])
_WHITESPACE = re.compile(r"\s+")


def derive_entry_id(title: str) -> str:
    """Return the stable entry id for ``title`` (all whitespace removed)."""
    return _WHITESPACE.sub("", title.strip())


def entry_from_listing_item(
    item: ListingItem,
    audience: Audience,
    *,
    extension: str = ".pdf",
) -> Optional[CatalogEntry]:
    """Map one listing item to a catalog entry, or ``None`` if it is not a document."""
    if not item.name.endswith(extension) or not item.download_url:
        return None

    title = item.name[: -len(extension)]
    entry_id = derive_entry_id(title)
    if not entry_id:
        logger.debug(f"Skipping listing item with empty title: {item.name!r}")
        return None

    return CatalogEntry(
        id=entry_id,
        title=title,
        audience=audience,
        remote_document_url=item.download_url,
    )


class CatalogFetcher:
    """Fetch the canonical catalog from the listing source."""

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        *,
        partitions: Sequence[str] = ("parent", "child"),
        extension: str = ".pdf",
        retrying: Optional[tenacity.Retrying] = None,
    ):
        self.client = client
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.partitions = [Audience(p) for p in partitions]
        self.extension = extension
        self.retrying = retrying

    def partition_url(self, audience: Audience) -> str:
        return f"{self.base_url}{audience.value}"

    def fetch_catalog(self) -> List[CatalogEntry]:
        """Fetch all partitions concurrently and return the joined catalog.

        Raises:
            TransportError: A listing request failed
            DecodeError: A listing response had an unexpected shape
        """
        with ThreadPoolExecutor(
            max_workers=len(self.partitions), thread_name_prefix="catalog-fetch"
        ) as executor:
            futures = {
                audience: executor.submit(self.fetch_partition, audience)
                for audience in self.partitions
            }
            # result() re-raises the partition's exception, failing the fetch
            per_partition = {audience: future.result() for audience, future in futures.items()}

        catalog: Dict[str, CatalogEntry] = {}
        for audience in self.partitions:
            for entry in per_partition[audience]:
                if entry.id in catalog:
                    logger.warning(
                        f"Duplicate catalog id {entry.id!r} "
                        f"({catalog[entry.id].audience.value} → {audience.value}); last one wins"
                    )
                catalog[entry.id] = entry

        logger.info(f"Fetched {len(catalog)} catalog entries from {len(self.partitions)} partitions")
        return list(catalog.values())

    def fetch_partition(self, audience: Audience) -> List[CatalogEntry]:
        """List one partition and map its document items."""
        url = self.partition_url(audience)
        payload = self._get_json(url)

        try:
            items = _LISTING_ADAPTER.validate_python(payload)
        except ValidationError as e:
            raise DecodeError(
                f"Listing for {audience.value!r} has unexpected shape: {e.error_count()} error(s)",
                url=url,
            ) from e

        entries = []
        for item in items:
            entry = entry_from_listing_item(item, audience, extension=self.extension)
            if entry is not None:
                entries.append(entry)

        logger.debug(f"Partition {audience.value}: {len(entries)} of {len(items)} items are documents")
        return entries

    def _get_json(self, url: str) -> object:
        def attempt() -> httpx.Response:
            response = self.client.get(url)
            response.raise_for_status()
            return response

        try:
            response = self.retrying.copy()(attempt) if self.retrying is not None else attempt()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"Listing {url} returned HTTP {status}", url=url, status_code=status
            ) from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise TransportError(f"Malformed listing URL {url!r}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Listing {url} failed: {e}", url=url) from e

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Listing {url} is not valid JSON", url=url) from e
