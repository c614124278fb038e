"""Typed records shared by the catalog synchronisation pipeline.

Responsibilities
----------------
- Describe catalog entries as they travel from the listing source through the
  remote catalog store into the local catalog store.
- Model the "downloaded or not" state of a local record as an explicit
  :class:`NotCached` / :class:`Cached` variant instead of a nullable path.
- Carry per-stage outcomes (:class:`ReconcileResult`,
  :class:`MaterializeReport`, :class:`RefreshReport`) back to callers.

Design Notes
------------
- Records are frozen dataclasses; stores hand out fresh instances on every
  read so callers never mutate persisted state by accident.
- :class:`ListingItem` is the only pydantic model here because it is the only
  shape decoded from untrusted JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Audience",
    "CatalogEntry",
    "NotCached",
    "Cached",
    "CacheState",
    "LocalCatalogRecord",
    "ListingItem",
    "ReconcileResult",
    "EntryFailure",
    "MaterializeReport",
    "RefreshReport",
]


class Audience(str, Enum):
    """Audience partition a catalog entry belongs to."""

    PARENT = "parent"
    CHILD = "child"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Audience":
        """Decode a stored audience value, mapping unrecognised values to ``UNKNOWN``."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class CatalogEntry:
    """One document's identity and remote location."""

    id: str
    title: str
    audience: Audience
    remote_document_url: str


@dataclass(frozen=True)
class NotCached:
    """The document has not been materialised on local disk."""


@dataclass(frozen=True)
class Cached:
    """The document is materialised at ``path``."""

    path: Path


CacheState = Union[NotCached, Cached]


@dataclass(frozen=True)
class LocalCatalogRecord:
    """Local mirror of a :class:`CatalogEntry` plus device-local fields."""

    id: str
    title: str
    audience: Audience
    remote_document_url: str
    cache_state: CacheState = field(default_factory=NotCached)
    page_count: Optional[int] = None

    @property
    def local_file_reference(self) -> Optional[Path]:
        if isinstance(self.cache_state, Cached):
            return self.cache_state.path
        return None

    @property
    def is_cached(self) -> bool:
        return isinstance(self.cache_state, Cached)

    def to_entry(self) -> CatalogEntry:
        return CatalogEntry(
            id=self.id,
            title=self.title,
            audience=self.audience,
            remote_document_url=self.remote_document_url,
        )

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "LocalCatalogRecord":
        return cls(
            id=entry.id,
            title=entry.title,
            audience=entry.audience,
            remote_document_url=entry.remote_document_url,
        )


class ListingItem(BaseModel):
    """One item of a directory-style listing response.

    Directories in the listing carry no download URL; they decode fine and are
    filtered out later together with non-document files.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    download_url: Optional[str] = Field(default=None)


@dataclass
class ReconcileResult:
    """Outcome of reconciling the local store against a remote catalog."""

    inserted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[LocalCatalogRecord] = field(default_factory=list)

    @property
    def removed_ids(self) -> List[str]:
        return [record.id for record in self.removed]


@dataclass(frozen=True)
class EntryFailure:
    """A single entry that could not be materialised."""

    entry_id: str
    url: str
    error: Exception


@dataclass
class MaterializeReport:
    """Fan-in summary of a materialize stage."""

    downloaded: List[str] = field(default_factory=list)
    reused: List[str] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class RefreshReport:
    """Summary of one orchestrator run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    entries_fetched: int = 0
    reconcile: Optional[ReconcileResult] = None
    materialize: Optional[MaterializeReport] = None
