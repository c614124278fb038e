"""Sync orchestrator: the clear → populate → materialize pipeline.

Responsibilities
----------------
- :meth:`SyncOrchestrator.refresh` runs an unconditional full refresh:

  1. **clear**: remote store, content cache and local store are emptied in
     parallel; all three must finish before anything else starts.
  2. **populate**: catalog fetcher → remote store upsert → local store
     reconcile against the remote store's contents, then orphaned cache files
     are pruned.
  3. **materialize**: every local record without a file is handed to the
     content cache with a bounded fan-out; completions are recorded in the
     local store one at a time as they arrive.
  4. **mark**: the staleness policy is marked fresh only when all three
     stages succeeded for every entry.

- :meth:`SyncOrchestrator.refresh_if_needed` returns immediately (no network)
  while the staleness policy says the catalog is fresh.
- :meth:`SyncOrchestrator.mirror` re-mirrors the remote store into the local
  store and materializes missing files without clearing or re-listing.

Design Notes
------------
- Mutual exclusion uses a lock owned by the orchestrator instance (injected
  through the constructor). A second caller blocks until the running refresh
  finishes; ``refresh_if_needed`` re-checks staleness after acquiring the lock,
  so a caller that waited behind a successful refresh does not repeat it.
- Calling ``refresh`` from the thread that already holds the lock raises
  :class:`~ReadTracker.CatalogSync.errors.ConcurrencyError`.
- Stage 1 and 2 failures abort the call. Stage 3 failures are collected per
  entry; successful entries keep their recorded files and the aggregate call
  raises :class:`~ReadTracker.CatalogSync.errors.MaterializeError`.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from typing import Callable, Iterator, List, Optional

from ReadTracker.CatalogSync.catalog.local_store import SQLiteLocalCatalog
from ReadTracker.CatalogSync.catalog.remote_store import RemoteCatalogStore
from ReadTracker.CatalogSync.content_cache import ContentCache
from ReadTracker.CatalogSync.errors import (
    CatalogSyncError,
    ConcurrencyError,
    MaterializeError,
    log_sync_failure,
)
from ReadTracker.CatalogSync.fetcher import CatalogFetcher
from ReadTracker.CatalogSync.models import (
    EntryFailure,
    LocalCatalogRecord,
    MaterializeReport,
    ReconcileResult,
    RefreshReport,
)
from ReadTracker.CatalogSync.staleness import StalenessPolicy

__all__ = ["SyncOrchestrator"]

logger = logging.getLogger(__name__)


def _unexpected_entry_error(record: LocalCatalogRecord, exc: Exception) -> CatalogSyncError:
    error = CatalogSyncError(
        f"Unexpected {type(exc).__name__} while caching {record.id!r}: {exc}",
        details={"error_type": type(exc).__name__},
    )
    error.__cause__ = exc
    return error


class SyncOrchestrator:
    """Compose fetcher, stores, cache and staleness policy into one sync pipeline."""

    def __init__(
        self,
        *,
        fetcher: CatalogFetcher,
        remote_store: RemoteCatalogStore,
        local_store: SQLiteLocalCatalog,
        content_cache: ContentCache,
        staleness: StalenessPolicy,
        lock: Optional[threading.Lock] = None,
        max_workers: int = 3,
        on_close: Optional[List[Callable[[], None]]] = None,
    ):
        self.fetcher = fetcher
        self.remote_store = remote_store
        self.local_store = local_store
        self.content_cache = content_cache
        self.staleness = staleness
        self.max_workers = max(1, max_workers)
        self._lock = lock if lock is not None else threading.Lock()
        self._owner: Optional[int] = None
        self._closed = False
        self._on_close = list(on_close or [])

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def refresh(self) -> RefreshReport:
        """Run a full refresh, blocking while another refresh is in flight.

        Raises:
            CatalogSyncError: Any stage failed; the catalog is not marked fresh
        """
        with self._exclusive():
            return self._run_refresh()

    def refresh_if_needed(self) -> RefreshReport:
        """Refresh only when the staleness policy says the catalog is due."""
        with self._exclusive():
            if not self.staleness.should_refresh():
                now = self.staleness.clock()
                logger.info("Catalog is fresh; skipping refresh")
                return RefreshReport(started_at=now, finished_at=now, skipped=True)
            return self._run_refresh()

    def mirror(self) -> RefreshReport:
        """Mirror the remote store into the local store and fill in missing files.

        Does not clear anything, does not consult the listing source and does
        not touch the staleness timestamp.
        """
        with self._exclusive():
            report = RefreshReport(started_at=self.staleness.clock())
            entries = self._run_stage("mirror", self.remote_store.fetch_all)
            report.entries_fetched = len(entries)
            report.reconcile = self._run_stage("mirror", lambda: self._reconcile(entries))
            report.materialize = self._run_stage("materialize", self._materialize)
            report.finished_at = self.staleness.clock()
            if report.materialize.failures:
                raise MaterializeError(report.materialize.failures, report=report)
            return report

    def close(self) -> None:
        """Release owned resources; later calls raise ConcurrencyError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for closer in self._on_close:
                closer()
        logger.debug("Sync orchestrator closed")

    def __enter__(self) -> "SyncOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run_refresh(self) -> RefreshReport:
        report = RefreshReport(started_at=self.staleness.clock())
        logger.info("Starting full catalog refresh", extra={"stage": "refresh"})

        self._run_stage("clear", self._clear)
        report.entries_fetched, report.reconcile = self._run_stage("populate", self._populate)
        report.materialize = self._run_stage("materialize", self._materialize)

        report.finished_at = self.staleness.clock()
        if report.materialize.failures:
            error = MaterializeError(report.materialize.failures, report=report)
            log_sync_failure(logger, error, stage="materialize")
            raise error

        self.staleness.mark_refreshed()
        logger.info(
            f"Catalog refresh complete: {report.entries_fetched} entries, "
            f"{len(report.materialize.downloaded)} downloaded, "
            f"{len(report.materialize.reused)} reused",
            extra={"stage": "refresh"},
        )
        return report

    def _run_stage(self, stage: str, func: Callable):
        logger.debug(f"Stage {stage} started", extra={"stage": stage})
        try:
            return func()
        except CatalogSyncError as e:
            log_sync_failure(logger, e, stage=stage)
            raise

    def _clear(self) -> None:
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="catalog-clear") as executor:
            futures = [
                executor.submit(self.remote_store.delete_all),
                executor.submit(self.content_cache.clear),
                executor.submit(self.local_store.delete_all),
            ]
            wait(futures)
        # every clear has finished; surface the first failure, if any
        for future in futures:
            future.result()

    def _populate(self) -> tuple[int, ReconcileResult]:
        entries = self.fetcher.fetch_catalog()
        self.remote_store.add_entries(entries)
        reconcile = self._reconcile(self.remote_store.fetch_all())
        return len(entries), reconcile

    def _reconcile(self, entries) -> ReconcileResult:
        result = self.local_store.reconcile(entries)
        if result.removed:
            self.content_cache.remove_orphans(result.removed, self.local_store.list_records())
        return result

    def _materialize(self) -> MaterializeReport:
        report = MaterializeReport()
        records = self.local_store.records_missing_file()
        if not records:
            logger.info("All catalog documents are already cached", extra={"stage": "materialize"})
            return report

        workers = min(self.max_workers, len(records))
        logger.info(
            f"Materializing {len(records)} document(s) with {workers} worker(s)",
            extra={"stage": "materialize"},
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="catalog-dl") as executor:
            futures = {
                executor.submit(self.content_cache.ensure_cached, record): record
                for record in records
            }
            # completions are applied here, on the calling thread, one at a time
            for future in as_completed(futures):
                self._record_completion(futures[future], future, report)
        return report

    def _record_completion(
        self, record: LocalCatalogRecord, future, report: MaterializeReport
    ) -> None:
        try:
            result = future.result()
            self.local_store.set_local_file(record.id, result.path, result.page_count)
        except Exception as e:
            # one entry's failure, whatever its type, must not drop its siblings
            error = e if isinstance(e, CatalogSyncError) else _unexpected_entry_error(record, e)
            report.failures.append(
                EntryFailure(entry_id=record.id, url=record.remote_document_url, error=error)
            )
            log_sync_failure(
                logger, error, stage="materialize", entry_id=record.id, level=logging.WARNING
            )
            return

        if result.downloaded:
            report.downloaded.append(record.id)
        else:
            report.reused.append(record.id)

    # ------------------------------------------------------------------
    # Exclusion
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._owner == threading.get_ident():
            raise ConcurrencyError("A refresh is already running on this thread")
        self._check_usable()
        with self._lock:
            # re-check: the orchestrator may have been closed while waiting
            self._check_usable()
            self._owner = threading.get_ident()
            try:
                yield
            finally:
                self._owner = None

    def _check_usable(self) -> None:
        if self._closed:
            raise ConcurrencyError("Sync orchestrator is closed")
        missing = [
            name
            for name in ("fetcher", "remote_store", "local_store", "content_cache", "staleness")
            if getattr(self, name) is None
        ]
        if missing:
            raise ConcurrencyError(
                f"Sync orchestrator is missing dependencies: {', '.join(missing)}"
            )
