"""Error taxonomy and logging helpers for catalog synchronisation.

Responsibilities
----------------
- Define the exception types raised by the fetcher, the stores, the content
  cache and the orchestrator (``TransportError``, ``DecodeError``,
  ``StorageError``, ``ConcurrencyError``, ``MaterializeError``).
- Translate those exceptions into user-facing ``(message, suggestion)`` pairs
  via :func:`get_actionable_error_message` so collaborators can tell the user
  that previously cached content is still available.
- Centralise structured failure logging through :func:`log_sync_failure`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from ReadTracker.CatalogSync.models import EntryFailure, RefreshReport

__all__ = (
    "CatalogSyncError",
    "TransportError",
    "DecodeError",
    "StorageError",
    "ConcurrencyError",
    "MaterializeError",
    "get_actionable_error_message",
    "log_sync_failure",
)

LOGGER = logging.getLogger(__name__)


class CatalogSyncError(Exception):
    """Base class for every error raised by the sync pipeline."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class TransportError(CatalogSyncError):
    """Malformed URL, non-success HTTP status, or network failure."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.url = url
        self.status_code = status_code


class DecodeError(CatalogSyncError):
    """A listing or store response did not match the expected shape."""

    def __init__(self, message: str, *, url: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)
        self.url = url


class StorageError(CatalogSyncError):
    """Persisted-store or cache-directory I/O failed."""

    def __init__(
        self, message: str, *, operation: str | None = None, details: dict[str, Any] | None = None
    ):
        super().__init__(message, details=details)
        self.operation = operation


class ConcurrencyError(CatalogSyncError):
    """A refresh was requested while the orchestration context is unusable."""


class MaterializeError(CatalogSyncError):
    """One or more entries failed to download during the materialize stage.

    Entries that succeeded are already recorded in the local store; only the
    staleness mark is withheld.
    """

    def __init__(
        self,
        failures: Sequence["EntryFailure"],
        *,
        report: Optional["RefreshReport"] = None,
    ):
        ids = ", ".join(failure.entry_id for failure in failures)
        super().__init__(f"{len(failures)} document(s) failed to download: {ids}")
        self.failures = list(failures)
        self.report = report


def get_actionable_error_message(error: BaseException) -> tuple[str, str | None]:
    """Generate a user-friendly message with an optional suggestion.

    Args:
        error: Exception raised by a sync operation

    Returns:
        Tuple of (message, suggestion) where suggestion may be None

    Examples:
        >>> msg, hint = get_actionable_error_message(TransportError("x", status_code=404))
        >>> msg
        'The book list could not be found (HTTP 404)'
    """
    cached_hint = "Previously downloaded books are still available offline."

    if isinstance(error, TransportError):
        status = error.status_code
        if status == 403 or status == 429:
            return (
                f"The book server is refusing requests right now (HTTP {status})",
                f"Try again later. {cached_hint}",
            )
        if status == 404:
            return (
                "The book list could not be found (HTTP 404)",
                cached_hint,
            )
        if status is not None and status >= 500:
            return (
                f"The book server had a problem (HTTP {status})",
                f"Try again later. {cached_hint}",
            )
        return (
            "Could not reach the book server",
            f"Check your internet connection. {cached_hint}",
        )
    if isinstance(error, DecodeError):
        return ("The book list had an unexpected format", cached_hint)
    if isinstance(error, StorageError):
        return (
            "Books could not be saved on this device",
            "Free up some storage space and try again.",
        )
    if isinstance(error, MaterializeError):
        return (
            f"{len(error.failures)} book(s) could not be downloaded",
            f"They will be retried next time. {cached_hint}",
        )
    if isinstance(error, ConcurrencyError):
        return ("Book synchronisation is not available right now", None)
    return ("Book synchronisation failed", cached_hint)


def log_sync_failure(
    logger: logging.Logger,
    error: BaseException,
    *,
    stage: str,
    entry_id: str | None = None,
    level: int = logging.ERROR,
) -> None:
    """Emit one structured log record describing ``error``."""

    message, suggestion = get_actionable_error_message(error)
    extra = {
        "stage": stage,
        "entry_id": entry_id,
        "extra_fields": {
            "error_type": type(error).__name__,
            "error": str(error),
            "suggestion": suggestion,
            "url": getattr(error, "url", None),
            "status_code": getattr(error, "status_code", None),
        },
    }
    logger.log(level, f"[{stage}] {message}: {error}", extra=extra)
