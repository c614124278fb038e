"""HTTP plumbing shared by the fetcher, remote store and content cache."""

from __future__ import annotations

from .client import build_http_client
from .download_helper import stream_download_to_file
from .retry import build_retrying, is_retryable

__all__ = ["build_http_client", "build_retrying", "is_retryable", "stream_download_to_file"]
