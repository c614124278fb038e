"""Configuration models and loader for CatalogSync."""

from __future__ import annotations

from .loader import load_config
from .models import (
    CacheConfig,
    CatalogSyncConfig,
    HttpClientConfig,
    ListingConfig,
    LocalStoreConfig,
    LoggingConfig,
    MaterializeConfig,
    RemoteStoreConfig,
    RetryPolicy,
    StalenessConfig,
)

__all__ = [
    "CacheConfig",
    "CatalogSyncConfig",
    "HttpClientConfig",
    "ListingConfig",
    "LocalStoreConfig",
    "LoggingConfig",
    "MaterializeConfig",
    "RemoteStoreConfig",
    "RetryPolicy",
    "StalenessConfig",
    "load_config",
]
