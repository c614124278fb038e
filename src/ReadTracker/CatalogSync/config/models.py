"""
Pydantic v2 Configuration Models for CatalogSync

Provides strict, typed configuration for every CatalogSync subsystem:
- HTTP client settings (timeouts, pool limits, User-Agent)
- Retry and backoff policy for transient transport failures
- Listing source (base URL, audience partitions, document extension)
- Remote and local catalog store backends
- Content cache location and download policy
- Staleness interval and persisted state location
- Logging

All models use extra="forbid" for strict validation. Environment variables
and programmatic overrides follow: file < env < overrides precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_DATA_DIR = "~/.local/share/ReadTracker"

# ============================================================================
# Network Models
# ============================================================================


class HttpClientConfig(BaseModel):
    """Configuration for HTTP client behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(default="ReadTracker/CatalogSync", description="User-Agent string")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    timeout_write_s: float = Field(default=60.0, description="Write timeout in seconds")
    timeout_pool_s: float = Field(default=10.0, description="Pool acquire timeout in seconds")
    max_connections: int = Field(default=10, description="Maximum open connections")
    max_keepalive_connections: int = Field(default=5, description="Maximum idle connections")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("timeout_connect_s", "timeout_read_s", "timeout_write_s", "timeout_pool_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("max_connections", "max_keepalive_connections")
    @classmethod
    def validate_pool(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Pool limits must be >= 1")
        return v


class RetryPolicy(BaseModel):
    """Configuration for retrying transient transport failures."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    max_attempts: int = Field(default=3, description="Maximum attempts including the first")
    backoff_multiplier_s: float = Field(default=0.5, description="Exponential backoff base")
    backoff_max_s: float = Field(default=8.0, description="Upper bound for a single wait")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("backoff_multiplier_s", "backoff_max_s")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Backoff values must be >= 0")
        return v


class ListingConfig(BaseModel):
    """Directory-style listing source the catalog is fetched from."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_url: str = Field(
        default="https://api.github.com/repos/lukasyano/Books/contents/",
        description="Listing root; the partition name is appended",
    )
    partitions: List[Literal["parent", "child"]] = Field(
        default_factory=lambda: ["parent", "child"],
        description="Audience partitions listed on every fetch",
    )
    document_extension: str = Field(default=".pdf", description="Recognised document suffix")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v if v.endswith("/") else v + "/"

    @field_validator("partitions")
    @classmethod
    def validate_partitions(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("At least one partition is required")
        if len(set(v)) != len(v):
            raise ValueError("Partitions must be unique")
        return v

    @field_validator("document_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2:
            raise ValueError("document_extension must look like '.pdf'")
        return v


# ============================================================================
# Storage Models
# ============================================================================


class RemoteStoreConfig(BaseModel):
    """Backend for the durable remote catalog index."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    backend: Literal["sqlite", "http"] = Field(
        default="sqlite", description="Remote catalog backend"
    )
    path: str = Field(
        default=f"{DEFAULT_DATA_DIR}/remote_catalog.sqlite",
        description="SQLite file (sqlite backend)",
    )
    base_url: Optional[str] = Field(
        default=None, description="Document collection API root (http backend)"
    )
    collection: str = Field(default="books", description="Collection name")

    @model_validator(mode="after")
    def validate_backend(self) -> "RemoteStoreConfig":
        if self.backend == "http" and not self.base_url:
            raise ValueError("base_url is required when backend='http'")
        return self


class LocalStoreConfig(BaseModel):
    """Local persisted catalog database."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    path: str = Field(
        default=f"{DEFAULT_DATA_DIR}/catalog.sqlite", description="SQLite database path"
    )
    wal_mode: bool = Field(default=True, description="Enable WAL mode for SQLite")


class CacheConfig(BaseModel):
    """Content-addressed download cache."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    root_dir: str = Field(default=DEFAULT_DATA_DIR, description="Application support directory")
    subdir: str = Field(default="Books", description="Cache directory under root_dir")
    exclude_from_backup: bool = Field(default=True, description="Tag the cache for backup tools")
    chunk_size_bytes: int = Field(default=1 << 16, description="Stream chunk size")
    verify_content_length: bool = Field(default=True, description="Check Content-Length")
    count_pages: bool = Field(default=True, description="Record page counts after download")

    @field_validator("chunk_size_bytes")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        return v


class StalenessConfig(BaseModel):
    """When a full refresh is due."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    refresh_interval_s: float = Field(default=86400.0, description="Minimum age before refresh")
    state_key: str = Field(
        default="ReadTracker.CatalogSync.last_full_sync_at",
        description="Namespaced key of the persisted timestamp",
    )

    @field_validator("refresh_interval_s")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("refresh_interval_s must be >= 0")
        return v


class MaterializeConfig(BaseModel):
    """Fan-out settings for the materialize stage."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_workers: int = Field(default=3, description="Concurrent downloads")

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workers must be >= 1")
        return v


class LoggingConfig(BaseModel):
    """Package logging."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_dir: Optional[str] = Field(default=None, description="Directory for JSON log files")


# ============================================================================
# Top-Level Configuration
# ============================================================================


class CatalogSyncConfig(BaseModel):
    """
    Single source of truth for CatalogSync configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden programmatically. Precedence: file < env < overrides.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    http: HttpClientConfig = Field(default_factory=HttpClientConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    listing: ListingConfig = Field(default_factory=ListingConfig)
    remote_store: RemoteStoreConfig = Field(default_factory=RemoteStoreConfig)
    local_store: LocalStoreConfig = Field(default_factory=LocalStoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    staleness: StalenessConfig = Field(default_factory=StalenessConfig)
    materialize: MaterializeConfig = Field(default_factory=MaterializeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
