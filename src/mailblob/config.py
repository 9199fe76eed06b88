"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates field bounds and builds the domain configuration objects
(cache and generation configurations) used by the storage layers.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from mailblob.blob.generation import GenerationConfiguration
    from mailblob.cache.base import CacheConfiguration


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Storage:
        BLOB_STORE_IMPLEMENTATION: memory | file
        BLOB_ROOT_DIR: Root directory of the file-system backend
        DEFAULT_BUCKET: Name of the default (cached) bucket
        STORAGE_STRATEGY: passthrough | deduplication

    Cache:
        CACHE_ENABLED: Wrap the store with the SQLite cache tier
        CACHE_DB_PATH: SQLite file backing the blob cache
        CACHE_SIZE_THRESHOLD_BYTES: Largest payload admitted by SIZE_BASED saves
        CACHE_TIMEOUT_MS: Upper bound on a cache read
        CACHE_TTL_SECONDS: Lifetime of a cache entry

    Garbage collection:
        GENERATION_DURATION_DAYS: Width of a generation window
        GENERATION_FAMILY: Generation family of newly minted ids
        GC_EXPECTED_BLOB_COUNT: Bloom filter sizing
        GC_ASSOCIATED_PROBABILITY: Bloom filter false positive rate
        GC_DELETION_WINDOW_SIZE: Blob ids per bulk delete
        GC_MAX_CONCURRENT_DELETIONS: Bulk deletes in flight

    LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    BLOB_STORE_IMPLEMENTATION: Literal["memory", "file"] = Field(
        default="file", description="Backend implementation"
    )
    BLOB_ROOT_DIR: Path = Field(default=Path(".blobs"), description="Backend root directory")
    DEFAULT_BUCKET: str = Field(default="default-bucket", description="Default bucket name")
    STORAGE_STRATEGY: Literal["passthrough", "deduplication"] = Field(
        default="deduplication", description="Blob storage strategy"
    )

    # Cache
    CACHE_ENABLED: bool = Field(default=False, description="Enable the blob cache tier")
    CACHE_DB_PATH: Path = Field(default=Path(".cache/blob_cache.db"), description="Cache database")
    CACHE_SIZE_THRESHOLD_BYTES: int = Field(
        default=8 * 1024, ge=0, description="Size threshold for SIZE_BASED caching"
    )
    CACHE_TIMEOUT_MS: int = Field(
        default=100, ge=1, le=3_600_000, description="Cache read timeout in milliseconds"
    )
    CACHE_TTL_SECONDS: int = Field(
        default=7 * 24 * 3600, ge=1, le=2**31 - 1, description="Cache entry TTL in seconds"
    )

    # Garbage collection
    GENERATION_DURATION_DAYS: int = Field(
        default=30, ge=1, description="Generation window width in days"
    )
    GENERATION_FAMILY: int = Field(default=1, ge=1, description="Generation family")
    GC_EXPECTED_BLOB_COUNT: int = Field(
        default=1_000_000, ge=1, description="Expected number of referenced blobs"
    )
    GC_ASSOCIATED_PROBABILITY: float = Field(
        default=0.01, gt=0.0, lt=1.0, description="Bloom filter false positive probability"
    )
    GC_DELETION_WINDOW_SIZE: int = Field(
        default=1000, ge=1, description="Number of blob ids per bulk delete"
    )
    GC_MAX_CONCURRENT_DELETIONS: int = Field(
        default=16, ge=1, le=256, description="Maximum bulk deletes in flight"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("DEFAULT_BUCKET")
    @classmethod
    def validate_default_bucket(cls, v: str) -> str:
        """Validate that the default bucket name is usable."""
        if not v.strip() or v != v.strip():
            raise ValueError("DEFAULT_BUCKET must be non-blank without surrounding whitespace")
        return v

    def cache_configuration(self) -> CacheConfiguration:
        """Build the cache configuration from settings."""
        from mailblob.cache.base import CacheConfiguration

        return CacheConfiguration(
            size_threshold_in_bytes=self.CACHE_SIZE_THRESHOLD_BYTES,
            timeout=timedelta(milliseconds=self.CACHE_TIMEOUT_MS),
            ttl=timedelta(seconds=self.CACHE_TTL_SECONDS),
        )

    def generation_configuration(self) -> GenerationConfiguration:
        """Build the generation configuration from settings."""
        from mailblob.blob.generation import GenerationConfiguration

        return GenerationConfiguration(
            duration=timedelta(days=self.GENERATION_DURATION_DAYS),
            family=self.GENERATION_FAMILY,
        )

    def ensure_directories(self) -> None:
        """Create the backend root and cache directories if they don't exist."""
        self.BLOB_ROOT_DIR.mkdir(parents=True, exist_ok=True)
        self.CACHE_DB_PATH.parent.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
