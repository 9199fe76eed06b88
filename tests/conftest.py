"""
Pytest configuration and fixtures for blob storage tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from mailblob.blob.dao import MemoryBlobStoreDAO
from mailblob.blob.generation import GenerationAwareBlobIdFactory, GenerationConfiguration
from mailblob.blob.ids import HashBlobId
from mailblob.blob.store import BlobStoreFactory, DeDuplicationBlobStore, PassThroughBlobStore
from mailblob.cache.base import CacheConfiguration
from mailblob.cache.cached_store import CachedBlobStore
from mailblob.cache.kv_cache import InMemoryBlobStoreCache
from mailblob.config import Settings, clear_settings_cache
from mailblob.metrics import RecordingMetricFactory
from mailblob.types import BucketName

EIGHT_KILOBYTES = b"A" * 8000
APPROXIMATELY_FIVE_KILOBYTES = ("0123456789\n" * 500).encode("utf-8")
TWELVE_KILOBYTES = b"B" * 12_000

DEFAULT_BUCKET = BucketName.DEFAULT
TEST_BUCKET = BucketName("test")


class UpdatableClock:
    """Clock whose instant is set by the test."""

    def __init__(self, instant: datetime) -> None:
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set_instant(self, instant: datetime) -> None:
        self._instant = instant

    def advance(self, delta: timedelta) -> None:
        self._instant = self._instant + delta


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "BLOB_ROOT_DIR": str(temp_dir / "blobs"),
        "DEFAULT_BUCKET": "mail-default",
        "STORAGE_STRATEGY": "passthrough",
        "CACHE_DB_PATH": str(temp_dir / "cache" / "blob_cache.db"),
        "CACHE_SIZE_THRESHOLD_BYTES": "9216",
        "CACHE_TIMEOUT_MS": "250",
        "CACHE_TTL_SECONDS": "3600",
        "GENERATION_DURATION_DAYS": "7",
        "GENERATION_FAMILY": "2",
        "GC_EXPECTED_BLOB_COUNT": "5000",
        "GC_ASSOCIATED_PROBABILITY": "0.05",
        "GC_DELETION_WINDOW_SIZE": "50",
        "GC_MAX_CONCURRENT_DELETIONS": "4",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from mailblob.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> UpdatableClock:
    """Provide a clock frozen at a fixed instant."""
    return UpdatableClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def generation_configuration() -> GenerationConfiguration:
    """Provide the default 30 days / family 1 generation configuration."""
    return GenerationConfiguration(duration=timedelta(days=30), family=1)


@pytest.fixture
def blob_id_factory(
    generation_configuration: GenerationConfiguration, clock: UpdatableClock
) -> GenerationAwareBlobIdFactory:
    """Provide a generation-aware factory over content hashes."""
    return GenerationAwareBlobIdFactory(HashBlobId.Factory(), generation_configuration, clock)


@pytest.fixture
def dao(blob_id_factory: GenerationAwareBlobIdFactory) -> MemoryBlobStoreDAO:
    """Provide an empty in-memory backend."""
    return MemoryBlobStoreDAO(blob_id_factory)


@pytest.fixture
def store_factory(
    dao: MemoryBlobStoreDAO, blob_id_factory: GenerationAwareBlobIdFactory
) -> BlobStoreFactory:
    """Provide a blob store factory over the in-memory backend."""
    return BlobStoreFactory(dao, blob_id_factory)


@pytest.fixture
def passthrough_store(store_factory: BlobStoreFactory) -> PassThroughBlobStore:
    return store_factory.passthrough()


@pytest.fixture
def deduplication_store(store_factory: BlobStoreFactory) -> DeDuplicationBlobStore:
    return store_factory.deduplication()


@pytest.fixture
def cache_configuration() -> CacheConfiguration:
    """Provide a cache admitting payloads up to 8001 bytes."""
    return CacheConfiguration(size_threshold_in_bytes=len(EIGHT_KILOBYTES) + 1)


@pytest.fixture
def cache(cache_configuration: CacheConfiguration, clock: UpdatableClock) -> InMemoryBlobStoreCache:
    """Provide an empty in-memory cache."""
    return InMemoryBlobStoreCache(cache_configuration, clock)


@pytest.fixture
def metric_factory() -> RecordingMetricFactory:
    return RecordingMetricFactory()


@pytest.fixture
def cached_store(
    cache: InMemoryBlobStoreCache,
    passthrough_store: PassThroughBlobStore,
    cache_configuration: CacheConfiguration,
    metric_factory: RecordingMetricFactory,
) -> CachedBlobStore:
    """Provide a cache-aware store over a pass-through backend."""
    return CachedBlobStore(cache, passthrough_store, cache_configuration, metric_factory)
