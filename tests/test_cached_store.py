"""
Tests for the cache-aware blob store.
"""

from __future__ import annotations

import pytest

from mailblob.blob.ids import BlobId
from mailblob.blob.store import PassThroughBlobStore
from mailblob.cache.base import CacheConfiguration
from mailblob.cache.cached_store import CachedBlobStore
from mailblob.cache.kv_cache import InMemoryBlobStoreCache
from mailblob.exceptions import CacheError, ObjectNotFoundError
from mailblob.metrics import (
    BLOBSTORE_BACKEND_LATENCY_METRIC_NAME,
    BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME,
    BLOBSTORE_CACHED_LATENCY_METRIC_NAME,
    BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME,
    RecordingMetricFactory,
)
from mailblob.types import BucketName, StoragePolicy

EIGHT_KILOBYTES = b"A" * 8000
APPROXIMATELY_FIVE_KILOBYTES = ("0123456789\n" * 500).encode("utf-8")
TWELVE_KILOBYTES = b"B" * 12_000

DEFAULT_BUCKET = BucketName.DEFAULT
TEST_BUCKET = BucketName("test")


class FailingCache(InMemoryBlobStoreCache):
    """Cache failing on every raw operation."""

    async def _put(self, blob_id: BlobId, data: bytes) -> None:
        raise CacheError("cache unavailable")

    async def _get(self, blob_id: BlobId) -> bytes | None:
        raise CacheError("cache unavailable")

    async def _delete(self, blob_id: BlobId) -> None:
        raise CacheError("cache unavailable")


class TestCachedBlobStoreSave:
    """Tests for cache admission on save."""

    @pytest.mark.asyncio
    async def test_size_based_small_blob_cached(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        """Test that a blob within the threshold is cached in the default bucket."""
        blob_id = await cached_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES, StoragePolicy.SIZE_BASED)

        assert await cache.read(blob_id) == EIGHT_KILOBYTES
        assert await cached_store.read_bytes(DEFAULT_BUCKET, blob_id) == EIGHT_KILOBYTES

    @pytest.mark.asyncio
    async def test_size_based_big_blob_not_cached(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        """Test that a blob above the threshold only reaches the backend."""
        blob_id = await cached_store.save(DEFAULT_BUCKET, TWELVE_KILOBYTES, StoragePolicy.SIZE_BASED)

        assert await cache.read(blob_id) is None
        assert await passthrough_store.read_bytes(DEFAULT_BUCKET, blob_id) == TWELVE_KILOBYTES

    @pytest.mark.asyncio
    async def test_high_performance_caches_big_blob(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        blob_id = await cached_store.save(
            DEFAULT_BUCKET, TWELVE_KILOBYTES, StoragePolicy.HIGH_PERFORMANCE
        )

        assert await cache.read(blob_id) == TWELVE_KILOBYTES

    @pytest.mark.asyncio
    async def test_low_cost_never_cached(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        blob_id = await cached_store.save(
            DEFAULT_BUCKET, APPROXIMATELY_FIVE_KILOBYTES, StoragePolicy.LOW_COST
        )

        assert await cache.read(blob_id) is None
        assert await cached_store.read_bytes(DEFAULT_BUCKET, blob_id, StoragePolicy.LOW_COST) == (
            APPROXIMATELY_FIVE_KILOBYTES
        )

    @pytest.mark.asyncio
    async def test_non_default_bucket_never_cached(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        """Test that only the default bucket goes through the cache."""
        blob_id = await cached_store.save(
            TEST_BUCKET, EIGHT_KILOBYTES, StoragePolicy.HIGH_PERFORMANCE
        )

        assert await cache.read(blob_id) is None
        assert await cached_store.read_bytes(TEST_BUCKET, blob_id) == EIGHT_KILOBYTES

    @pytest.mark.asyncio
    async def test_empty_blob_cached(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        blob_id = await cached_store.save(DEFAULT_BUCKET, b"")

        assert await cache.read(blob_id) == b""

    @pytest.mark.asyncio
    async def test_text_payload(
        self, cached_store: CachedBlobStore, cache: InMemoryBlobStoreCache
    ) -> None:
        blob_id = await cached_store.save(DEFAULT_BUCKET, "short text")

        assert await cache.read(blob_id) == b"short text"

    @pytest.mark.asyncio
    async def test_threshold_boundary(
        self,
        passthrough_store: PassThroughBlobStore,
        cache: InMemoryBlobStoreCache,
    ) -> None:
        """Test that 8 KiB fits an 8 KiB threshold while 9 KiB does not."""
        configuration = CacheConfiguration(size_threshold_in_bytes=8 * 1024)
        store = CachedBlobStore(cache, passthrough_store, configuration)

        fits = await store.save(DEFAULT_BUCKET, b"x" * 8 * 1024)
        too_big = await store.save(DEFAULT_BUCKET, b"x" * 9 * 1024)

        assert await cache.read(fits) is not None
        assert await cache.read(too_big) is None


class TestCachedBlobStoreRead:
    """Tests for read-through behaviour."""

    @pytest.mark.asyncio
    async def test_read_warms_cache(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        """Test that a blob written straight to the backend is cached on first read."""
        blob_id = await passthrough_store.save(DEFAULT_BUCKET, APPROXIMATELY_FIVE_KILOBYTES)
        assert await cache.read(blob_id) is None

        assert await cached_store.read_bytes(DEFAULT_BUCKET, blob_id) == APPROXIMATELY_FIVE_KILOBYTES
        assert await cache.read(blob_id) == APPROXIMATELY_FIVE_KILOBYTES

    @pytest.mark.asyncio
    async def test_read_stream_warms_cache(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        blob_id = await passthrough_store.save(DEFAULT_BUCKET, APPROXIMATELY_FIVE_KILOBYTES)

        stream = await cached_store.read(DEFAULT_BUCKET, blob_id)

        assert stream.read() == APPROXIMATELY_FIVE_KILOBYTES
        assert await cache.read(blob_id) == APPROXIMATELY_FIVE_KILOBYTES

    @pytest.mark.asyncio
    async def test_read_big_blob_not_cached(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        blob_id = await passthrough_store.save(DEFAULT_BUCKET, TWELVE_KILOBYTES)

        assert await cached_store.read_bytes(DEFAULT_BUCKET, blob_id) == TWELVE_KILOBYTES
        assert await cache.read(blob_id) is None

    @pytest.mark.asyncio
    async def test_read_non_default_bucket_not_cached(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        blob_id = await passthrough_store.save(TEST_BUCKET, APPROXIMATELY_FIVE_KILOBYTES)

        assert await cached_store.read_bytes(TEST_BUCKET, blob_id) == APPROXIMATELY_FIVE_KILOBYTES
        assert await cache.read(blob_id) is None

    @pytest.mark.asyncio
    async def test_low_cost_read_bypasses_cache(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
        metric_factory: RecordingMetricFactory,
    ) -> None:
        blob_id = await passthrough_store.save(DEFAULT_BUCKET, APPROXIMATELY_FIVE_KILOBYTES)

        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id, StoragePolicy.LOW_COST)

        assert await cache.read(blob_id) is None
        assert metric_factory.execution_times_for(BLOBSTORE_CACHED_LATENCY_METRIC_NAME) == []
        assert len(metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME)) == 1

    @pytest.mark.asyncio
    async def test_read_missing_raises(
        self, cached_store: CachedBlobStore, passthrough_store: PassThroughBlobStore
    ) -> None:
        blob_id = passthrough_store.blob_id_factory.random_id()

        with pytest.raises(ObjectNotFoundError):
            await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)


class TestCachedBlobStoreDelete:
    """Tests for deletion through the cache-aware store."""

    @pytest.mark.asyncio
    async def test_delete_removes_cache_and_backend(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        passthrough_store: PassThroughBlobStore,
    ) -> None:
        """Test that a deleted blob is gone from both tiers."""
        blob_id = await cached_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES, StoragePolicy.SIZE_BASED)

        await cached_store.delete(DEFAULT_BUCKET, blob_id)

        assert await cache.read(blob_id) is None
        with pytest.raises(ObjectNotFoundError):
            await passthrough_store.read_bytes(DEFAULT_BUCKET, blob_id)
        with pytest.raises(ObjectNotFoundError):
            await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)

    @pytest.mark.asyncio
    async def test_delete_non_default_bucket(
        self, cached_store: CachedBlobStore, passthrough_store: PassThroughBlobStore
    ) -> None:
        blob_id = await cached_store.save(TEST_BUCKET, EIGHT_KILOBYTES)

        await cached_store.delete(TEST_BUCKET, blob_id)

        with pytest.raises(ObjectNotFoundError):
            await passthrough_store.read_bytes(TEST_BUCKET, blob_id)

    @pytest.mark.asyncio
    async def test_delete_bucket_and_list(self, cached_store: CachedBlobStore) -> None:
        kept = await cached_store.save(TEST_BUCKET, b"kept")
        await cached_store.save(DEFAULT_BUCKET, b"dropped")

        await cached_store.delete_bucket(DEFAULT_BUCKET)

        assert [blob_id async for blob_id in cached_store.list_blobs(DEFAULT_BUCKET)] == []
        assert [blob_id async for blob_id in cached_store.list_blobs(TEST_BUCKET)] == [kept]


class TestCachedBlobStoreFailures:
    """Tests that a broken cache never changes results."""

    @pytest.fixture
    def failing_store(
        self, passthrough_store: PassThroughBlobStore, cache_configuration: CacheConfiguration
    ) -> CachedBlobStore:
        return CachedBlobStore(FailingCache(cache_configuration), passthrough_store)

    @pytest.mark.asyncio
    async def test_save_and_read_through_failing_cache(self, failing_store: CachedBlobStore) -> None:
        blob_id = await failing_store.save(
            DEFAULT_BUCKET, EIGHT_KILOBYTES, StoragePolicy.HIGH_PERFORMANCE
        )

        assert await failing_store.read_bytes(DEFAULT_BUCKET, blob_id) == EIGHT_KILOBYTES

    @pytest.mark.asyncio
    async def test_delete_through_failing_cache(
        self, failing_store: CachedBlobStore, passthrough_store: PassThroughBlobStore
    ) -> None:
        blob_id = await failing_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES)

        await failing_store.delete(DEFAULT_BUCKET, blob_id)

        with pytest.raises(ObjectNotFoundError):
            await passthrough_store.read_bytes(DEFAULT_BUCKET, blob_id)


class TestCachedBlobStoreMetrics:
    """Tests for hit, miss and latency metrics."""

    @pytest.mark.asyncio
    async def test_hits_counted(
        self, cached_store: CachedBlobStore, metric_factory: RecordingMetricFactory
    ) -> None:
        blob_id = await cached_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES)

        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)
        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)

        assert metric_factory.count_for(BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME) == 2
        assert metric_factory.count_for(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME) == 0
        assert len(metric_factory.execution_times_for(BLOBSTORE_CACHED_LATENCY_METRIC_NAME)) == 2
        assert metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME) == []

    @pytest.mark.asyncio
    async def test_miss_counted_then_hit(
        self,
        cached_store: CachedBlobStore,
        cache: InMemoryBlobStoreCache,
        metric_factory: RecordingMetricFactory,
    ) -> None:
        """Test that a miss warms the cache so the next read is a hit."""
        blob_id = await cached_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES)
        await cache.remove(blob_id)

        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)
        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)

        assert metric_factory.count_for(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME) == 1
        assert metric_factory.count_for(BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME) == 1
        assert len(metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME)) == 1

    @pytest.mark.asyncio
    async def test_big_blob_counts_neither_hit_nor_miss(
        self, cached_store: CachedBlobStore, metric_factory: RecordingMetricFactory
    ) -> None:
        blob_id = await cached_store.save(DEFAULT_BUCKET, TWELVE_KILOBYTES)

        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)
        await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)

        assert metric_factory.count_for(BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME) == 0
        assert metric_factory.count_for(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME) == 0
        assert len(metric_factory.execution_times_for(BLOBSTORE_CACHED_LATENCY_METRIC_NAME)) == 2
        assert len(metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME)) == 2

    @pytest.mark.asyncio
    async def test_non_default_bucket_only_times_backend(
        self, cached_store: CachedBlobStore, metric_factory: RecordingMetricFactory
    ) -> None:
        blob_id = await cached_store.save(TEST_BUCKET, EIGHT_KILOBYTES)

        await cached_store.read_bytes(TEST_BUCKET, blob_id)
        await cached_store.read_bytes(TEST_BUCKET, blob_id)

        assert metric_factory.count_for(BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME) == 0
        assert metric_factory.count_for(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME) == 0
        assert metric_factory.execution_times_for(BLOBSTORE_CACHED_LATENCY_METRIC_NAME) == []
        assert len(metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME)) == 2

    @pytest.mark.asyncio
    async def test_missing_blob_times_both_tiers(
        self, cached_store: CachedBlobStore, metric_factory: RecordingMetricFactory
    ) -> None:
        """Test that a failed read still records latencies but no miss."""
        blob_id = await cached_store.save(DEFAULT_BUCKET, EIGHT_KILOBYTES)
        await cached_store.delete(DEFAULT_BUCKET, blob_id)

        with pytest.raises(ObjectNotFoundError):
            await cached_store.read_bytes(DEFAULT_BUCKET, blob_id)

        assert metric_factory.count_for(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME) == 0
        assert len(metric_factory.execution_times_for(BLOBSTORE_CACHED_LATENCY_METRIC_NAME)) == 1
        assert len(metric_factory.execution_times_for(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME)) == 1
