"""
Cache-aware blob store.

Composes a backend BlobStore with a BlobStoreCache. Only the backend's
default bucket goes through the cache: its capacity is sized for the
default bucket's working set, other buckets always hit the backend.

Save admission (default bucket only):
- HIGH_PERFORMANCE: always cached
- SIZE_BASED: cached when the payload fits below the size threshold
- LOW_COST: never cached

Reads of the default bucket try the cache first and warm it on a miss, so
objects written straight to the backend get cached on first read.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from mailblob.blob.dao import BlobContent
from mailblob.blob.ids import BlobId, content_of
from mailblob.blob.store import BlobStore
from mailblob.cache.base import BlobStoreCache, CacheConfiguration
from mailblob.logging import get_logger
from mailblob.metrics import (
    BLOBSTORE_BACKEND_LATENCY_METRIC_NAME,
    BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME,
    BLOBSTORE_CACHED_LATENCY_METRIC_NAME,
    BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME,
    MetricFactory,
    NoopMetricFactory,
)
from mailblob.types import BucketName, StoragePolicy

logger = get_logger(__name__)


class CachedBlobStore(BlobStore):
    """Read-through / write-through cache in front of a blob store."""

    def __init__(
        self,
        cache: BlobStoreCache,
        backend: BlobStore,
        configuration: CacheConfiguration | None = None,
        metric_factory: MetricFactory | None = None,
    ) -> None:
        self.cache = cache
        self.backend = backend
        self.configuration = configuration or cache.configuration
        self.metric_factory = metric_factory or NoopMetricFactory()

    @property
    def default_bucket_name(self) -> BucketName:
        return self.backend.default_bucket_name

    def _is_default_bucket(self, bucket: BucketName) -> bool:
        return bucket == self.backend.default_bucket_name

    def _should_cache_on_save(self, policy: StoragePolicy, size: int) -> bool:
        if policy is StoragePolicy.HIGH_PERFORMANCE:
            return True
        if policy is StoragePolicy.SIZE_BASED:
            return self.configuration.admits(size)
        return False

    async def save(
        self,
        bucket: BucketName,
        data: BlobContent,
        policy: StoragePolicy = StoragePolicy.SIZE_BASED,
    ) -> BlobId:
        content = content_of(data)
        blob_id = await self.backend.save(bucket, content, policy)

        if self._is_default_bucket(bucket) and self._should_cache_on_save(policy, len(content)):
            await self.cache.cache(blob_id, content)

        return blob_id

    async def read_bytes(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy = StoragePolicy.HIGH_PERFORMANCE,
    ) -> bytes:
        if not self._is_default_bucket(bucket) or policy is StoragePolicy.LOW_COST:
            return await self._read_from_backend(bucket, blob_id, policy)

        with self.metric_factory.timer(BLOBSTORE_CACHED_LATENCY_METRIC_NAME):
            cached = await self.cache.read(blob_id)

        if cached is not None:
            self.metric_factory.counter(BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME).increment()
            return cached

        data = await self._read_from_backend(bucket, blob_id, policy)
        if self.configuration.admits(len(data)):
            self.metric_factory.counter(BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME).increment()
            await self.cache.cache(blob_id, data)
        return data

    async def _read_from_backend(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy,
    ) -> bytes:
        with self.metric_factory.timer(BLOBSTORE_BACKEND_LATENCY_METRIC_NAME):
            return await self.backend.read_bytes(bucket, blob_id, policy)

    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        await self.backend.delete(bucket, blob_id)
        if self._is_default_bucket(bucket):
            await self.cache.remove(blob_id)

    async def delete_bucket(self, bucket: BucketName) -> None:
        # Cached entries of a deleted default bucket expire with their TTL
        await self.backend.delete_bucket(bucket)

    async def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        async for blob_id in self.backend.list_blobs(bucket):
            yield blob_id
