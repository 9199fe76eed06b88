"""
Blob storage runtime wired from settings.

Builds the backend, the storage strategy, the optional cache tier and
GC tasks from a Settings instance:

- BLOB_STORE_IMPLEMENTATION selects the memory or file-system backend
- STORAGE_STRATEGY selects pass-through or deduplication
- CACHE_ENABLED wraps the store with the SQLite cache tier
- GC_* settings are the defaults of every GC task
"""

from __future__ import annotations

from collections.abc import Iterable

from mailblob.blob.dao import BlobStoreDAO, MemoryBlobStoreDAO
from mailblob.blob.file_dao import FileBlobStoreDAO
from mailblob.blob.generation import GenerationAwareBlobIdFactory
from mailblob.blob.ids import HashBlobId
from mailblob.blob.store import BlobStore, BlobStoreFactory
from mailblob.cache.cached_store import CachedBlobStore
from mailblob.cache.kv_cache import SQLiteBlobStoreCache
from mailblob.config import Settings, get_settings
from mailblob.gc.algorithm import BlobReferenceSource, BloomFilterGCAlgorithm
from mailblob.gc.task import BloomFilterGCTask, BloomFilterGCTaskDTO
from mailblob.logging import get_logger, setup_logging
from mailblob.metrics import MetricFactory, NoopMetricFactory
from mailblob.types import BucketName, Clock, SystemClock

logger = get_logger(__name__)


class BlobStoreRuntime:
    """Blob store components built from application settings.

    Usage:
        runtime = BlobStoreRuntime()
        await runtime.init()
        blob_id = await runtime.store.save(runtime.default_bucket, b"payload")
        await runtime.close()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Clock | None = None,
        metric_factory: MetricFactory | None = None,
    ) -> None:
        """Build the backend and strategy store.

        Args:
            settings: Application settings. If None, loads from env.
            clock: Time source for ids, cache expiry and GC.
            metric_factory: Sink for cache metrics.
        """
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.metric_factory = metric_factory or NoopMetricFactory()

        self.default_bucket = BucketName(self.settings.DEFAULT_BUCKET)
        self.generation_configuration = self.settings.generation_configuration()
        self.blob_id_factory = GenerationAwareBlobIdFactory(
            HashBlobId.Factory(), self.generation_configuration, self.clock
        )
        self.dao = self._build_dao()
        self.backend_store = BlobStoreFactory(
            self.dao, self.blob_id_factory, self.default_bucket
        ).create(self.settings.STORAGE_STRATEGY)

        # Cache tier is attached by init()
        self.cache: SQLiteBlobStoreCache | None = None
        self.store: BlobStore = self.backend_store

    def _build_dao(self) -> BlobStoreDAO:
        if self.settings.BLOB_STORE_IMPLEMENTATION == "memory":
            return MemoryBlobStoreDAO(self.blob_id_factory)
        return FileBlobStoreDAO(self.settings.BLOB_ROOT_DIR, self.blob_id_factory)

    def setup_logging(self) -> None:
        """Configure console logging at the configured LOG_LEVEL."""
        setup_logging(log_level=self.settings.LOG_LEVEL)

    async def init(self) -> None:
        """Open the cache tier when enabled."""
        if not self.settings.CACHE_ENABLED or self.cache is not None:
            return
        cache_configuration = self.settings.cache_configuration()
        self.cache = SQLiteBlobStoreCache(
            self.settings.CACHE_DB_PATH, cache_configuration, self.clock
        )
        await self.cache.init()
        self.store = CachedBlobStore(
            self.cache, self.backend_store, cache_configuration, self.metric_factory
        )
        logger.info(
            "Blob cache enabled",
            bucket=self.default_bucket.as_string(),
            db_path=str(self.settings.CACHE_DB_PATH),
        )

    async def close(self) -> None:
        """Close the cache tier."""
        if self.cache is not None:
            await self.cache.close()
            self.cache = None
        self.store = self.backend_store

    def gc_algorithm(
        self,
        reference_sources: Iterable[BlobReferenceSource],
        bucket: BucketName | None = None,
    ) -> BloomFilterGCAlgorithm:
        return BloomFilterGCAlgorithm(
            self.dao,
            bucket or self.default_bucket,
            self.blob_id_factory,
            reference_sources,
            configuration=self.generation_configuration,
            clock=self.clock,
            max_concurrent_deletions=self.settings.GC_MAX_CONCURRENT_DELETIONS,
        )

    def gc_task(
        self,
        reference_sources: Iterable[BlobReferenceSource],
        bucket: BucketName | None = None,
    ) -> BloomFilterGCTask:
        """Create a GC task using the configured bloom filter and window settings.

        Args:
            reference_sources: Sources enumerating every referenced blob id.
            bucket: Bucket to collect. Defaults to DEFAULT_BUCKET.
        """
        return BloomFilterGCTask(
            self.gc_algorithm(reference_sources, bucket),
            expected_blob_count=self.settings.GC_EXPECTED_BLOB_COUNT,
            deletion_window_size=self.settings.GC_DELETION_WINDOW_SIZE,
            associated_probability=self.settings.GC_ASSOCIATED_PROBABILITY,
            clock=self.clock,
        )

    def gc_task_from_dto(
        self,
        dto: BloomFilterGCTaskDTO,
        reference_sources: Iterable[BlobReferenceSource],
    ) -> BloomFilterGCTask:
        """Rebuild a persisted GC task against this runtime's backend."""
        sources = list(reference_sources)
        return BloomFilterGCTask.from_dto(
            dto, lambda bucket: self.gc_algorithm(sources, bucket), self.clock
        )
