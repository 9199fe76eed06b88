"""
Bloom filter garbage collection of orphaned blobs.

One run over one bucket:
1. Insert every id enumerated by the reference sources into a bloom filter,
   salted with a value fresh to this run.
2. List the bucket. A blob becomes a deletion candidate only when it is
   outside the active generation window AND the filter certainly never saw
   it. A filter false positive therefore only postpones a deletion, and a
   blob young enough to have an in-flight reference write is always kept.
3. Delete candidates in windows of ``deletion_window_size`` ids, with a
   bounded number of bulk deletes in flight.

The salt changes on every run so that an orphan colliding with the filter
once does not collide forever: the odds of surviving k runs decay as p^k.

A failing window only makes the run PARTIAL; a failure while building the
filter or listing makes the whole run PARTIAL. run() never raises for them.
"""

from __future__ import annotations

import asyncio
import secrets
import threading
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from mailblob.blob.dao import BlobStoreDAO
from mailblob.blob.generation import (
    GenerationAwareBlobId,
    GenerationAwareBlobIdFactory,
    GenerationConfiguration,
)
from mailblob.blob.ids import BlobId
from mailblob.gc.bloom import BloomFilter
from mailblob.logging import get_logger, log_context
from mailblob.task import Result
from mailblob.types import BucketName, Clock, SystemClock

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT_DELETIONS = 16


@runtime_checkable
class BlobReferenceSource(Protocol):
    """A subsystem able to enumerate the blobs it still references."""

    def list_referenced_blobs(self) -> AsyncIterator[BlobId]:
        """Stream every blob id still in use."""
        ...


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of a GC run's counters."""

    reference_source_count: int
    blob_count: int
    gced_blob_count: int
    error_count: int
    bloom_filter_expected_blob_count: int
    bloom_filter_associated_probability: float


class Context:
    """Counters of one GC run, safe for concurrent increments."""

    def __init__(self, expected_blob_count: int, associated_probability: float) -> None:
        self._lock = threading.Lock()
        self.bloom_filter_expected_blob_count = expected_blob_count
        self.bloom_filter_associated_probability = associated_probability
        self._reference_source_count = 0
        self._blob_count = 0
        self._gced_blob_count = 0
        self._error_count = 0

    def increment_reference_source_count(self) -> None:
        with self._lock:
            self._reference_source_count += 1

    def increment_blob_count(self) -> None:
        with self._lock:
            self._blob_count += 1

    def increment_gced_blob_count(self, amount: int = 1) -> None:
        with self._lock:
            self._gced_blob_count += amount

    def increment_error_count(self) -> None:
        with self._lock:
            self._error_count += 1

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                reference_source_count=self._reference_source_count,
                blob_count=self._blob_count,
                gced_blob_count=self._gced_blob_count,
                error_count=self._error_count,
                bloom_filter_expected_blob_count=self.bloom_filter_expected_blob_count,
                bloom_filter_associated_probability=self.bloom_filter_associated_probability,
            )


class BloomFilterGCAlgorithm:
    """Collects orphaned, sufficiently aged blobs of one bucket."""

    def __init__(
        self,
        dao: BlobStoreDAO,
        bucket: BucketName,
        generation_factory: GenerationAwareBlobIdFactory,
        reference_sources: Iterable[BlobReferenceSource],
        configuration: GenerationConfiguration | None = None,
        clock: Clock | None = None,
        max_concurrent_deletions: int = DEFAULT_MAX_CONCURRENT_DELETIONS,
    ) -> None:
        if max_concurrent_deletions < 1:
            raise ValueError(
                f"max_concurrent_deletions must be positive, got {max_concurrent_deletions}"
            )
        self.dao = dao
        self.bucket = bucket
        self.generation_factory = generation_factory
        self.reference_sources = list(reference_sources)
        self.configuration = configuration or generation_factory.configuration
        self.clock = clock or SystemClock()
        self.max_concurrent_deletions = max_concurrent_deletions

    async def gc(
        self,
        expected_blob_count: int,
        deletion_window_size: int,
        associated_probability: float,
        context: Context,
        cancellation: asyncio.Event | None = None,
    ) -> Result:
        """Run one collection over the bucket.

        Args:
            expected_blob_count: Number of references the filter is sized for.
            deletion_window_size: Number of ids per bulk delete.
            associated_probability: Target false positive rate of the filter.
            context: Counters updated during the run.
            cancellation: Once set, no new deletion window is started.

        Returns:
            COMPLETED when every candidate was deleted, PARTIAL otherwise.
        """
        if deletion_window_size < 1:
            raise ValueError(f"deletion_window_size must be positive, got {deletion_window_size}")

        salt = secrets.token_hex(16)

        with log_context(bucket=self.bucket.as_string()):
            try:
                with log_context(phase="reference_scan"):
                    bloom_filter = await self._build_bloom_filter(
                        expected_blob_count, associated_probability, salt, context
                    )
            except Exception:
                logger.exception("Error while building the bloom filter, aborting GC")
                return Result.PARTIAL

            with log_context(phase="sweep"):
                result = await self._sweep(
                    bloom_filter, salt, deletion_window_size, context, cancellation
                )

        logger.info("Blob GC finished", result=result.value, **_as_dict(context.snapshot()))
        return result

    async def _build_bloom_filter(
        self,
        expected_blob_count: int,
        associated_probability: float,
        salt: str,
        context: Context,
    ) -> BloomFilter:
        bloom_filter = BloomFilter(expected_blob_count, associated_probability)
        for source in self.reference_sources:
            async for blob_id in source.list_referenced_blobs():
                bloom_filter.put(salt + blob_id.as_string())
                context.increment_reference_source_count()
        logger.debug(
            "Bloom filter built",
            references=bloom_filter.approximate_element_count,
            estimated_false_positive_probability=bloom_filter.expected_false_positive_probability(),
        )
        return bloom_filter

    async def _candidates(
        self,
        bloom_filter: BloomFilter,
        salt: str,
        context: Context,
    ) -> AsyncIterator[BlobId]:
        now = self.clock.now()
        async for listed in self.dao.list_blobs(self.bucket):
            context.increment_blob_count()
            blob_id = self._as_generation_aware(listed)
            if blob_id.in_active_generation(self.configuration, now):
                continue
            if bloom_filter.might_contain(salt + blob_id.as_string()):
                continue
            yield blob_id

    def _as_generation_aware(self, blob_id: BlobId) -> GenerationAwareBlobId:
        if isinstance(blob_id, GenerationAwareBlobId):
            return blob_id
        return self.generation_factory.parse(blob_id.as_string())

    async def _sweep(
        self,
        bloom_filter: BloomFilter,
        salt: str,
        deletion_window_size: int,
        context: Context,
        cancellation: asyncio.Event | None,
    ) -> Result:
        semaphore = asyncio.Semaphore(self.max_concurrent_deletions)
        in_flight: list[asyncio.Task[Result]] = []
        results: list[Result] = []

        def cancelled() -> bool:
            return cancellation is not None and cancellation.is_set()

        async def submit(window: list[BlobId]) -> bool:
            await semaphore.acquire()
            # Cancellation may arrive while waiting for a free slot.
            if cancelled():
                semaphore.release()
                return False
            task = asyncio.create_task(self._delete_window(window, context))
            task.add_done_callback(lambda _: semaphore.release())
            in_flight.append(task)
            return True

        window: list[BlobId] = []
        try:
            async for blob_id in self._candidates(bloom_filter, salt, context):
                window.append(blob_id)
                if len(window) < deletion_window_size:
                    continue
                if cancelled() or not await submit(window):
                    results.append(Result.PARTIAL)
                    window = []
                    break
                window = []
            if window and (cancelled() or not await submit(window)):
                results.append(Result.PARTIAL)
        except Exception:
            logger.exception("Error while listing blobs, GC is partial")
            results.append(Result.PARTIAL)
        finally:
            if in_flight:
                results.extend(await asyncio.gather(*in_flight))

        if cancelled():
            logger.warning("Blob GC cancelled, remaining windows skipped")
        return Result.merge(results)

    async def _delete_window(self, window: list[BlobId], context: Context) -> Result:
        try:
            await self.dao.delete_many(self.bucket, window)
        except Exception as e:
            logger.error(
                "Error while deleting orphan blobs",
                window_size=len(window),
                error=repr(e),
                exc_info=True,
            )
            context.increment_error_count()
            return Result.PARTIAL
        context.increment_gced_blob_count(len(window))
        return Result.COMPLETED


def _as_dict(snapshot: Snapshot) -> dict[str, int | float]:
    return {
        "reference_source_count": snapshot.reference_source_count,
        "blob_count": snapshot.blob_count,
        "gced_blob_count": snapshot.gced_blob_count,
        "error_count": snapshot.error_count,
    }
