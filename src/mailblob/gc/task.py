"""
Blob garbage collection packaged as a task.

BloomFilterGCTask adapts BloomFilterGCAlgorithm to the task framework:
the run counters live in a Context created with the task, and details()
exposes a snapshot of them at any time, including while the run is going.

BloomFilterGCTaskDTO is the persisted description of a run (bucket,
expected blob count, deletion window size, associated probability),
enough to rebuild and re-run the task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import orjson

from mailblob.gc.algorithm import BloomFilterGCAlgorithm, Context, Snapshot
from mailblob.logging import get_logger, log_context
from mailblob.task import Result, Task
from mailblob.types import BucketName, Clock, SystemClock, generate_id

logger = get_logger(__name__)

TASK_TYPE = "BlobGCTask"

DEFAULT_EXPECTED_BLOB_COUNT = 1_000_000
DEFAULT_DELETION_WINDOW_SIZE = 1000
DEFAULT_ASSOCIATED_PROBABILITY = 0.01


@dataclass(frozen=True)
class BloomFilterGCTaskDetails:
    """Progress of a GC task at one instant."""

    timestamp: datetime
    reference_source_count: int
    blob_count: int
    gced_blob_count: int
    error_count: int
    bloom_filter_expected_blob_count: int
    bloom_filter_associated_probability: float

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, timestamp: datetime) -> BloomFilterGCTaskDetails:
        return cls(
            timestamp=timestamp,
            reference_source_count=snapshot.reference_source_count,
            blob_count=snapshot.blob_count,
            gced_blob_count=snapshot.gced_blob_count,
            error_count=snapshot.error_count,
            bloom_filter_expected_blob_count=snapshot.bloom_filter_expected_blob_count,
            bloom_filter_associated_probability=snapshot.bloom_filter_associated_probability,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "referenceSourceCount": self.reference_source_count,
            "blobCount": self.blob_count,
            "gcedBlobCount": self.gced_blob_count,
            "errorCount": self.error_count,
            "bloomFilterExpectedBlobCount": self.bloom_filter_expected_blob_count,
            "bloomFilterAssociatedProbability": self.bloom_filter_associated_probability,
        }


@dataclass(frozen=True)
class BloomFilterGCTaskDTO:
    """Serialized form of a GC task."""

    bucket_name: str
    expected_blob_count: int
    deletion_window_size: int
    associated_probability: float
    type: str = TASK_TYPE

    def to_json(self) -> bytes:
        return orjson.dumps({
            "type": self.type,
            "bucketName": self.bucket_name,
            "expectedBlobCount": self.expected_blob_count,
            "deletionWindowSize": self.deletion_window_size,
            "associatedProbability": self.associated_probability,
        })

    @classmethod
    def from_json(cls, payload: bytes | str) -> BloomFilterGCTaskDTO:
        data = orjson.loads(payload)
        if not isinstance(data, dict):
            raise ValueError(f"{TASK_TYPE} payload must be a JSON object, got {type(data).__name__}")
        if data.get("type") != TASK_TYPE:
            raise ValueError(f"Not a {TASK_TYPE} payload: type={data.get('type')!r}")
        try:
            return cls(
                bucket_name=data["bucketName"],
                expected_blob_count=int(data["expectedBlobCount"]),
                deletion_window_size=int(data["deletionWindowSize"]),
                associated_probability=float(data["associatedProbability"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed {TASK_TYPE} payload: {e!r}") from e


class BloomFilterGCTask(Task):
    """Runs one bloom filter GC over the algorithm's bucket."""

    def __init__(
        self,
        algorithm: BloomFilterGCAlgorithm,
        expected_blob_count: int = DEFAULT_EXPECTED_BLOB_COUNT,
        deletion_window_size: int = DEFAULT_DELETION_WINDOW_SIZE,
        associated_probability: float = DEFAULT_ASSOCIATED_PROBABILITY,
        clock: Clock | None = None,
    ) -> None:
        if expected_blob_count <= 0:
            raise ValueError(f"expected_blob_count must be positive, got {expected_blob_count}")
        if deletion_window_size <= 0:
            raise ValueError(f"deletion_window_size must be positive, got {deletion_window_size}")
        if not 0.0 < associated_probability < 1.0:
            raise ValueError(
                f"associated_probability must be in (0, 1), got {associated_probability}"
            )
        self.algorithm = algorithm
        self.expected_blob_count = expected_blob_count
        self.deletion_window_size = deletion_window_size
        self.associated_probability = associated_probability
        self.clock = clock or SystemClock()
        self.task_id = generate_id("gc")
        self.context = Context(expected_blob_count, associated_probability)
        self._cancellation = asyncio.Event()

    @property
    def bucket(self) -> BucketName:
        return self.algorithm.bucket

    def task_type(self) -> str:
        return TASK_TYPE

    async def run(self) -> Result:
        with log_context(task_id=self.task_id):
            logger.info(
                "Starting blob GC",
                bucket=self.bucket.as_string(),
                expected_blob_count=self.expected_blob_count,
                deletion_window_size=self.deletion_window_size,
                associated_probability=self.associated_probability,
            )
            return await self.algorithm.gc(
                self.expected_blob_count,
                self.deletion_window_size,
                self.associated_probability,
                self.context,
                cancellation=self._cancellation,
            )

    def cancel(self) -> None:
        """Stop starting new deletion windows. In-flight ones complete."""
        self._cancellation.set()

    @property
    def cancelled(self) -> bool:
        return self._cancellation.is_set()

    def details(self) -> BloomFilterGCTaskDetails:
        return BloomFilterGCTaskDetails.from_snapshot(self.context.snapshot(), self.clock.now())

    def to_dto(self) -> BloomFilterGCTaskDTO:
        return BloomFilterGCTaskDTO(
            bucket_name=self.bucket.as_string(),
            expected_blob_count=self.expected_blob_count,
            deletion_window_size=self.deletion_window_size,
            associated_probability=self.associated_probability,
        )

    @classmethod
    def from_dto(
        cls,
        dto: BloomFilterGCTaskDTO,
        algorithm_for_bucket: Callable[[BucketName], BloomFilterGCAlgorithm],
        clock: Clock | None = None,
    ) -> BloomFilterGCTask:
        """Rebuild a task from its persisted description.

        Args:
            dto: Persisted description.
            algorithm_for_bucket: Callable returning the algorithm for a BucketName.
            clock: Time source for details timestamps.
        """
        return cls(
            algorithm_for_bucket(BucketName(dto.bucket_name)),
            expected_blob_count=dto.expected_blob_count,
            deletion_window_size=dto.deletion_window_size,
            associated_probability=dto.associated_probability,
            clock=clock,
        )
