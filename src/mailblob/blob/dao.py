"""
Backend blob store contract.

The durable backend is an async key-value object store partitioned in
buckets. This module defines the contract every backend implements and an
in-memory backend used for tests and embedding.

Contract:
- save/read/exists/delete on single objects
- delete_many: bulk deletion used by the garbage collector
- delete_bucket / list_buckets / list_blobs for bucket-level operations
"""

from __future__ import annotations

import asyncio
import io
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from typing import BinaryIO, Union

from mailblob.blob.ids import BlobId, BlobIdFactory, content_of
from mailblob.exceptions import ObjectNotFoundError
from mailblob.logging import get_logger
from mailblob.types import BucketName

logger = get_logger(__name__)

BlobContent = Union[bytes, bytearray, memoryview, str, BinaryIO]


class BlobStoreDAO(ABC):
    """Abstract interface for backend implementations.

    Implementations raise ObjectNotFoundError for missing objects and
    ObjectStoreError for any other backend failure.
    """

    @abstractmethod
    async def save(self, bucket: BucketName, blob_id: BlobId, data: BlobContent) -> None:
        """Store ``data`` under ``blob_id``, overwriting any previous object."""
        ...

    @abstractmethod
    async def read_bytes(self, bucket: BucketName, blob_id: BlobId) -> bytes:
        """Return the full payload of an object."""
        ...

    async def read(self, bucket: BucketName, blob_id: BlobId) -> BinaryIO:
        """Return the payload of an object as a binary stream."""
        return io.BytesIO(await self.read_bytes(bucket, blob_id))

    async def exists(self, bucket: BucketName, blob_id: BlobId) -> bool:
        """Check if an object exists.

        Backends override this when they can answer without reading the payload.
        """
        try:
            await self.read_bytes(bucket, blob_id)
        except ObjectNotFoundError:
            return False
        return True

    @abstractmethod
    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        """Delete an object. Deleting a missing object is a no-op."""
        ...

    async def delete_many(self, bucket: BucketName, blob_ids: Iterable[BlobId]) -> None:
        """Delete several objects of one bucket."""
        await asyncio.gather(*[self.delete(bucket, blob_id) for blob_id in blob_ids])

    @abstractmethod
    async def delete_bucket(self, bucket: BucketName) -> None:
        """Delete a bucket and every object it holds."""
        ...

    @abstractmethod
    def list_buckets(self) -> AsyncIterator[BucketName]:
        """Stream the names of non-empty buckets."""
        ...

    @abstractmethod
    def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        """Stream the ids of every object held in a bucket."""
        ...


class MemoryBlobStoreDAO(BlobStoreDAO):
    """Dict-based backend for development and testing."""

    def __init__(self, blob_id_factory: BlobIdFactory) -> None:
        self.blob_id_factory = blob_id_factory
        self._buckets: dict[BucketName, dict[str, bytes]] = {}

    async def save(self, bucket: BucketName, blob_id: BlobId, data: BlobContent) -> None:
        self._buckets.setdefault(bucket, {})[blob_id.as_string()] = content_of(data)

    async def read_bytes(self, bucket: BucketName, blob_id: BlobId) -> bytes:
        data = self._buckets.get(bucket, {}).get(blob_id.as_string())
        if data is None:
            raise ObjectNotFoundError(
                "Object not found",
                context={"bucket": bucket.as_string(), "blob_id": blob_id.as_string()},
            )
        return data

    async def exists(self, bucket: BucketName, blob_id: BlobId) -> bool:
        return blob_id.as_string() in self._buckets.get(bucket, {})

    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        self._buckets.get(bucket, {}).pop(blob_id.as_string(), None)

    async def delete_many(self, bucket: BucketName, blob_ids: Iterable[BlobId]) -> None:
        objects = self._buckets.get(bucket, {})
        for blob_id in blob_ids:
            objects.pop(blob_id.as_string(), None)

    async def delete_bucket(self, bucket: BucketName) -> None:
        self._buckets.pop(bucket, None)

    async def list_buckets(self) -> AsyncIterator[BucketName]:
        for bucket, objects in list(self._buckets.items()):
            if objects:
                yield bucket

    async def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        for key in list(self._buckets.get(bucket, {})):
            yield self.blob_id_factory.parse(key)

    def object_count(self, bucket: BucketName) -> int:
        """Number of objects currently stored in a bucket."""
        return len(self._buckets.get(bucket, {}))
