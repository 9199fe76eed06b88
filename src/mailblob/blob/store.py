"""
Blob stores and storage strategies.

A BlobStore sits on top of a backend DAO and decides how ids are minted:

- PassThroughBlobStore: every save uploads under a fresh random id
- DeDuplicationBlobStore: the id is derived from the content and an
  object already present under that id is not uploaded again

The strategy is picked once, when the store is built by BlobStoreFactory.
"""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import BinaryIO

from mailblob.blob.dao import BlobContent, BlobStoreDAO
from mailblob.blob.ids import BlobId, BlobIdFactory, content_of
from mailblob.exceptions import ObjectStoreError
from mailblob.logging import get_logger
from mailblob.types import BucketName, StoragePolicy

logger = get_logger(__name__)


class StorageStrategy(str, Enum):
    """How a blob store mints ids on save."""

    PASSTHROUGH = "passthrough"
    DEDUPLICATION = "deduplication"


class BlobStore(ABC):
    """Blob storage contract exposed to the rest of the mail server."""

    @property
    @abstractmethod
    def default_bucket_name(self) -> BucketName:
        """Bucket used when callers have no tenant-specific bucket."""
        ...

    @abstractmethod
    async def save(
        self,
        bucket: BucketName,
        data: BlobContent,
        policy: StoragePolicy = StoragePolicy.SIZE_BASED,
    ) -> BlobId:
        """Store a payload and return its id."""
        ...

    @abstractmethod
    async def read_bytes(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy = StoragePolicy.HIGH_PERFORMANCE,
    ) -> bytes:
        """Read a full payload. Raises ObjectNotFoundError when absent."""
        ...

    async def read(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy = StoragePolicy.HIGH_PERFORMANCE,
    ) -> BinaryIO:
        """Read a payload as a binary stream."""
        return io.BytesIO(await self.read_bytes(bucket, blob_id, policy))

    @abstractmethod
    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        """Delete a payload."""
        ...

    @abstractmethod
    async def delete_bucket(self, bucket: BucketName) -> None:
        """Delete every payload of a bucket."""
        ...

    @abstractmethod
    def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        """Stream the ids stored in a bucket."""
        ...


class _DAOBlobStore(BlobStore):
    """Behaviour shared by the DAO-backed strategies."""

    def __init__(
        self,
        dao: BlobStoreDAO,
        blob_id_factory: BlobIdFactory,
        default_bucket: BucketName = BucketName.DEFAULT,
    ) -> None:
        self.dao = dao
        self.blob_id_factory = blob_id_factory
        self._default_bucket = default_bucket

    @property
    def default_bucket_name(self) -> BucketName:
        return self._default_bucket

    async def read_bytes(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy = StoragePolicy.HIGH_PERFORMANCE,
    ) -> bytes:
        return await self.dao.read_bytes(bucket, blob_id)

    async def read(
        self,
        bucket: BucketName,
        blob_id: BlobId,
        policy: StoragePolicy = StoragePolicy.HIGH_PERFORMANCE,
    ) -> BinaryIO:
        return await self.dao.read(bucket, blob_id)

    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        await self.dao.delete(bucket, blob_id)

    async def delete_bucket(self, bucket: BucketName) -> None:
        await self.dao.delete_bucket(bucket)

    async def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        async for blob_id in self.dao.list_blobs(bucket):
            yield blob_id


class PassThroughBlobStore(_DAOBlobStore):
    """Uploads every payload under a freshly minted id."""

    async def save(
        self,
        bucket: BucketName,
        data: BlobContent,
        policy: StoragePolicy = StoragePolicy.SIZE_BASED,
    ) -> BlobId:
        content = content_of(data)
        blob_id = self.blob_id_factory.random_id()
        await self.dao.save(bucket, blob_id, content)
        return blob_id


class DeDuplicationBlobStore(_DAOBlobStore):
    """Uploads a payload only when no object exists for its content id.

    Logically distinct references to the same bytes collapse to one stored
    object. When the existence check fails the payload is uploaded anyway.
    """

    async def save(
        self,
        bucket: BucketName,
        data: BlobContent,
        policy: StoragePolicy = StoragePolicy.SIZE_BASED,
    ) -> BlobId:
        content = content_of(data)
        blob_id = self.blob_id_factory.of(content)

        try:
            already_stored = await self.dao.exists(bucket, blob_id)
        except ObjectStoreError as e:
            logger.warning(
                "Existence check failed, uploading unconditionally",
                bucket=bucket.as_string(),
                blob_id=blob_id.as_string(),
                error=str(e),
            )
            already_stored = False

        if already_stored:
            logger.debug(
                "Skipped upload of deduplicated blob",
                bucket=bucket.as_string(),
                blob_id=blob_id.as_string(),
            )
            return blob_id

        await self.dao.save(bucket, blob_id, content)
        return blob_id


class BlobStoreFactory:
    """Builds the blob store matching a storage strategy."""

    def __init__(
        self,
        dao: BlobStoreDAO,
        blob_id_factory: BlobIdFactory,
        default_bucket: BucketName = BucketName.DEFAULT,
    ) -> None:
        self.dao = dao
        self.blob_id_factory = blob_id_factory
        self.default_bucket = default_bucket

    def passthrough(self) -> PassThroughBlobStore:
        return PassThroughBlobStore(self.dao, self.blob_id_factory, self.default_bucket)

    def deduplication(self) -> DeDuplicationBlobStore:
        return DeDuplicationBlobStore(self.dao, self.blob_id_factory, self.default_bucket)

    def create(self, strategy: StorageStrategy | str) -> BlobStore:
        strategy = StorageStrategy(strategy)
        if strategy is StorageStrategy.PASSTHROUGH:
            return self.passthrough()
        return self.deduplication()
