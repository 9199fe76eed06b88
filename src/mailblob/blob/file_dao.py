"""
File-system backend.

Stores each object as a file under ``{root}/{bucket}/{id[:2]}/{id}``.
Blocking file I/O runs in worker threads so the event loop never waits on
the disk.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

from mailblob.blob.dao import BlobContent, BlobStoreDAO
from mailblob.blob.ids import BlobId, BlobIdFactory, content_of
from mailblob.exceptions import ObjectNotFoundError, ObjectStoreError
from mailblob.logging import get_logger
from mailblob.types import BucketName

logger = get_logger(__name__)


class FileBlobStoreDAO(BlobStoreDAO):
    """Backend storing objects as plain files under a root directory."""

    def __init__(self, root: str | Path, blob_id_factory: BlobIdFactory) -> None:
        """Initialize with a root directory, creating it if needed.

        Args:
            root: Base directory for object storage.
            blob_id_factory: Factory used to parse listed object names.
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.blob_id_factory = blob_id_factory

    def _bucket_path(self, bucket: BucketName) -> Path:
        return self._resolve(self.root / bucket.as_string())

    def _object_path(self, bucket: BucketName, blob_id: BlobId) -> Path:
        """Get the path of an object.

        Uses first 2 chars as subdirectory for better filesystem performance.
        """
        key = blob_id.as_string()
        return self._resolve(self.root / bucket.as_string() / key[:2] / key)

    def _resolve(self, candidate: Path) -> Path:
        """Resolve a path and ensure it stays under the store root."""
        root = self.root.resolve()
        resolved = candidate.resolve()
        try:
            resolved.relative_to(root)
        except ValueError:
            raise ObjectStoreError(
                "Path resolves outside store root", context={"path": str(candidate)}
            ) from None
        return resolved

    async def save(self, bucket: BucketName, blob_id: BlobId, data: BlobContent) -> None:
        content = content_of(data)
        path = self._object_path(bucket, blob_id)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp.write(content)
            try:
                os.replace(tmp.name, path)
            except OSError:
                Path(tmp.name).unlink(missing_ok=True)
                raise

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to save object: {e}",
                context={"bucket": bucket.as_string(), "blob_id": blob_id.as_string()},
            ) from e
        logger.debug("Stored object", bucket=bucket.as_string(), size=len(content))

    async def read_bytes(self, bucket: BucketName, blob_id: BlobId) -> bytes:
        path = self._object_path(bucket, blob_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ObjectNotFoundError(
                "Object not found",
                context={"bucket": bucket.as_string(), "blob_id": blob_id.as_string()},
            ) from None
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to read object: {e}",
                context={"bucket": bucket.as_string(), "blob_id": blob_id.as_string()},
            ) from e

    async def exists(self, bucket: BucketName, blob_id: BlobId) -> bool:
        path = self._object_path(bucket, blob_id)
        return await asyncio.to_thread(path.is_file)

    async def delete(self, bucket: BucketName, blob_id: BlobId) -> None:
        path = self._object_path(bucket, blob_id)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to delete object: {e}",
                context={"bucket": bucket.as_string(), "blob_id": blob_id.as_string()},
            ) from e

    async def delete_bucket(self, bucket: BucketName) -> None:
        path = self._bucket_path(bucket)
        try:
            await asyncio.to_thread(shutil.rmtree, path, False)
        except FileNotFoundError:
            return
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to delete bucket: {e}", context={"bucket": bucket.as_string()}
            ) from e

    async def list_buckets(self) -> AsyncIterator[BucketName]:
        entries = await asyncio.to_thread(lambda: sorted(self.root.iterdir()))
        for entry in entries:
            if entry.is_dir() and any(p.is_file() for p in entry.rglob("*")):
                yield BucketName(entry.name)

    async def list_blobs(self, bucket: BucketName) -> AsyncIterator[BlobId]:
        path = self._bucket_path(bucket)

        def scan() -> list[str]:
            if not path.is_dir():
                return []
            return [
                p.name
                for p in path.glob("*/*")
                if p.is_file() and not p.name.startswith(".")
            ]

        try:
            names = await asyncio.to_thread(scan)
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to list bucket: {e}", context={"bucket": bucket.as_string()}
            ) from e
        for name in names:
            yield self.blob_id_factory.parse(name)
