"""
Blob package.

This package handles identifiers and storage of blob payloads:
- BlobId factories (content hash, uuid7)
- Generation-aware ids used by garbage collection
- Backend DAO contract with memory and file-system backends
- Pass-through and deduplicating blob stores
"""

from mailblob.blob.dao import BlobContent, BlobStoreDAO, MemoryBlobStoreDAO
from mailblob.blob.file_dao import FileBlobStoreDAO
from mailblob.blob.generation import (
    GenerationAwareBlobId,
    GenerationAwareBlobIdFactory,
    GenerationConfiguration,
)
from mailblob.blob.ids import BlobId, BlobIdFactory, HashBlobId, PlainBlobId
from mailblob.blob.store import (
    BlobStore,
    BlobStoreFactory,
    DeDuplicationBlobStore,
    PassThroughBlobStore,
    StorageStrategy,
)

__all__ = [
    "BlobContent",
    "BlobId",
    "BlobIdFactory",
    "BlobStore",
    "BlobStoreDAO",
    "BlobStoreFactory",
    "DeDuplicationBlobStore",
    "FileBlobStoreDAO",
    "GenerationAwareBlobId",
    "GenerationAwareBlobIdFactory",
    "GenerationConfiguration",
    "HashBlobId",
    "MemoryBlobStoreDAO",
    "PassThroughBlobStore",
    "PlainBlobId",
    "StorageStrategy",
]
