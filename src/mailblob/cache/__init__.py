"""
Cache package for the blob cache tier.

This package provides:
- Cache contract and configuration (base.py)
- In-memory and SQLite-backed caches (kv_cache.py)
- The cache-aware blob store (cached_store.py)
"""

from mailblob.cache.base import BlobStoreCache, CacheConfiguration
from mailblob.cache.cached_store import CachedBlobStore
from mailblob.cache.kv_cache import InMemoryBlobStoreCache, SQLiteBlobStoreCache

__all__ = [
    "BlobStoreCache",
    "CacheConfiguration",
    "CachedBlobStore",
    "InMemoryBlobStoreCache",
    "SQLiteBlobStoreCache",
]
