"""
Key-value blob cache implementations.

- InMemoryBlobStoreCache: dict-based cache for testing, TTL driven by an
  injectable clock
- SQLiteBlobStoreCache: async SQLite-backed cache using aiosqlite, one row
  per entry with its expiry instant
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from mailblob.blob.ids import BlobId
from mailblob.cache.base import BlobStoreCache, CacheConfiguration
from mailblob.exceptions import CacheError
from mailblob.logging import get_logger
from mailblob.types import Clock, SystemClock

logger = get_logger(__name__)


class InMemoryBlobStoreCache(BlobStoreCache):
    """In-memory cache for development and testing."""

    def __init__(
        self,
        configuration: CacheConfiguration | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(configuration)
        self.clock = clock or SystemClock()
        self._entries: dict[str, tuple[bytes, float]] = {}

    def _now(self) -> float:
        return self.clock.now().timestamp()

    async def _put(self, blob_id: BlobId, data: bytes) -> None:
        expires_at = self._now() + self.configuration.ttl.total_seconds()
        self._entries[blob_id.as_string()] = (bytes(data), expires_at)

    async def _get(self, blob_id: BlobId) -> bytes | None:
        entry = self._entries.get(blob_id.as_string())
        if entry is None:
            return None
        data, expires_at = entry
        if expires_at <= self._now():
            self._entries.pop(blob_id.as_string(), None)
            return None
        return data

    async def _delete(self, blob_id: BlobId) -> None:
        self._entries.pop(blob_id.as_string(), None)

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteBlobStoreCache(BlobStoreCache):
    """Blob cache persisted in a SQLite table.

    Stores entries at the given path in table ``blob_cache``.
    """

    def __init__(
        self,
        db_path: str | Path,
        configuration: CacheConfiguration | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            db_path: SQLite database file.
            configuration: Cache admission and lifetime settings.
            clock: Time source for entry expiry.
        """
        super().__init__(configuration)
        self.db_path = Path(db_path)
        self.clock = clock or SystemClock()
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize the cache - create the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS blob_cache (
                id TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_blob_cache_expiry ON blob_cache(expires_at)"
        )
        await self._db.commit()
        logger.info("Blob cache initialized", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._db:
            raise CacheError("SQLiteBlobStoreCache not initialized. Call init() first.")
        return self._db

    def _now(self) -> float:
        return self.clock.now().timestamp()

    async def _put(self, blob_id: BlobId, data: bytes) -> None:
        db = self._connection()
        expires_at = self._now() + self.configuration.ttl.total_seconds()
        await db.execute(
            "INSERT OR REPLACE INTO blob_cache (id, data, expires_at) VALUES (?, ?, ?)",
            (blob_id.as_string(), bytes(data), expires_at),
        )
        await db.commit()

    async def _get(self, blob_id: BlobId) -> bytes | None:
        db = self._connection()
        async with db.execute(
            "SELECT data FROM blob_cache WHERE id = ? AND expires_at > ?",
            (blob_id.as_string(), self._now()),
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return bytes(row[0])

    async def _delete(self, blob_id: BlobId) -> None:
        db = self._connection()
        await db.execute("DELETE FROM blob_cache WHERE id = ?", (blob_id.as_string(),))
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed.
        """
        db = self._connection()
        cursor = await db.execute("DELETE FROM blob_cache WHERE expires_at <= ?", (self._now(),))
        await db.commit()
        removed = cursor.rowcount
        logger.debug("Purged expired cache entries", removed=removed)
        return removed
