"""
Base classes for the blob cache tier.

The cache is an optimization, never a correctness dependency:
- cache() is a best-effort write
- read() returns None when the entry is missing, expired, slow or broken
- remove() is a best-effort eviction

Implementations only provide the raw _put/_get/_delete operations; this
module wraps them with timeout handling and failure isolation.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta

from mailblob.blob.ids import BlobId
from mailblob.exceptions import ConfigurationError
from mailblob.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SIZE_THRESHOLD_IN_BYTES = 8 * 1024
DEFAULT_TIMEOUT = timedelta(milliseconds=100)
DEFAULT_TTL = timedelta(days=7)
MAX_TIMEOUT = timedelta(hours=1)
# Largest TTL representable as a signed 32-bit number of seconds
MAX_TTL = timedelta(seconds=2**31 - 1)


@dataclass(frozen=True)
class CacheConfiguration:
    """Admission and lifetime settings of the blob cache."""

    size_threshold_in_bytes: int = DEFAULT_SIZE_THRESHOLD_IN_BYTES
    timeout: timedelta = field(default_factory=lambda: DEFAULT_TIMEOUT)
    ttl: timedelta = field(default_factory=lambda: DEFAULT_TTL)

    def __post_init__(self) -> None:
        if (
            isinstance(self.size_threshold_in_bytes, bool)
            or not isinstance(self.size_threshold_in_bytes, int)
            or self.size_threshold_in_bytes < 0
        ):
            raise ConfigurationError(
                "Cache size threshold must be a non-negative number of bytes",
                context={"size_threshold_in_bytes": self.size_threshold_in_bytes},
            )
        self._check_duration("timeout", self.timeout, MAX_TIMEOUT)
        self._check_duration("ttl", self.ttl, MAX_TTL)

    @staticmethod
    def _check_duration(name: str, value: timedelta, upper_bound: timedelta) -> None:
        if not isinstance(value, timedelta):
            raise ConfigurationError(f"Cache {name} must be a timedelta", context={name: value})
        if value <= timedelta(0):
            raise ConfigurationError(f"Cache {name} must be strictly positive", context={name: value})
        if value > upper_bound:
            raise ConfigurationError(
                f"Cache {name} must not exceed {upper_bound}",
                context={name: value},
            )

    def admits(self, size: int) -> bool:
        """Whether a payload of ``size`` bytes fits below the threshold."""
        return size <= self.size_threshold_in_bytes


class BlobStoreCache(ABC):
    """Time and size bounded side store of blob payloads, keyed by BlobId."""

    def __init__(self, configuration: CacheConfiguration | None = None) -> None:
        self.configuration = configuration or CacheConfiguration()

    @abstractmethod
    async def _put(self, blob_id: BlobId, data: bytes) -> None:
        """Store an entry expiring after the configured TTL."""
        ...

    @abstractmethod
    async def _get(self, blob_id: BlobId) -> bytes | None:
        """Return an unexpired entry, or None."""
        ...

    @abstractmethod
    async def _delete(self, blob_id: BlobId) -> None:
        """Drop an entry."""
        ...

    async def cache(self, blob_id: BlobId, data: bytes) -> None:
        """Best-effort write. Failures are logged, never raised."""
        try:
            await self._put(blob_id, data)
        except Exception as e:
            logger.warning("Failed saving blob in cache", blob_id=blob_id.as_string(), error=repr(e))

    async def read(self, blob_id: BlobId) -> bytes | None:
        """Return the cached payload, or None when absent."""
        try:
            return await asyncio.wait_for(
                self._get(blob_id), timeout=self.configuration.timeout.total_seconds()
            )
        except asyncio.TimeoutError:
            logger.warning("Cache read timed out", blob_id=blob_id.as_string())
            return None
        except Exception as e:
            logger.warning("Failed reading blob from cache", blob_id=blob_id.as_string(), error=repr(e))
            return None

    async def remove(self, blob_id: BlobId) -> None:
        """Best-effort eviction. Failures are logged, never raised."""
        try:
            await self._delete(blob_id)
        except Exception as e:
            logger.warning("Failed removing blob from cache", blob_id=blob_id.as_string(), error=repr(e))
