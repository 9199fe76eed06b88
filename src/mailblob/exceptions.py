"""
Custom exception hierarchy for the blob storage engine.

All exceptions inherit from BlobStoreError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class BlobStoreError(Exception):
    """Base exception for all blob storage errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(BlobStoreError):
    """Raised when configuration is invalid.

    Examples:
        - Non-positive generation duration or family
        - Cache timeout or TTL out of range
        - Negative cache size threshold
    """

    pass


class ObjectStoreError(BlobStoreError):
    """Raised when the backend fails to save, read, delete or list.

    Context should include:
        - bucket: The bucket being accessed
        - blob_id: The blob id, when the operation targets one blob
    """

    pass


class ObjectNotFoundError(ObjectStoreError):
    """Raised when the backend holds no object for a bucket/id pair.

    Distinct from a cache miss: a miss in the cache tier is never an error,
    a miss in the backend always is.
    """

    pass


class CacheError(BlobStoreError):
    """Raised by cache implementations.

    Never surfaced to blob store callers: the cache tier recovers locally.
    """

    pass
