"""
Core types for the blob storage engine.

This module defines the small value types shared by every layer:
- BucketName: validated name of a backend partition
- StoragePolicy: per-save hint controlling cache admission
- Clock / SystemClock: injectable time source
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Protocol, runtime_checkable

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "task", "gc")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class StoragePolicy(str, Enum):
    """Per-save hint controlling whether a blob enters the cache tier."""

    LOW_COST = "low_cost"  # never cached
    SIZE_BASED = "size_based"  # cached when below the size threshold
    HIGH_PERFORMANCE = "high_performance"  # always cached


@dataclass(frozen=True)
class BucketName:
    """Name of a partition of the backend store."""

    DEFAULT: ClassVar[BucketName]

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValueError("Bucket name must be a non-blank string")
        if self.value != self.value.strip():
            raise ValueError(f"Bucket name must not have surrounding whitespace: {self.value!r}")

    @classmethod
    def of(cls, value: str) -> BucketName:
        return cls(value)

    def as_string(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


BucketName.DEFAULT = BucketName("default-bucket")


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current timezone-aware instant."""
        ...


class SystemClock:
    """Clock backed by the system wall clock."""

    def now(self) -> datetime:
        return utc_now()
