"""
Task contract shared with the external task execution framework.

The framework owns scheduling, persistence and cancellation signaling;
this side only provides runnable units reporting a Result and a details
snapshot for progress queries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum
from typing import Any


class Result(str, Enum):
    """Outcome of a task run."""

    COMPLETED = "completed"
    PARTIAL = "partial"

    def and_then(self, other: Result) -> Result:
        """Combine two outcomes: any partial outcome makes the whole partial."""
        if self is Result.COMPLETED and other is Result.COMPLETED:
            return Result.COMPLETED
        return Result.PARTIAL

    @staticmethod
    def merge(results: Iterable[Result]) -> Result:
        """Combine many outcomes. No outcome at all is a completed run."""
        merged = Result.COMPLETED
        for result in results:
            merged = merged.and_then(result)
        return merged


class Task(ABC):
    """A unit of work submitted to the task framework."""

    @abstractmethod
    def task_type(self) -> str:
        """Stable type name used to route deserialization."""
        ...

    @abstractmethod
    async def run(self) -> Result:
        """Execute the task. Never raises for expected partial failures."""
        ...

    def details(self) -> Any | None:
        """Point-in-time progress information, if the task exposes any."""
        return None
