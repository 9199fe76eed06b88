"""
Metrics emission for the storage layers.

The metrics sink itself is external; stores only depend on the small
MetricFactory protocol:
- counter(name).increment()
- timer(name) as a context manager recording the elapsed duration

RecordingMetricFactory keeps everything in memory (tests, embedding);
NoopMetricFactory is the default when no sink is wired.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from contextlib import AbstractContextManager, contextmanager
from datetime import timedelta
from typing import Generator, Protocol

BLOBSTORE_CACHED_HIT_COUNT_METRIC_NAME = "blobStoreCacheHits"
BLOBSTORE_CACHED_MISS_COUNT_METRIC_NAME = "blobStoreCacheMisses"
BLOBSTORE_CACHED_LATENCY_METRIC_NAME = "blobStoreCacheLatency"
BLOBSTORE_BACKEND_LATENCY_METRIC_NAME = "blobStoreBackEndLatency"


class Counter(Protocol):
    def increment(self, amount: int = 1) -> None:
        ...


class MetricFactory(Protocol):
    """Entry point of a metrics sink."""

    def counter(self, name: str) -> Counter:
        """Get the counter registered under ``name``."""
        ...

    def timer(self, name: str) -> AbstractContextManager[None]:
        """Time the enclosed block and record it under ``name``."""
        ...


class _RecordingCounter:
    def __init__(self, factory: RecordingMetricFactory, name: str) -> None:
        self._factory = factory
        self._name = name

    def increment(self, amount: int = 1) -> None:
        with self._factory._lock:
            self._factory._counts[self._name] += amount


class RecordingMetricFactory:
    """In-memory metrics sink."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = defaultdict(int)
        self._timings: dict[str, list[timedelta]] = defaultdict(list)

    def counter(self, name: str) -> _RecordingCounter:
        return _RecordingCounter(self, name)

    @contextmanager
    def timer(self, name: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed = timedelta(seconds=time.perf_counter() - started)
            with self._lock:
                self._timings[name].append(elapsed)

    def count_for(self, name: str) -> int:
        """Current value of a counter (0 when never incremented)."""
        with self._lock:
            return self._counts.get(name, 0)

    def execution_times_for(self, name: str) -> list[timedelta]:
        """Durations recorded by a timer, oldest first."""
        with self._lock:
            return list(self._timings.get(name, []))


class _NoopCounter:
    def increment(self, amount: int = 1) -> None:
        pass


class NoopMetricFactory:
    """Metrics sink discarding everything."""

    def counter(self, name: str) -> _NoopCounter:
        return _NoopCounter()

    @contextmanager
    def timer(self, name: str) -> Generator[None, None, None]:
        yield
