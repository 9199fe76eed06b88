"""
Generation-aware blob ids.

A generation-aware id decorates a delegate id with a family and the
generation (time window) it was minted in, serialized inline as
``{family}_{generation}_{delegate}``. The garbage collector reads a blob's
age straight from its id, without any extra backend round-trip.

Ids minted before generation tagging existed, or by another family, parse
as NO_FAMILY / NO_GENERATION wrappers around the raw string.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from mailblob.blob.ids import BlobId, BlobIdFactory
from mailblob.exceptions import ConfigurationError
from mailblob.types import Clock, SystemClock

NO_FAMILY = 0
NO_GENERATION = 0
SEPARATOR = "_"


@dataclass(frozen=True)
class GenerationConfiguration:
    """Generation window width and family of one GC configuration."""

    duration: timedelta = field(default_factory=lambda: timedelta(days=30))
    family: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.duration, timedelta):
            raise ConfigurationError(
                "Generation duration must be a timedelta",
                context={"duration": self.duration},
            )
        if self.duration <= timedelta(0):
            raise ConfigurationError(
                "Generation duration must be strictly positive",
                context={"duration": self.duration},
            )
        if self.duration.total_seconds() < 1:
            raise ConfigurationError(
                "Generation duration must be at least one second",
                context={"duration": self.duration},
            )
        if isinstance(self.family, bool) or not isinstance(self.family, int) or self.family <= 0:
            raise ConfigurationError(
                "Generation family must be strictly positive",
                context={"family": self.family},
            )

    @property
    def duration_in_seconds(self) -> int:
        return int(self.duration.total_seconds())

    def compute_generation(self, instant: datetime) -> int:
        """Index of the generation window containing ``instant``."""
        return math.floor(instant.timestamp() / self.duration_in_seconds)


DEFAULT_CONFIGURATION = GenerationConfiguration()


@dataclass(frozen=True)
class GenerationAwareBlobId(BlobId):
    """A delegate blob id tagged with its family and generation."""

    generation: int
    family: int
    delegate: BlobId

    def __post_init__(self) -> None:
        if self.generation < 0:
            raise ValueError(f"Generation must be non-negative, got {self.generation}")
        if self.family < 0:
            raise ValueError(f"Family must be non-negative, got {self.family}")

    def as_string(self) -> str:
        if self.family == NO_FAMILY:
            return self.delegate.as_string()
        return f"{self.family}{SEPARATOR}{self.generation}{SEPARATOR}{self.delegate.as_string()}"

    def in_active_generation(self, configuration: GenerationConfiguration, now: datetime) -> bool:
        """Whether this blob may still be referenced by an in-flight write.

        Holds for blobs of the configured family minted in the current or
        the immediately preceding generation window.
        """
        return (
            self.family == configuration.family
            and self.generation + 1 >= configuration.compute_generation(now)
        )


def _parse_non_negative(value: str) -> int | None:
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)


class GenerationAwareBlobIdFactory:
    """Mints generation-aware ids around a delegate factory."""

    def __init__(
        self,
        delegate: BlobIdFactory,
        configuration: GenerationConfiguration = DEFAULT_CONFIGURATION,
        clock: Clock | None = None,
    ) -> None:
        self.delegate = delegate
        self.configuration = configuration
        self.clock = clock or SystemClock()

    def _decorate(self, blob_id: BlobId) -> GenerationAwareBlobId:
        return GenerationAwareBlobId(
            generation=self.configuration.compute_generation(self.clock.now()),
            family=self.configuration.family,
            delegate=blob_id,
        )

    def of(self, data: bytes) -> GenerationAwareBlobId:
        return self._decorate(self.delegate.of(data))

    def random_id(self) -> GenerationAwareBlobId:
        return self._decorate(self.delegate.random_id())

    def parse(self, value: str) -> GenerationAwareBlobId:
        parts = value.split(SEPARATOR, 2) if isinstance(value, str) else []
        if len(parts) == 3:
            family = _parse_non_negative(parts[0])
            generation = _parse_non_negative(parts[1])
            # Family 0 ids serialize as the bare delegate, so a "0_" prefix is part of the key.
            if family is not None and family != NO_FAMILY and generation is not None:
                return GenerationAwareBlobId(
                    generation=generation,
                    family=family,
                    delegate=self.delegate.parse(parts[2]),
                )
        return self.decorate_without_generation(value)

    def decorate_without_generation(self, value: str) -> GenerationAwareBlobId:
        return GenerationAwareBlobId(
            generation=NO_GENERATION,
            family=NO_FAMILY,
            delegate=self.delegate.parse(value),
        )
