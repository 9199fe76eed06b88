"""
Blob identifiers.

A BlobId is an opaque, immutable value whose ``as_string()`` form is what
the backend stores. Factories mint ids for new content and parse stored
representations back:

- HashBlobId: url-safe base64 of the sha256 digest of the content
- PlainBlobId: time-ordered uuid7, independent of the content
"""

from __future__ import annotations

import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from mailblob.types import generate_id

if TYPE_CHECKING:
    from mailblob.blob.dao import BlobContent


class BlobId(ABC):
    """Opaque blob identifier."""

    @abstractmethod
    def as_string(self) -> str:
        """Canonical storage representation."""
        ...

    def __str__(self) -> str:
        return self.as_string()


class BlobIdFactory(Protocol):
    """Mints and parses blob ids."""

    def of(self, data: bytes) -> BlobId:
        """Derive an id for new content."""
        ...

    def random_id(self) -> BlobId:
        """Mint an id unrelated to any content."""
        ...

    def parse(self, value: str) -> BlobId:
        """Decode a stored representation."""
        ...


def _require_non_blank(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Blob id must be a non-blank string, got {value!r}")
    return value


@dataclass(frozen=True)
class HashBlobId(BlobId):
    """Content-derived blob id."""

    value: str

    def __post_init__(self) -> None:
        _require_non_blank(self.value)

    def as_string(self) -> str:
        return self.value

    class Factory:
        """Derives ids from the sha256 digest of the payload."""

        def of(self, data: bytes) -> HashBlobId:
            digest = hashlib.sha256(data).digest()
            return HashBlobId(base64.urlsafe_b64encode(digest).decode("ascii"))

        def random_id(self) -> HashBlobId:
            return HashBlobId(generate_id())

        def parse(self, value: str) -> HashBlobId:
            return HashBlobId(_require_non_blank(value))


@dataclass(frozen=True)
class PlainBlobId(BlobId):
    """Randomly minted blob id."""

    value: str

    def __post_init__(self) -> None:
        _require_non_blank(self.value)

    def as_string(self) -> str:
        return self.value

    class Factory:
        """Mints a fresh uuid7 for every new blob."""

        def of(self, data: bytes) -> PlainBlobId:
            return self.random_id()

        def random_id(self) -> PlainBlobId:
            return PlainBlobId(generate_id())

        def parse(self, value: str) -> PlainBlobId:
            return PlainBlobId(_require_non_blank(value))


def content_of(data: BlobContent) -> bytes:
    """Normalize supported payload types into bytes.

    Accepts bytes-like objects, text (encoded as utf-8) and binary file-like
    objects exposing ``read()``.
    """
    if data is None:
        raise TypeError("Blob content must not be None")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    read = getattr(data, "read", None)
    if callable(read):
        content = read()
        if isinstance(content, str):
            return content.encode("utf-8")
        return bytes(content)
    raise TypeError(f"Unsupported blob content type: {type(data).__name__}")
