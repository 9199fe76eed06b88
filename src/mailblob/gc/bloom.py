"""
Bloom filter.

Set membership with no false negatives and a tunable false positive rate.
Sized from the expected number of insertions n and target probability p:

    m = ceil(-n * ln(p) / ln(2)^2)   bits
    k = max(1, round(m / n * ln(2)))  hash functions

Bit positions come from double hashing (h1 + i * h2) over a single
blake2b digest of the element.
"""

from __future__ import annotations

import hashlib
import math


class BloomFilter:
    """Fixed-size bloom filter over strings."""

    def __init__(self, expected_insertions: int, false_positive_probability: float) -> None:
        if expected_insertions <= 0:
            raise ValueError(f"Expected insertions must be positive, got {expected_insertions}")
        if not 0.0 < false_positive_probability < 1.0:
            raise ValueError(
                f"False positive probability must be in (0, 1), got {false_positive_probability}"
            )
        self.expected_insertions = expected_insertions
        self.false_positive_probability = false_positive_probability
        self.bit_size = max(
            8,
            math.ceil(-expected_insertions * math.log(false_positive_probability) / (math.log(2) ** 2)),
        )
        self.hash_count = max(1, round(self.bit_size / expected_insertions * math.log(2)))
        self._bits = bytearray((self.bit_size + 7) // 8)
        self._inserted = 0

    def _positions(self, element: str) -> list[int]:
        digest = hashlib.blake2b(element.encode("utf-8"), digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        return [(h1 + i * h2) % self.bit_size for i in range(self.hash_count)]

    def put(self, element: str) -> None:
        for position in self._positions(element):
            self._bits[position >> 3] |= 1 << (position & 7)
        self._inserted += 1

    def might_contain(self, element: str) -> bool:
        """False only when ``element`` was certainly never inserted."""
        return all(self._bits[position >> 3] & (1 << (position & 7)) for position in self._positions(element))

    def __contains__(self, element: str) -> bool:
        return self.might_contain(element)

    @property
    def approximate_element_count(self) -> int:
        return self._inserted

    def expected_false_positive_probability(self) -> float:
        """False positive rate given the insertions made so far."""
        return (1 - math.exp(-self.hash_count * self._inserted / self.bit_size)) ** self.hash_count
