"""
Garbage collection package.

Reclaims orphaned blobs of a bucket using a salted bloom filter of the
references enumerated by every reference source.
"""

from mailblob.gc.algorithm import BlobReferenceSource, BloomFilterGCAlgorithm, Context, Snapshot
from mailblob.gc.bloom import BloomFilter
from mailblob.gc.task import BloomFilterGCTask, BloomFilterGCTaskDetails, BloomFilterGCTaskDTO

__all__ = [
    "BlobReferenceSource",
    "BloomFilter",
    "BloomFilterGCAlgorithm",
    "BloomFilterGCTask",
    "BloomFilterGCTaskDTO",
    "BloomFilterGCTaskDetails",
    "Context",
    "Snapshot",
]
