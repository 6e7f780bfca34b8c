"""Ordered K-way merge and per-segment file assembly."""

from .stream import (
    MalformedKeyError,
    MalformedKeyPolicy,
    MergeStats,
    merge_streams,
    merge_to_file,
)

__all__ = [
    "MalformedKeyError",
    "MalformedKeyPolicy",
    "MergeStats",
    "merge_streams",
    "merge_to_file",
]
