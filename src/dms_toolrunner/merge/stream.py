# dms_toolrunner/merge/stream.py
"""K-way merge of key-sorted block streams into one output."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, TextIO, Union

from sortedcontainers import SortedDict

logger = logging.getLogger(__name__)

__all__ = [
    "MalformedKeyError",
    "MalformedKeyPolicy",
    "MergeSource",
    "MergeStats",
    "merge_streams",
    "merge_to_file",
]


class MalformedKeyError(ValueError):
    """The current block of a source has no parseable merge key."""


class MalformedKeyPolicy(Enum):
    APPEND = "append"
    RAISE = "raise"


class MergeSource(Protocol):
    """
    A stream of blocks sorted by non-decreasing key.

    The source starts positioned on its first block. ``current_key`` returns
    None once the source is exhausted and raises MalformedKeyError when the
    current block has no usable key.
    """

    name: str

    def current_key(self) -> Optional[float]: ...

    def current_block(self) -> List[str]: ...

    def advance(self) -> bool: ...


@dataclass
class MergeStats:
    blocks_written: int = 0
    blocks_appended: int = 0
    sources: int = 0
    malformed_sources: List[str] = field(default_factory=list)


def _source_name(src: MergeSource) -> str:
    return getattr(src, "name", None) or repr(src)


def _write_block(out: TextIO, block: Sequence[str], separator: Optional[str]) -> None:
    for line in block:
        out.write(line)
        out.write("\n")
    if separator is not None:
        out.write(separator)
        out.write("\n")


def merge_streams(
        sources: Sequence[MergeSource],
        out: TextIO,
        *,
        separator: Optional[str] = "",
        policy: MalformedKeyPolicy = MalformedKeyPolicy.APPEND,
) -> MergeStats:
    """
    Merge ``sources`` into ``out`` in ascending key order.

    Blocks with equal keys are written in the order their sources reached
    that key: sources positioned on it at the start keep their given order,
    and a source that advances onto it later follows them.
    Each block is followed by ``separator`` on its own line (None writes no
    separator). Only the current block of each source is held in memory.

    With MalformedKeyPolicy.APPEND a source that yields a block without a
    key leaves the ordered merge; its remaining blocks, starting with the
    bad one, are written verbatim after all ordered output. With RAISE the
    MalformedKeyError propagates.
    """
    stats = MergeStats(sources=len(sources))
    queue: SortedDict = SortedDict()
    unkeyed: List[MergeSource] = []

    def push(src: MergeSource) -> None:
        try:
            key = src.current_key()
        except MalformedKeyError as exc:
            if policy is MalformedKeyPolicy.RAISE:
                raise
            name = _source_name(src)
            logger.warning(
                "Malformed key in %s (%s); remaining blocks will be appended unsorted",
                name, exc,
            )
            stats.malformed_sources.append(name)
            unkeyed.append(src)
            return
        if key is not None:
            queue.setdefault(key, []).append(src)

    for src in sources:
        push(src)

    while queue:
        _, group = queue.popitem(0)
        for src in group:
            _write_block(out, src.current_block(), separator)
            stats.blocks_written += 1
            if src.advance():
                push(src)

    for src in unkeyed:
        while True:
            _write_block(out, src.current_block(), separator)
            stats.blocks_appended += 1
            if not src.advance():
                break

    return stats


def merge_to_file(
        sources: Sequence[MergeSource],
        output_path: Union[str, Path],
        *,
        separator: Optional[str] = "",
        policy: MalformedKeyPolicy = MalformedKeyPolicy.APPEND,
) -> MergeStats:
    """merge_streams() into a new file; a failed merge leaves no partial file."""
    output_path = Path(output_path)
    try:
        with open(output_path, "w", encoding="utf-8", newline="\n") as out:
            stats = merge_streams(sources, out, separator=separator, policy=policy)
    except BaseException:
        output_path.unlink(missing_ok=True)
        raise

    logger.info(
        "Merged %d source(s) into %s: %d block(s) in order, %d appended",
        stats.sources, output_path.name, stats.blocks_written, stats.blocks_appended,
    )
    return stats
