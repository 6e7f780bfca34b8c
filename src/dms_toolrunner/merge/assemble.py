# dms_toolrunner/merge/assemble.py
"""Concatenate per-segment Inspect output files into combined files."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

__all__ = ["AssemblyError", "InspectFileType", "assemble_files"]


class AssemblyError(RuntimeError):
    """Combined output could not be created."""


@dataclass(frozen=True)
class _Layout:
    pattern: str
    has_header: bool
    add_segment: bool
    blank_between: bool


class InspectFileType(Enum):
    RESULT = _Layout("{dataset}_{n}_inspect.txt", True, False, False)
    ERROR = _Layout("{dataset}_{n}_error.txt", False, True, False)
    SEARCH_LOG = _Layout("InspectSearchLog_{n}.txt", True, True, False)
    CONSOLE = _Layout("InspectConsoleOutput_{n}.txt", False, False, True)

    def segment_name(self, dataset: str, n: int) -> str:
        return self.value.pattern.format(dataset=dataset, n=n)


def _strip_directory(line: str) -> str:
    """Drop any directory prefix from the first column of a result line."""
    tab = line.find("\t")
    if tab <= 0:
        return line
    slash = max(line.rfind("\\", 0, tab), line.rfind("/", 0, tab))
    return line[slash + 1:] if slash > 0 else line


def assemble_files(
        work_dir: Union[str, Path],
        combined_name: str,
        file_type: InspectFileType,
        dataset: str,
        num_segments: int,
) -> int:
    """
    Concatenate segments 1..num_segments of ``file_type`` into ``combined_name``.

    Missing segment files are skipped. The header line (when the segment
    files have one) is written once. Returns the number of segments read.

    Raises:
        AssemblyError: If the combined file already exists
    """
    work_dir = Path(work_dir)
    layout = file_type.value
    combined = work_dir / combined_name

    try:
        writer = open(combined, "x", encoding="utf-8", newline="\n")
    except FileExistsError:
        raise AssemblyError(f"Combined file already exists: {combined}") from None

    segments_read = 0
    header_written = False

    with writer:
        for n in range(1, num_segments + 1):
            seg_path = work_dir / file_type.segment_name(dataset, n)
            if not seg_path.exists():
                logger.debug("Segment %d missing: %s", n, seg_path.name)
                continue

            with open(seg_path, "r", encoding="utf-8", errors="replace") as reader:
                for idx, line in enumerate(reader):
                    line = line.rstrip("\r\n")

                    if idx == 0 and layout.has_header:
                        if not header_written:
                            if layout.add_segment:
                                line = "Segment\t" + line
                            writer.write(line + "\n")
                            header_written = True
                        continue

                    if idx == 0 and layout.add_segment and not header_written:
                        writer.write("Segment\tMessage\n")
                        header_written = True

                    if file_type is InspectFileType.RESULT:
                        line = _strip_directory(line)

                    if layout.add_segment:
                        line = f"{n}\t{line}"
                    writer.write(line + "\n")

            if layout.blank_between:
                writer.write("\n")
            segments_read += 1

    logger.info(
        "Assembled %d of %d segment(s) into %s", segments_read, num_segments, combined.name
    )
    return segments_read
