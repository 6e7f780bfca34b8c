# dms_toolrunner/io/mgf.py
"""Round-robin splitting of Mascot Generic Format (.mgf) spectrum files."""
from __future__ import annotations

import logging
import re
from contextlib import ExitStack
from pathlib import Path
from typing import Iterator, List, TextIO, Tuple, Union

logger = logging.getLogger(__name__)

__all__ = ["MgfSplitError", "iter_mgf_spectra", "split_mgf_file"]

# TITLE=Dataset.StartScan.EndScan.Charge (charge optional)
_TITLE_SCAN_RX = re.compile(r".+\.(\d+)\.\d+\.\d?", re.IGNORECASE)
_SCANS_RX = re.compile(r"^SCANS=(\d+)", re.IGNORECASE)


class MgfSplitError(RuntimeError):
    """The MGF file could not be split."""


def iter_mgf_spectra(fh: TextIO) -> Iterator[Tuple[List[str], int]]:
    """
    Yield ``(lines, scan_number)`` for each BEGIN IONS ... END IONS block.

    Text outside spectra is ignored. A spectrum missing its END IONS line is
    closed when the next BEGIN IONS (or end of file) is reached. The scan
    number is 0 when neither SCANS= nor a Dataset.Start.End. title is found.
    """
    spectrum: List[str] = []
    scan = 0
    in_spectrum = False

    for raw in fh:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        upper = line.upper()

        if upper.startswith("BEGIN IONS"):
            if in_spectrum:
                logger.debug("Spectrum missing END IONS (scan %d); closing it", scan)
                spectrum.append("END IONS")
                yield spectrum, scan
            spectrum, scan, in_spectrum = [], 0, True

        if not in_spectrum:
            continue

        if upper.startswith("TITLE") and scan == 0:
            match = _TITLE_SCAN_RX.match(line)
            if match:
                scan = int(match.group(1))
        elif upper.startswith("SCANS="):
            match = _SCANS_RX.match(line)
            if match:
                scan = int(match.group(1))

        spectrum.append(line)

        if upper.startswith("END IONS"):
            yield spectrum, scan
            spectrum, scan, in_spectrum = [], 0, False

    if in_spectrum and spectrum:
        spectrum.append("END IONS")
        yield spectrum, scan


def split_mgf_file(
        mgf_path: Union[str, Path],
        split_count: int,
        suffix: str = "_Part",
) -> List[Path]:
    """
    Split ``mgf_path`` into ``split_count`` parts, distributing spectra round-robin.

    Parts are written next to the source as ``<stem><suffix>N.mgf``; a scan
    map ``<stem>_mgfScanMap.txt`` records, for every spectrum, its scan
    number, its 1-based index in the source, the part it went to and its
    index within that part. Parts that receive no spectra are deleted.

    Args:
        mgf_path: Source .mgf file
        split_count: Number of parts; values below 2 are raised to 2
        suffix: Text inserted between the stem and the part number

    Returns:
        Paths of the non-empty parts, in part order

    Raises:
        MgfSplitError: If the file is missing, empty, or holds no spectra
    """
    src = Path(mgf_path)
    if not src.exists():
        raise MgfSplitError(f"File not found: {src}")
    if src.stat().st_size == 0:
        raise MgfSplitError(f"MGF file is empty: {src}")

    suffix = suffix or "_Part"
    split_count = max(2, split_count)
    logger.info("Splitting %s into %d parts", src.name, split_count)

    parts = [src.with_name(f"{src.stem}{suffix}{n}.mgf") for n in range(1, split_count + 1)]
    counts = [0] * split_count
    scan_map = src.with_name(f"{src.stem}_mgfScanMap.txt")

    total = 0
    with ExitStack() as stack:
        reader = stack.enter_context(open(src, "r", encoding="utf-8", errors="replace"))
        map_out = stack.enter_context(open(scan_map, "w", encoding="utf-8", newline="\n"))
        writers = [
            stack.enter_context(open(p, "w", encoding="utf-8", newline="\n")) for p in parts
        ]

        map_out.write("ScanNumber\tScanIndexOriginal\tMgfFilePart\tScanIndex\n")

        for lines, scan in iter_mgf_spectra(reader):
            slot = total % split_count
            writers[slot].write("\n".join(lines) + "\n")
            counts[slot] += 1
            total += 1
            map_out.write(f"{scan}\t{total}\t{slot + 1}\t{counts[slot]}\n")

    kept: List[Path] = []
    for path, count in zip(parts, counts):
        if count == 0:
            path.unlink(missing_ok=True)
        else:
            kept.append(path)

    if total == 0:
        raise MgfSplitError(
            "No spectra were read from the source MGF file (BEGIN IONS not found)"
        )

    logger.info("Wrote %d spectra to %d part(s)", total, len(kept))
    return kept
