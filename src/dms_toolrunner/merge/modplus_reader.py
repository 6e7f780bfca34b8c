# dms_toolrunner/merge/modplus_reader.py
"""Block reader for per-thread MODPlus result files (_modp.txt)."""
from __future__ import annotations

import logging
import re
from pathlib import Path, PureWindowsPath
from typing import List, Optional, Union

from dms_toolrunner.merge.stream import MalformedKeyError

logger = logging.getLogger(__name__)

__all__ = ["ModPlusResultsReader", "GENERIC_WORK_DIR"]

GENERIC_WORK_DIR = "E:\\DMS_WorkDir\\"

_PART_SUFFIX_RX = re.compile(r"_Part\d+(?=\.mgf$)", re.IGNORECASE)


class ModPlusResultsReader:
    """
    Reads one spectrum block at a time from a MODPlus result file.

    Each block starts with a header line of the form::

        >>MGFFilePath<TAB>MGFScanIndex<TAB>ScanNumber<TAB>ParentMZ<TAB>Charge<TAB>Dataset.Start.End.[Charge]

    The merge key is ``scan + charge / 100`` (scan 1000 charge 2 -> 1000.02).
    The header is normalised so merged output does not depend on which
    thread produced it: the MGF path becomes ``E:\\DMS_WorkDir\\<name>``
    with any ``_PartN`` suffix removed, and a ScanNumber of 0 is replaced
    by the scan parsed from the spectrum title.
    """

    def __init__(self, dataset: str, path: Union[str, Path]):
        self.path = Path(path)
        self.name = self.path.name
        self._key_rx = re.compile(
            r"\t(\d+)\t" + re.escape(dataset) + r"\.(\d+)\.", re.IGNORECASE
        )
        self._fh = open(self.path, "r", encoding="utf-8", errors="replace")
        self._saved: Optional[str] = None
        self._block: List[str] = []
        self._key: Optional[float] = None
        self._malformed = False
        self.advance()

    def __enter__(self) -> "ModPlusResultsReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._fh.close()

    def current_key(self) -> Optional[float]:
        if self._malformed:
            head = self._block[0] if self._block else ""
            raise MalformedKeyError(f"{self.name}: no scan/charge in {head[:80]!r}")
        return self._key

    def current_block(self) -> List[str]:
        return list(self._block)

    def _normalise_header(self, line: str) -> str:
        match = self._key_rx.search(line)
        scan = None
        if match:
            charge = int(match.group(1))
            scan = int(match.group(2))
            self._key = scan + charge / 100.0
        else:
            self._malformed = True

        cols = line.split("\t")
        if len(cols) <= 3:
            return line

        mgf_name = PureWindowsPath(cols[0][2:]).name
        if not mgf_name:
            return line
        mgf_name = _PART_SUFFIX_RX.sub("", mgf_name)

        cols[0] = ">>" + GENERIC_WORK_DIR + mgf_name
        if scan is not None and cols[2] == "0":
            cols[2] = str(scan)
        return "\t".join(cols)

    def advance(self) -> bool:
        """Load the next block; returns False once the file is exhausted."""
        self._block = []
        self._key = None
        self._malformed = False

        header_seen = False
        while True:
            if self._saved is not None:
                line, self._saved = self._saved, None
            else:
                line = self._fh.readline()
                if not line:
                    break
                line = line.rstrip("\r\n")

            if not line.strip():
                continue

            if line.startswith(">>"):
                if header_seen or self._block:
                    self._saved = line
                    break
                header_seen = True
                line = self._normalise_header(line)

            self._block.append(line)

        if self._block and not header_seen:
            # Text before the first header has no key
            self._malformed = True

        return bool(self._block)
