# dms_toolrunner/io/console.py
"""Progress parsing for external tool console output."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Protocol, Union

logger = logging.getLogger(__name__)

__all__ = [
    "ProgressParser",
    "RegexProgressParser",
    "ModPlusConsoleParser",
    "read_console_output",
    "should_ignore_error",
    "scan_console_errors",
]


class ProgressParser(Protocol):
    """Turns a chunk of console text into a percent complete (0-100)."""

    def parse(self, text: str) -> Optional[float]:
        ...


class RegexProgressParser:
    """
    Generic "N/total" progress scraper.

    The last match in the text wins; the pattern must capture the completed
    count in group 1 and the total in group 2.
    """

    def __init__(self, pattern: Union[str, Pattern[str]] = r"(\d+)\s*/\s*(\d+)"):
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE | re.MULTILINE)
        self.pattern = pattern

    def parse(self, text: str) -> Optional[float]:
        last = None
        for last in self.pattern.finditer(text):
            pass
        if last is None:
            return None

        done = int(last.group(1))
        total = max(1, int(last.group(2)))
        return float(round(done / total * 100))


class ModPlusConsoleParser(RegexProgressParser):
    """
    MODPlus console output parser.

    Example output::

        Modplus (version pnnl) - Identification of post-translational modifications
        Release Date: Apr 28, 2015
        ...
        MODPlus | 1/50396
        MODPlus | 2/50396
    """

    _release_rx = re.compile(r"^\s*release date:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)

    def __init__(self):
        super().__init__(r"^MODPlus[^0-9\n]+(\d+)/(\d+)")
        self.release_date = ""

    def parse(self, text: str) -> Optional[float]:
        if not self.release_date:
            match = self._release_rx.search(text)
            if match:
                self.release_date = match.group(1)
        return super().parse(text)


def read_console_output(path: Optional[Union[str, Path]]) -> str:
    """Read a console file that may still be open by the tool writing it."""
    if path is None:
        return ""
    p = Path(path)
    if not p.exists():
        return ""
    try:
        return p.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.error("Error parsing console output file (%s): %s", p, exc)
        return ""


def should_ignore_error(message: str, errors_to_ignore: Iterable[str]) -> bool:
    """True when ``message`` contains any of the ignorable error texts."""
    return any(text and text in message for text in errors_to_ignore)


def scan_console_errors(
        path: Optional[Union[str, Path]],
        errors_to_ignore: Iterable[str] = (),
) -> List[str]:
    """
    Collect error lines from a console output file.

    Lines starting with ``Error:`` are reported unless they match the
    ignore-list. An ``Unhandled Exception`` line is always reported, and the
    non-blank lines after it (exception text and stack trace) are joined
    with ";" into one further entry.

    Example::

        Unhandled Exception: System.IO.IOException: disk full
           at Program.Main()

        -> ["Unhandled Exception: System.IO.IOException: disk full",
            "at Program.Main()"]
    """
    ignore = tuple(errors_to_ignore)
    errors: List[str] = []
    exception_lines: List[str] = []
    in_exception = False

    for line in read_console_output(path).splitlines():
        line = line.strip()
        if not line:
            continue

        if in_exception:
            exception_lines.append(line)
        elif line.startswith("Error:"):
            if not should_ignore_error(line, ignore):
                errors.append(line)
        elif line.startswith("Unhandled Exception"):
            errors.append(line)
            in_exception = True

    if exception_lines:
        errors.append(";".join(exception_lines))
    return errors
