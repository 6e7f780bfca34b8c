# dms_toolrunner/utils/threads.py
"""Thread-count and progress helpers."""
from __future__ import annotations

import logging
import math
import re
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

__all__ = [
    "core_count",
    "free_memory_mb",
    "parse_thread_count",
    "compute_max_threads_given_memory",
    "compute_incremental_progress",
]

MIN_MEMORY_MB_PER_THREAD = 512

_PERCENT_RX = re.compile(r"([0-9.]+)%")


def core_count() -> int:
    return psutil.cpu_count(logical=True) or 1


def free_memory_mb() -> float:
    return psutil.virtual_memory().available / (1024 * 1024)


def parse_thread_count(
        text: Optional[str],
        max_threads_to_allow: int = 0,
        cores: Optional[int] = None,
) -> int:
    """
    Convert a thread-count setting into a number of threads.

    Accepts "all" (or empty / "0") for every core, a percentage such as
    "90%" of the cores, or an explicit integer. The result is capped at the
    core count and, when positive, at ``max_threads_to_allow``; it is never
    below 1.

    Examples:
        >>> parse_thread_count("90%", cores=10)
        9
        >>> parse_thread_count("all", max_threads_to_allow=4, cores=16)
        4
    """
    cores = cores or core_count()
    text = (text or "").strip() or "all"

    count = 0
    if text.lower().startswith("all"):
        count = cores
    else:
        match = _PERCENT_RX.search(text)
        if match:
            count = max(1, round(float(match.group(1)) / 100.0 * cores))
        else:
            try:
                count = int(text)
            except ValueError:
                logger.warning("Unrecognized thread count %r; using all %d cores", text, cores)
                count = 0

    if count <= 0:
        count = cores
    count = min(count, cores)

    if max_threads_to_allow > 0:
        count = min(count, max_threads_to_allow)

    return max(1, count)


def compute_max_threads_given_memory(
        memory_mb_per_thread: float,
        free_mb: Optional[float] = None,
        cores: Optional[int] = None,
) -> int:
    """
    Maximum threads that fit in free memory, capped at the core count.

    Per-thread memory is floored at 512 MB. The memory-based count rounds up
    only when it is within 0.2 of the next integer.
    """
    per_thread = max(float(memory_mb_per_thread), MIN_MEMORY_MB_PER_THREAD)
    cores = cores or core_count()
    free_mb = free_memory_mb() if free_mb is None else free_mb

    by_memory = free_mb / per_thread
    rounded_up = math.ceil(by_memory)
    threads = rounded_up if rounded_up - by_memory <= 0.2 else rounded_up - 1

    return max(1, min(cores, threads))


def compute_incremental_progress(start: float, end: float, sub_progress: float) -> float:
    """Map ``sub_progress`` (0-100) of a sub-task onto the overall range start..end."""
    if sub_progress < 0:
        return start
    if sub_progress >= 100:
        return end
    return start + sub_progress / 100.0 * (end - start)
