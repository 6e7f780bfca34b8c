"""Run summary reporting for tool runner jobs."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

__all__ = ["format_run_summary", "log_run_summary"]

UNDER = "\033[4m"
RESET = "\033[0m"


def _abbrev(s: str, width: int = 96) -> str:
    """Truncate string with ellipsis if it exceeds width."""
    return s if len(s) <= width else s[: max(0, width - 1)] + "…"


def _fmt_duration(seconds: float) -> str:
    days, rem = divmod(int(seconds), 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_run_summary(
        *,
        tool: str,
        dataset: str,
        work_dir: str,
        units: int,
        workers: int,
        start_time: datetime,
        poll_interval_s: float = 15.0,
        timeout_s: float = 14 * 86400.0,
        tool_version: Optional[str] = None,
        keep_intermediate_files: bool = False,
        color: bool = False,
) -> str:
    """
    Build a formatted summary of the planned tool run.

    Args:
        tool: Tool name (e.g. "MODPlus")
        dataset: Dataset name
        work_dir: Working directory holding inputs and outputs
        units: Number of partitions / work units
        workers: Number of concurrent worker threads
        start_time: Job start timestamp
        poll_interval_s: Coordinator poll interval
        timeout_s: Wall-clock timeout for the worker pool
        tool_version: Version string reported by the tool, if known
        keep_intermediate_files: Whether per-partition files are kept
        color: Underline section titles with ANSI codes

    Returns:
        Formatted summary string with newline at end
    """
    def title(s: str) -> str:
        return f"{UNDER}{s}{RESET}" if color else s

    lines = [
        f"{tool.upper()} PARALLEL RUN",
        "━" * 100,
        f"Start Time: {start_time:%Y-%m-%d %H:%M:%S}",
        "",
        title("Run Configuration"),
        "═" * 100,
        f"Dataset:              {dataset}",
        f"Work dir:             {_abbrev(work_dir)}",
        f"Work units:           {units}",
        f"Worker threads:       {workers}",
        f"Poll interval:        {poll_interval_s:g} s",
        f"Timeout:              {_fmt_duration(timeout_s)}",
        f"Keep intermediates:   {keep_intermediate_files}",
    ]
    if tool_version:
        lines.append(f"Tool version:         {tool_version}")
    lines += ["", title("Progress"), "═" * 100]

    return "\n".join(lines) + "\n"


def log_run_summary(**kwargs) -> None:
    """
    Log the run summary at INFO level, one line per record.

    Args:
        **kwargs: All arguments accepted by format_run_summary()
    """
    summary = format_run_summary(**kwargs)
    for line in summary.rstrip("\n").splitlines():
        logger.info(line)
