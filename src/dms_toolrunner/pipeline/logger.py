# dms_toolrunner/pipeline/logger.py
from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

__all__ = ["log_file_name", "setup_logger"]

_UNSAFE_RX = re.compile(r"[^A-Za-z0-9._-]+")


def log_file_name(tool: str, dataset: Optional[str] = None, when: Optional[datetime] = None) -> str:
    """``<tool>_<dataset>_<YYYYmmdd_HHMMSS>.log`` with unsafe characters replaced by "_"."""
    ts = (when or datetime.now()).strftime("%Y%m%d_%H%M%S")
    parts = [tool] if not dataset else [tool, dataset]
    stem = "_".join(_UNSAFE_RX.sub("_", part).strip("_") for part in parts)
    return f"{stem}_{ts}.log"


def setup_logger(
    work_dir: str | Path,
    tool: str,
    dataset: Optional[str] = None,
    *,
    level: int = logging.INFO,
    console: bool = False,
    force: bool = False,
) -> Path:
    """
    Send root logging to a job log beside the tool console output files.

    The log is written to ``work_dir`` (created if needed) and named after
    the tool and dataset, e.g. ``modplus_Sample_01_20240101_120000.log``.
    Returns the path to the log file. Safe to call once at process start.
    """
    log_dir = Path(work_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file_name(tool, dataset)

    root = logging.getLogger()
    if force:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()

    root.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fhandler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    fhandler.setLevel(level)
    fhandler.setFormatter(fmt)
    root.addHandler(fhandler)

    if console:
        shandler = logging.StreamHandler()
        shandler.setLevel(level)
        shandler.setFormatter(fmt)
        root.addHandler(shandler)

    root.info(
        "Started %s%s (pid %d); logging to: %s",
        tool, f" for dataset {dataset}" if dataset else "", os.getpid(), log_path,
    )
    return log_path
