# dms_toolrunner/plugins/inspect.py
"""Reassemble the per-segment output of a parallelized Inspect search."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List

from dms_toolrunner.config import InspectAssemblyConfig
from dms_toolrunner.merge.assemble import AssemblyError, InspectFileType, assemble_files
from dms_toolrunner.plugins.result import ToolRunResult
from dms_toolrunner.utils.archive import zip_files
from dms_toolrunner.utils.cleanup import safe_remove_files

logger = logging.getLogger(__name__)

__all__ = ["run_inspect_assembly", "COMBINED_FILES"]

# Combined file name for each segment file type
COMBINED_FILES = (
    (InspectFileType.RESULT, "{dataset}_inspect.txt"),
    (InspectFileType.ERROR, "{dataset}_error.txt"),
    (InspectFileType.SEARCH_LOG, "InspectSearchLog.txt"),
    (InspectFileType.CONSOLE, "InspectConsoleOutput.txt"),
)


def _segment_files(config: InspectAssemblyConfig) -> List[Path]:
    return [
        config.work_dir / file_type.segment_name(config.dataset, n)
        for file_type, _ in COMBINED_FILES
        for n in range(1, config.num_cloned_steps + 1)
    ]


def run_inspect_assembly(config: InspectAssemblyConfig) -> ToolRunResult:
    """
    Combine segment files (when the search was parallelized) and zip the results.

    Produces <dataset>_error.txt, InspectSearchLog.txt and
    InspectConsoleOutput.txt in the work directory, and stores
    <dataset>_inspect.txt in <dataset>_inspect_all.zip (the text file is
    removed once zipped).
    """
    start = time.perf_counter()
    result = ToolRunResult(tool="InspectResultsAssembly")
    work_dir = config.work_dir

    try:
        if config.num_cloned_steps > 0:
            logger.info(
                "Assembling %d parallelized Inspect segment(s) for %s",
                config.num_cloned_steps, config.dataset,
            )
            for progress, (file_type, pattern) in enumerate(COMBINED_FILES):
                combined = pattern.format(dataset=config.dataset)
                assemble_files(
                    work_dir, combined, file_type, config.dataset, config.num_cloned_steps
                )
                result.output_files.append(work_dir / combined)
                result.progress = (progress + 1) / len(COMBINED_FILES) * 80.0
        else:
            logger.info("Inspect search was not parallelized; nothing to assemble")

        inspect_txt = work_dir / f"{config.dataset}_inspect.txt"
        if not inspect_txt.exists():
            raise AssemblyError(f"Inspect results file not found: {inspect_txt.name}")

        zip_path = zip_files(
            work_dir / f"{config.dataset}_inspect_all.zip", [inspect_txt], delete_sources=True
        )
        result.output_files = [p for p in result.output_files if p != inspect_txt]
        result.output_files.append(zip_path)

        if config.num_cloned_steps > 0 and not config.keep_intermediate_files:
            safe_remove_files(p for p in _segment_files(config) if p.exists())

        result.progress = 100.0
        result.success = True

    except (AssemblyError, OSError) as exc:
        logger.exception("Inspect results assembly failed")
        result.message = str(exc)

    result.elapsed_s = time.perf_counter() - start
    return result
