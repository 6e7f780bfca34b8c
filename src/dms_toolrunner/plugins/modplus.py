# dms_toolrunner/plugins/modplus.py
"""
MODPlus search: split spectra, run one Java process per part, merge results.

Stages and the overall progress reported at each:
    1   converting the spectrum file to MGF (when needed)
    3   splitting the MGF file
    5   MODPlus running (scaled to 95 from the pool's mean progress)
    95  MODPlus complete; results merged and zipped
"""
from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from setproctitle import setproctitle

from dms_toolrunner.config import ModPlusConfig, PoolConfig
from dms_toolrunner.io.console import ModPlusConsoleParser
from dms_toolrunner.io.mgf import MgfSplitError, split_mgf_file
from dms_toolrunner.io.params import ParamFileError, create_thread_param_files
from dms_toolrunner.merge.modplus_reader import ModPlusResultsReader
from dms_toolrunner.merge.stream import MalformedKeyError, merge_to_file
from dms_toolrunner.parallel.types import PoolResult, WorkUnit
from dms_toolrunner.pipeline.report import log_run_summary
from dms_toolrunner.pipeline.runner import WorkerPool
from dms_toolrunner.pipeline.steps import run_tool_step
from dms_toolrunner.pipeline.worker import ProcessHandle
from dms_toolrunner.plugins.result import ToolRunResult
from dms_toolrunner.utils.archive import zip_files
from dms_toolrunner.utils.cleanup import safe_remove_files
from dms_toolrunner.utils.threads import (
    compute_incremental_progress,
    compute_max_threads_given_memory,
    parse_thread_count,
)

logger = logging.getLogger(__name__)

__all__ = ["run_modplus_search", "build_work_units"]

PROGRESS_CONVERTING = 1.0
PROGRESS_SPLITTING = 3.0
PROGRESS_MODPLUS_STARTING = 5.0
PROGRESS_MODPLUS_COMPLETE = 95.0


class ConversionError(RuntimeError):
    """The spectrum file could not be converted to MGF."""


def _ensure_mgf(config: ModPlusConfig) -> Path:
    """Return <dataset>.mgf in the work directory, running MSConvert if it is missing."""
    mgf = config.work_dir / f"{config.dataset}.mgf"
    if mgf.exists():
        return mgf

    if config.spectrum_file is None or config.msconvert_path is None:
        raise ConversionError(
            f"{mgf.name} not found and no spectrum file / MSConvert path to create it"
        )

    step = run_tool_step(
        "MSConvert",
        [config.msconvert_path, "--mgf", "--outfile", mgf, config.spectrum_file],
        console_path=config.work_dir / "MSConvert_ConsoleOutput.txt",
        cwd=config.work_dir,
    )
    if not step.success:
        raise ConversionError(f"Error running MSConvert: {step.error}")
    if not mgf.exists():
        raise ConversionError(f"MSConvert did not create {mgf.name}")
    return mgf


def build_work_units(
        config: ModPlusConfig,
        param_files: Dict[int, Path],
        mgf_files: Dict[int, Path],
) -> List[WorkUnit]:
    """One WorkUnit per thread: java -Xmx<mem>M -jar <jar> -i <params> -o <result>."""
    units = []
    for thread in sorted(param_files):
        output = config.work_dir / f"{config.dataset}_Part{thread}_modp.txt"
        units.append(WorkUnit(
            partition=thread,
            input_path=mgf_files[thread],
            output_path=output,
            args=(
                str(config.java_path),
                f"-Xmx{config.effective_java_memory_mb}M",
                "-jar", str(config.modplus_jar),
                "-i", str(param_files[thread]),
                "-o", str(output),
            ),
            console_path=config.work_dir / f"MODPlus_ConsoleOutput_Part{thread}.txt",
            cwd=config.work_dir,
        ))
    return units


def _merge_thread_results(config: ModPlusConfig, units: List[WorkUnit]) -> Tuple[Path, List[str]]:
    """Merge per-thread result files into <dataset>_modp.txt; returns (path, problems)."""
    combined = config.work_dir / f"{config.dataset}_modp.txt"
    problems: List[str] = []

    with ExitStack() as stack:
        readers = []
        for unit in units:
            path = unit.output_path
            if not path.exists() or path.stat().st_size == 0:
                msg = f"Result file not found/empty for thread {unit.partition}: {path.name}"
                logger.error(msg)
                problems.append(msg)
                continue
            readers.append(stack.enter_context(ModPlusResultsReader(config.dataset, path)))

        stats = merge_to_file(readers, combined)

    if stats.malformed_sources:
        logger.warning(
            "Unsorted blocks appended from %s", ", ".join(stats.malformed_sources)
        )
    return combined, problems


def _run_pool(
        units: List[WorkUnit],
        pool_config: PoolConfig,
        retries: int,
        launcher: Optional[Callable[[WorkUnit], ProcessHandle]],
        parsers: List[ModPlusConsoleParser],
) -> PoolResult:
    def parser_factory() -> ModPlusConsoleParser:
        parser = ModPlusConsoleParser()
        parsers.append(parser)
        return parser

    result = None
    for attempt in range(1, retries + 2):
        pool = WorkerPool(
            units,
            config=pool_config,
            launcher=launcher,
            parser_factory=parser_factory,
            description="MODPlus",
        )
        result = pool.run()
        if result.success:
            break
        if attempt <= retries:
            logger.warning(
                "MODPlus attempt %d of %d failed (%s); re-running all threads",
                attempt, retries + 1, result.first_error,
            )
    return result


def run_modplus_search(
        config: ModPlusConfig,
        pool_config: Optional[PoolConfig] = None,
        *,
        launcher: Optional[Callable[[WorkUnit], ProcessHandle]] = None,
) -> ToolRunResult:
    """
    Run a MODPlus search over ``config.dataset`` with one Java process per MGF part.

    Args:
        config: Job settings
        pool_config: Worker pool settings; defaults to one worker per part
        launcher: Process launcher override (default starts the command line)

    Returns:
        ToolRunResult; on success output_files holds <dataset>_modp.zip
    """
    try:
        setproctitle("dms:modplus")
    except Exception:
        pass

    start = time.perf_counter()
    result = ToolRunResult(tool="MODPlus")
    work_dir = config.work_dir
    combined = work_dir / f"{config.dataset}_modp.txt"
    zip_path = work_dir / f"{config.dataset}_modp.zip"
    intermediates: List[Path] = []
    parsers: List[ModPlusConsoleParser] = []

    try:
        mem_mb = config.effective_java_memory_mb
        threads = parse_thread_count(
            config.thread_count, compute_max_threads_given_memory(mem_mb)
        )
        logger.info("Running MODPlus using %d threads, %d MB Java memory each", threads, mem_mb)

        result.progress = PROGRESS_CONVERTING
        mgf = _ensure_mgf(config)

        result.progress = PROGRESS_SPLITTING
        parts = split_mgf_file(mgf, threads)
        intermediates += parts

        param_files = create_thread_param_files(
            config.param_file, config.fasta_path, parts, config.high_res_msms
        )
        mgf_by_thread = {
            thread: next(p for p in parts if p.stem.endswith(f"_Part{thread}"))
            for thread in param_files
        }
        units = build_work_units(config, param_files, mgf_by_thread)
        intermediates += [u.output_path for u in units]

        pool_config = pool_config or PoolConfig(max_workers=len(units))
        log_run_summary(
            tool="MODPlus",
            dataset=config.dataset,
            work_dir=str(work_dir),
            units=len(units),
            workers=min(len(units), pool_config.max_workers),
            start_time=datetime.now(),
            poll_interval_s=pool_config.poll_interval_s,
            timeout_s=pool_config.timeout_s,
            keep_intermediate_files=config.keep_intermediate_files,
        )

        result.progress = PROGRESS_MODPLUS_STARTING
        pool_result = _run_pool(units, pool_config, config.pool_retries, launcher, parsers)
        result.pool = pool_result
        result.progress = compute_incremental_progress(
            PROGRESS_MODPLUS_STARTING, PROGRESS_MODPLUS_COMPLETE, pool_result.overall_progress
        )
        result.tool_version = next((p.release_date for p in parsers if p.release_date), "")
        if result.tool_version:
            logger.info("MODPlus release date: %s", result.tool_version)

        if not pool_result.success:
            result.message = pool_result.first_error or "Error running MODPlus"
            return result

        combined, problems = _merge_thread_results(config, units)
        if problems:
            result.message = problems[0]
            return result

        consoles = sorted(work_dir.glob("MODPlus_ConsoleOutput_Part*.txt"))
        zip_files(
            zip_path,
            [combined, *consoles, *param_files.values()],
            delete_sources=not config.keep_intermediate_files,
        )

        result.progress = PROGRESS_MODPLUS_COMPLETE
        result.output_files = [zip_path]
        result.success = True
        return result

    except (ConversionError, MgfSplitError, ParamFileError, MalformedKeyError, ValueError, OSError) as exc:
        logger.exception("MODPlus job failed")
        result.message = str(exc)
        return result

    finally:
        result.elapsed_s = time.perf_counter() - start
        if not config.keep_intermediate_files:
            if not result.success:
                safe_remove_files([combined, zip_path])
            leftover = safe_remove_files(intermediates)
            if leftover:
                logger.warning("Could not remove %d intermediate file(s)", len(leftover))
        logger.info(
            "MODPlus %s in %.1f s%s",
            "succeeded" if result.success else "failed",
            result.elapsed_s,
            "" if result.success else f": {result.message}",
        )
