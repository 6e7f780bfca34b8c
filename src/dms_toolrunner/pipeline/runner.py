# dms_toolrunner/pipeline/runner.py
"""Bounded pool of external processes, one per WorkUnit."""
from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from tqdm import tqdm

from dms_toolrunner.config import PoolConfig
from dms_toolrunner.io.console import ProgressParser
from dms_toolrunner.parallel.status import WorkerStatus
from dms_toolrunner.parallel.types import PoolResult, WorkerState, WorkUnit
from dms_toolrunner.pipeline.process import launch_work_unit
from dms_toolrunner.pipeline.worker import ProcessHandle, WorkerError, run_work_unit

logger = logging.getLogger(__name__)

__all__ = ["WorkerPool"]


class WorkerPool:
    """
    Run one external process per WorkUnit with at most ``max_workers`` alive.

    The pool succeeds only when every unit exits 0 without console errors.
    On failure or timeout no output paths are returned; per-partition
    outputs are left on disk for the caller to inspect or delete.
    """

    def __init__(
            self,
            units: Iterable[WorkUnit],
            *,
            config: Optional[PoolConfig] = None,
            launcher: Optional[Callable[[WorkUnit], ProcessHandle]] = None,
            parser_factory: Optional[Callable[[], ProgressParser]] = None,
            description: str = "Workers",
    ):
        self.units: List[WorkUnit] = list(units)
        if not self.units:
            raise ValueError("WorkerPool needs at least one WorkUnit")

        partitions = [u.partition for u in self.units]
        if len(set(partitions)) != len(partitions):
            raise ValueError(f"Duplicate partition numbers: {partitions}")

        self.config = config or PoolConfig()
        self.launcher = launcher or partial(
            launch_work_unit, errors_to_ignore=self.config.errors_to_ignore
        )
        self.parser_factory = parser_factory
        self.description = description

    @property
    def worker_count(self) -> int:
        return min(len(self.units), self.config.max_workers)

    def run(self) -> PoolResult:
        cfg = self.config
        statuses: Dict[int, WorkerStatus] = {
            u.partition: WorkerStatus(u.partition) for u in self.units
        }
        errors: "queue.Queue[WorkerError]" = queue.Queue()
        collected: List[WorkerError] = []
        abort = threading.Event()

        start = time.perf_counter()
        deadline = start + cfg.timeout_s
        timed_out = False

        logger.info(
            "Starting %d work unit(s) on %d worker thread(s); timeout %.0f s",
            len(self.units), self.worker_count, cfg.timeout_s,
        )

        def drain_errors() -> None:
            while True:
                try:
                    collected.append(errors.get_nowait())
                except queue.Empty:
                    return

        def overall_progress() -> float:
            snaps = [s.snapshot() for s in statuses.values()]
            return sum(s.progress for s in snaps) / len(snaps)

        with ThreadPoolExecutor(
                max_workers=self.worker_count, thread_name_prefix="dms-worker"
        ) as executor, tqdm(
            total=100,
            desc=f"{self.description}:",
            unit="%",
            ncols=100,
            bar_format='{desc} {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]',
            disable=not cfg.show_progress,
        ) as pbar:
            pending: Dict[Future, WorkUnit] = {}
            for unit in self.units:
                fut = executor.submit(
                    run_work_unit,
                    unit,
                    statuses[unit.partition],
                    self.launcher,
                    errors,
                    abort,
                    parser=self.parser_factory() if self.parser_factory else None,
                    status_interval_s=cfg.status_interval_s,
                )
                pending[fut] = unit

            cancelled = False
            while pending:
                remaining = deadline - time.perf_counter()
                if remaining <= 0 and not timed_out:
                    timed_out = True
                    running = sorted(
                        p for p, s in statuses.items() if s.state == WorkerState.RUNNING
                    )
                    names = ", ".join(f"thread {p}" for p in running) or "no running threads"
                    msg = f"Timeout exceeded ({cfg.timeout_s:.0f} s); aborting {names}"
                    logger.error(msg)
                    errors.put((time.perf_counter(), running[0] if running else 0, msg))
                    abort.set()

                if abort.is_set() and not cancelled:
                    cancelled = True
                    for fut, unit in list(pending.items()):
                        if fut.cancel():
                            logger.info("Worker %s: cancelled before start", unit.partition)
                            del pending[fut]

                wait_s = cfg.poll_interval_s if timed_out else min(cfg.poll_interval_s, max(remaining, 0.0))
                done, _ = wait(pending.keys(), timeout=wait_s, return_when=FIRST_COMPLETED)

                for fut in done:
                    unit = pending.pop(fut)
                    try:
                        fut.result()
                    except Exception as exc:
                        msg = f"thread {unit.partition}: {exc}"
                        logger.error("Worker %s: %s", unit.partition, exc)
                        errors.put((time.perf_counter(), unit.partition, msg))
                    snap = statuses[unit.partition].snapshot()
                    logger.info(
                        "Worker %s: finished as %s (exit code %s)",
                        unit.partition, snap.state.name, snap.exit_code,
                    )

                drain_errors()

                progress = overall_progress()
                pbar.n = round(progress)
                pbar.refresh()
                cpu = sum(s.snapshot().cpu_usage for s in statuses.values())
                logger.debug("Overall progress %.1f%%; CPU usage %.1f cores", progress, cpu)

        drain_errors()
        elapsed = time.perf_counter() - start
        snapshots = {p: s.snapshot() for p, s in statuses.items()}
        collected.sort(key=lambda e: e[0])

        success = (
            not timed_out
            and not collected
            and all(s.state == WorkerState.SUCCESS for s in snapshots.values())
        )

        if success:
            first_error = ""
        elif collected:
            first_error = collected[0][2]
        else:
            failed = [p for p, s in snapshots.items() if s.state != WorkerState.SUCCESS]
            first_error = f"thread {failed[0]}: did not complete" if failed else "Unknown failure"

        result = PoolResult(
            success=success,
            first_error=first_error,
            overall_progress=sum(s.progress for s in snapshots.values()) / len(snapshots),
            snapshots=snapshots,
            output_paths={u.partition: u.output_path for u in self.units} if success else {},
            elapsed_s=elapsed,
            timed_out=timed_out,
        )

        if success:
            logger.info("All %d work unit(s) succeeded in %.1f s", len(self.units), elapsed)
        else:
            logger.error(
                "Pool failed after %.1f s; failed partitions %s; first error: %s",
                elapsed, result.failed_partitions, first_error,
            )
        return result
