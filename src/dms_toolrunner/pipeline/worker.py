# dms_toolrunner/pipeline/worker.py
"""Thread body that runs and monitors one WorkUnit's external process."""
from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional, Protocol, Tuple

import psutil
from setproctitle import setthreadtitle

from dms_toolrunner.io.console import ProgressParser, read_console_output
from dms_toolrunner.parallel.status import WorkerStatus
from dms_toolrunner.parallel.types import WorkUnit

logger = logging.getLogger(__name__)

__all__ = ["ProcessHandle", "WorkerError", "run_work_unit"]

# Upper bound on how long a worker goes without checking the abort signal
WAIT_SLICE_S = 0.25


class ProcessHandle(Protocol):
    """What a launcher must return; ToolProcess is the real implementation."""

    @property
    def pid(self) -> int: ...

    @property
    def cached_errors(self) -> list[str]: ...

    def wait(self, timeout: Optional[float] = None) -> Optional[int]: ...

    def abort(self) -> None: ...


# (perf_counter timestamp, partition, message)
WorkerError = Tuple[float, int, str]


class _CpuSampler:
    """psutil CPU sampler; reports usage in cores (1.0 = one busy core)."""

    def __init__(self, pid: int):
        try:
            self._proc: Optional[psutil.Process] = psutil.Process(pid)
            self._proc.cpu_percent(interval=None)
        except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
            self._proc = None

    def sample(self) -> Optional[float]:
        if self._proc is None:
            return None
        try:
            return self._proc.cpu_percent(interval=None) / 100.0
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            self._proc = None
            return None


def _report(errors: "queue.Queue[WorkerError]", unit: WorkUnit, message: str) -> None:
    errors.put((time.perf_counter(), unit.partition, message))


def _refresh(unit: WorkUnit, status: WorkerStatus, parser: Optional[ProgressParser]) -> None:
    if parser is None or unit.console_path is None:
        return
    progress = parser.parse(read_console_output(unit.console_path))
    if progress is not None:
        status.update_progress(progress, parsed_at=time.time())


def run_work_unit(
        unit: WorkUnit,
        status: WorkerStatus,
        launcher: Callable[[WorkUnit], ProcessHandle],
        errors: "queue.Queue[WorkerError]",
        abort: threading.Event,
        *,
        parser: Optional[ProgressParser] = None,
        status_interval_s: float = 30.0,
) -> WorkerStatus:
    """
    Run one WorkUnit to completion.

    Launches the process, waits on it in short timed slices so the abort
    signal is honoured promptly, and every ``status_interval_s`` re-parses
    the console output and samples CPU usage. Never raises for tool
    failures; the outcome is recorded on ``status`` and any error message
    is sent through ``errors``.
    """
    n = unit.partition
    try:
        setthreadtitle(f"dms:worker-{n}")
    except Exception:
        pass

    if abort.is_set():
        status.finish(False, error=f"thread {n}: aborted before start")
        return status

    try:
        proc = launcher(unit)
    except OSError as exc:
        msg = f"thread {n}: could not start {unit.args[0]}: {exc}"
        logger.error("Worker %s: %s", n, msg)
        status.finish(False, error=msg)
        _report(errors, unit, msg)
        abort.set()
        return status

    status.mark_running(proc.pid)
    cpu = _CpuSampler(proc.pid)
    next_status = time.monotonic() + status_interval_s

    try:
        code = None
        while code is None:
            if abort.is_set():
                proc.abort()
                msg = f"thread {n}: aborted"
                logger.warning("Worker %s: aborted (pid %s)", n, proc.pid)
                status.finish(False, error=msg)
                _report(errors, unit, msg)
                return status

            code = proc.wait(timeout=WAIT_SLICE_S)

            if code is None and time.monotonic() >= next_status:
                _refresh(unit, status, parser)
                usage = cpu.sample()
                if usage is not None:
                    status.update_cpu(usage)
                next_status = time.monotonic() + status_interval_s

        _refresh(unit, status, parser)
        console_errors = proc.cached_errors

        if console_errors:
            msg = f"Console error for thread {n}: {console_errors[0]}"
        elif code != 0:
            msg = f"thread {n}: exited with code {code}"
        else:
            msg = ""

        if msg:
            logger.error("Worker %s: %s", n, msg)
            status.finish(False, exit_code=code, error=msg)
            _report(errors, unit, msg)
        else:
            logger.info("Worker %s: completed successfully", n)
            status.finish(True, exit_code=code)

    except Exception as exc:
        logger.exception("Worker %s: unexpected error", n)
        try:
            proc.abort()
        except Exception:
            logger.debug("Worker %s: abort after error failed", n, exc_info=True)
        msg = f"thread {n}: {exc}"
        if not status.state.is_terminal:
            status.finish(False, error=msg)
        _report(errors, unit, msg)

    return status
