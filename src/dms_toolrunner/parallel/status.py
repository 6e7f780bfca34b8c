# parallel/status.py
"""Per-worker status record shared between a worker thread and the coordinator."""

from __future__ import annotations

import threading
import time
from typing import Optional

from .types import WorkerSnapshot, WorkerState

__all__ = ["WorkerStatus"]


class WorkerStatus:
    """
    Mutable status for one WorkUnit.

    Only the owning worker thread calls the mutators; the coordinator only
    calls snapshot(). Every access goes through one lock so a snapshot never
    observes a half-applied update.
    """

    def __init__(self, partition: int):
        self.partition = partition
        self._lock = threading.Lock()
        self._state = WorkerState.NOT_STARTED
        self._progress = 0.0
        self._pid = 0
        self._cpu_usage = 0.0
        self._last_output_parsed: Optional[float] = None
        self._exit_code: Optional[int] = None
        self._error = ""

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return self._state

    def mark_running(self, pid: int) -> None:
        with self._lock:
            if self._state != WorkerState.NOT_STARTED:
                raise RuntimeError(
                    f"Worker {self.partition}: cannot start from state {self._state.name}"
                )
            self._state = WorkerState.RUNNING
            self._pid = pid
            self._cpu_usage = 1.0

    def update_progress(self, progress: float, *, parsed_at: Optional[float] = None) -> None:
        """Raise progress to ``progress`` (clamped to 0-100); never lowers it."""
        progress = min(100.0, max(0.0, float(progress)))
        with self._lock:
            if progress > self._progress:
                self._progress = progress
            self._last_output_parsed = parsed_at if parsed_at is not None else time.time()

    def update_cpu(self, cpu_usage: float) -> None:
        with self._lock:
            self._cpu_usage = max(0.0, float(cpu_usage))

    def finish(self, success: bool, *, exit_code: Optional[int] = None, error: str = "") -> None:
        with self._lock:
            if self._state.is_terminal:
                raise RuntimeError(
                    f"Worker {self.partition}: already finished as {self._state.name}"
                )
            self._state = WorkerState.SUCCESS if success else WorkerState.FAILURE
            self._exit_code = exit_code
            self._error = error
            self._cpu_usage = 0.0
            if success:
                self._progress = 100.0

    def snapshot(self) -> WorkerSnapshot:
        with self._lock:
            return WorkerSnapshot(
                partition=self.partition,
                state=self._state,
                progress=self._progress,
                pid=self._pid,
                cpu_usage=self._cpu_usage,
                last_output_parsed=self._last_output_parsed,
                exit_code=self._exit_code,
                error=self._error,
                timestamp=time.perf_counter(),
            )
