# parallel/types.py
"""Shared types for the external-process worker pool."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Dict, Optional, Tuple

__all__ = ["WorkUnit", "WorkerState", "WorkerSnapshot", "PoolResult"]


@dataclass(frozen=True)
class WorkUnit:
    """One partition of input data assigned to one worker."""

    partition: int
    """Partition index, 1..K"""

    input_path: Path
    """Input file for this partition"""

    output_path: Path
    """Result file the external tool writes for this partition"""

    args: Tuple[str, ...]
    """Full command line, program first"""

    console_path: Optional[Path] = None
    """File receiving the tool's console output (side channel)"""

    cwd: Optional[Path] = None
    """Working directory for the process"""

    def __post_init__(self) -> None:
        if self.partition < 1:
            raise ValueError(f"partition must be >= 1, got {self.partition}")
        if not self.args:
            raise ValueError("args cannot be empty")

    @property
    def label(self) -> str:
        return f"thread {self.partition}"


class WorkerState(IntEnum):
    """Lifecycle of one worker; Success and Failure are terminal."""

    NOT_STARTED = 0
    RUNNING = 1
    SUCCESS = 2
    FAILURE = 3

    @property
    def is_terminal(self) -> bool:
        return self >= WorkerState.SUCCESS


@dataclass(frozen=True)
class WorkerSnapshot:
    """Immutable copy of a WorkerStatus at a point in time."""

    partition: int
    state: WorkerState
    progress: float
    pid: int
    cpu_usage: float
    last_output_parsed: Optional[float]
    exit_code: Optional[int]
    error: str
    timestamp: float


@dataclass
class PoolResult:
    """Outcome of one WorkerPool.run() call."""

    success: bool
    first_error: str = ""
    overall_progress: float = 0.0
    snapshots: Dict[int, WorkerSnapshot] = field(default_factory=dict)
    output_paths: Dict[int, Path] = field(default_factory=dict)
    elapsed_s: float = 0.0
    timed_out: bool = False

    @property
    def failed_partitions(self) -> list[int]:
        return sorted(
            p for p, snap in self.snapshots.items()
            if snap.state != WorkerState.SUCCESS
        )
