"""Work units and worker status shared by the pool and its workers."""

from .status import WorkerStatus
from .types import PoolResult, WorkerSnapshot, WorkerState, WorkUnit

__all__ = [
    "WorkUnit",
    "WorkerState",
    "WorkerSnapshot",
    "WorkerStatus",
    "PoolResult",
]
