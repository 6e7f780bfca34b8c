# dms_toolrunner/plugins/result.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dms_toolrunner.parallel.types import PoolResult
from dms_toolrunner.pipeline.steps import StepResult

__all__ = ["ToolRunResult"]


@dataclass
class ToolRunResult:
    """Outcome of one plugin job, as reported to the caller and the CLI."""

    tool: str
    success: bool = False
    message: str = ""
    progress: float = 0.0
    tool_version: str = ""
    output_files: List[Path] = field(default_factory=list)
    pool: Optional[PoolResult] = None
    steps: List[StepResult] = field(default_factory=list)
    elapsed_s: float = 0.0
