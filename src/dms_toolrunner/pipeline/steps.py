# dms_toolrunner/pipeline/steps.py
"""Single, sequential external tool invocations (e.g. spectrum conversion)."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from dms_toolrunner.config import FOURTEEN_DAYS_S
from dms_toolrunner.io.console import scan_console_errors
from dms_toolrunner.pipeline.process import ToolProcess

logger = logging.getLogger(__name__)

__all__ = ["StepResult", "run_tool_step"]


@dataclass(frozen=True)
class StepResult:
    name: str
    success: bool
    exit_code: Optional[int] = None
    error: str = ""
    elapsed_s: float = 0.0
    errors: Tuple[str, ...] = ()


def run_tool_step(
        name: str,
        args: Sequence[Union[str, Path]],
        *,
        console_path: Optional[Union[str, Path]] = None,
        cwd: Optional[Union[str, Path]] = None,
        errors_to_ignore: Sequence[str] = (),
        timeout_s: float = FOURTEEN_DAYS_S,
        scan_console: bool = False,
) -> StepResult:
    """
    Run one external program to completion.

    A missing executable, a non-zero exit code, cached console errors or a
    timeout all yield ``success=False`` with a message in ``error``. With
    ``scan_console`` the console output file is also searched for
    ``Error:`` and ``Unhandled Exception`` lines after the program exits;
    any found fail the step. ``errors`` holds every error line collected.
    """
    start = time.perf_counter()
    logger.info("%s: %s", name, " ".join(str(a) for a in args))

    try:
        proc = ToolProcess(
            args, console_path=console_path, cwd=cwd, errors_to_ignore=errors_to_ignore
        )
    except OSError as exc:
        msg = f"{name}: could not start {args[0]}: {exc}"
        logger.error(msg)
        return StepResult(name, False, error=msg, elapsed_s=time.perf_counter() - start)

    code = proc.wait(timeout=timeout_s)
    if code is None:
        proc.abort()
        msg = f"{name}: timed out after {timeout_s:.0f} s"
        logger.error(msg)
        return StepResult(name, False, error=msg, elapsed_s=time.perf_counter() - start)

    elapsed = time.perf_counter() - start
    errors = list(proc.cached_errors)
    if scan_console:
        errors += scan_console_errors(console_path, errors_to_ignore)

    if errors:
        msg = f"{name}: console error: {errors[0]}"
    elif code != 0:
        msg = f"{name}: exited with code {code}"
    else:
        logger.info("%s: completed in %.1f s", name, elapsed)
        return StepResult(name, True, exit_code=code, elapsed_s=elapsed)

    for line in errors[1:]:
        logger.error("... %s", line)
    logger.error(msg)
    return StepResult(
        name, False, exit_code=code, error=msg, elapsed_s=elapsed, errors=tuple(errors)
    )
