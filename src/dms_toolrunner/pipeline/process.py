# dms_toolrunner/pipeline/process.py
"""Wrapper around one external tool process."""
from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import IO, List, Optional, Sequence, Union

from dms_toolrunner.io.console import should_ignore_error
from dms_toolrunner.parallel.types import WorkUnit

logger = logging.getLogger(__name__)

__all__ = ["ToolProcess", "launch_work_unit"]


class ToolProcess:
    """
    An external program with stdout sent to a console file and stderr cached.

    Stderr is drained on a daemon thread so the child never blocks on a full
    pipe. Lines containing any of ``errors_to_ignore`` are dropped; everything
    else ends up in ``cached_errors``.
    """

    def __init__(
            self,
            args: Sequence[str],
            *,
            console_path: Optional[Union[str, Path]] = None,
            cwd: Optional[Union[str, Path]] = None,
            errors_to_ignore: Sequence[str] = (),
    ):
        self.args = [str(a) for a in args]
        self.console_path = Path(console_path) if console_path else None
        self.errors_to_ignore = tuple(errors_to_ignore)
        self._errors: List[str] = []
        self._errors_lock = threading.Lock()

        self._console: Optional[IO[bytes]] = None
        if self.console_path is not None:
            self.console_path.parent.mkdir(parents=True, exist_ok=True)
            self._console = open(self.console_path, "wb")

        try:
            self._proc = subprocess.Popen(
                self.args,
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=self._console if self._console else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError:
            self._close_console()
            raise

        self._drain = threading.Thread(
            target=self._drain_stderr, name=f"stderr-{self._proc.pid}", daemon=True
        )
        self._drain.start()

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def cached_errors(self) -> List[str]:
        with self._errors_lock:
            return list(self._errors)

    def _drain_stderr(self) -> None:
        for raw in self._proc.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            if should_ignore_error(line, self.errors_to_ignore):
                continue
            with self._errors_lock:
                self._errors.append(line)
        self._proc.stderr.close()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait up to ``timeout`` seconds; returns the exit code or None if still running."""
        try:
            code = self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        self._finish()
        return code

    def abort(self) -> None:
        """Kill the process and its console file handle."""
        if self._proc.poll() is None:
            logger.warning("Killing process %s (%s)", self.pid, Path(self.args[0]).name)
            self._proc.kill()
        self._proc.wait()
        self._finish()

    def _finish(self) -> None:
        self._drain.join(timeout=5.0)
        self._close_console()

    def _close_console(self) -> None:
        if self._console is not None and not self._console.closed:
            self._console.close()


def launch_work_unit(unit: WorkUnit, errors_to_ignore: Sequence[str] = ()) -> ToolProcess:
    """Start the external process for one WorkUnit."""
    logger.info("Worker %s: %s", unit.partition, " ".join(unit.args))
    return ToolProcess(
        unit.args,
        console_path=unit.console_path,
        cwd=unit.cwd,
        errors_to_ignore=errors_to_ignore,
    )
