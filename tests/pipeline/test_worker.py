# tests/pipeline/test_worker.py
from __future__ import annotations

import os
import queue
import threading
import time
from pathlib import Path

import pytest

from dms_toolrunner.io.console import ModPlusConsoleParser
from dms_toolrunner.parallel import WorkerState, WorkerStatus, WorkUnit
from dms_toolrunner.pipeline.worker import run_work_unit


# --- Test doubles -------------------------------------------------------------

class FakeProc:
    """ProcessHandle stand-in that 'runs' for a number of wait() calls."""

    def __init__(self, code=0, runs=1, errors=()):
        self.pid = os.getpid()
        self.cached_errors = list(errors)
        self.aborted = False
        self._code = code
        self._remaining = runs

    def wait(self, timeout=None):
        if self.aborted:
            return -9
        if self._remaining > 0:
            self._remaining -= 1
            time.sleep(min(timeout or 0.0, 0.01))
            return None
        return self._code

    def abort(self):
        self.aborted = True


def make_unit(tmp_path: Path, n: int = 1, console: bool = False) -> WorkUnit:
    return WorkUnit(
        partition=n,
        input_path=tmp_path / f"in_{n}.mgf",
        output_path=tmp_path / f"out_{n}.txt",
        args=("tool", str(n)),
        console_path=tmp_path / f"console_{n}.txt" if console else None,
    )


@pytest.fixture
def channel():
    return queue.Queue(), threading.Event()


def drain(q):
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


# --- Tests --------------------------------------------------------------------

def test_success_sets_success_and_reports_nothing(tmp_path, channel):
    errors, abort = channel
    status = WorkerStatus(1)
    proc = FakeProc(code=0, runs=3)

    run_work_unit(make_unit(tmp_path), status, lambda u: proc, errors, abort)

    snap = status.snapshot()
    assert snap.state == WorkerState.SUCCESS
    assert snap.progress == 100.0
    assert snap.exit_code == 0
    assert drain(errors) == []
    assert not abort.is_set()


def test_nonzero_exit_is_failure_naming_thread(tmp_path, channel):
    errors, abort = channel
    status = WorkerStatus(2)

    run_work_unit(make_unit(tmp_path, 2), status, lambda u: FakeProc(code=5), errors, abort)

    assert status.state == WorkerState.FAILURE
    (_, partition, msg), = drain(errors)
    assert partition == 2
    assert msg == "thread 2: exited with code 5"


def test_console_errors_fail_even_with_zero_exit(tmp_path, channel):
    errors, abort = channel
    status = WorkerStatus(1)
    proc = FakeProc(code=0, errors=["java.lang.OutOfMemoryError"])

    run_work_unit(make_unit(tmp_path), status, lambda u: proc, errors, abort)

    assert status.state == WorkerState.FAILURE
    (_, _, msg), = drain(errors)
    assert msg.startswith("Console error for thread 1:")
    assert "OutOfMemoryError" in msg


def test_launch_failure_raises_abort(tmp_path, channel):
    errors, abort = channel
    status = WorkerStatus(1)

    def launcher(unit):
        raise FileNotFoundError("no such file: tool")

    run_work_unit(make_unit(tmp_path), status, launcher, errors, abort)

    assert status.state == WorkerState.FAILURE
    assert abort.is_set()
    (_, _, msg), = drain(errors)
    assert "thread 1" in msg and "could not start" in msg


def test_abort_before_start_skips_launch(tmp_path, channel):
    errors, abort = channel
    abort.set()
    status = WorkerStatus(1)
    calls = []

    run_work_unit(make_unit(tmp_path), status, lambda u: calls.append(u), errors, abort)

    assert calls == []
    assert status.state == WorkerState.FAILURE
    assert "aborted" in status.snapshot().error


def test_abort_while_running_kills_process(tmp_path, channel):
    errors, abort = channel
    status = WorkerStatus(1)
    proc = FakeProc(runs=10_000)

    t = threading.Thread(
        target=run_work_unit,
        args=(make_unit(tmp_path), status, lambda u: proc, errors, abort),
    )
    t.start()
    time.sleep(0.1)
    abort.set()
    t.join(timeout=5)

    assert not t.is_alive()
    assert proc.aborted
    assert status.state == WorkerState.FAILURE
    (_, _, msg), = drain(errors)
    assert msg == "thread 1: aborted"


def test_progress_parsed_from_console_file(tmp_path, channel):
    errors, abort = channel
    unit = make_unit(tmp_path, console=True)
    unit.console_path.write_text("MODPlus | 1/4\n")
    status = WorkerStatus(1)

    run_work_unit(
        unit, status, lambda u: FakeProc(code=1, runs=2), errors, abort,
        parser=ModPlusConsoleParser(), status_interval_s=0.001,
    )

    snap = status.snapshot()
    assert snap.state == WorkerState.FAILURE
    assert snap.progress == 25.0
    assert snap.last_output_parsed is not None


def test_unexpected_exception_becomes_failure(tmp_path, channel, caplog):
    errors, abort = channel
    status = WorkerStatus(1)

    class Exploding(FakeProc):
        def wait(self, timeout=None):
            raise RuntimeError("kaboom")

    run_work_unit(make_unit(tmp_path), status, lambda u: Exploding(), errors, abort)

    assert status.state == WorkerState.FAILURE
    (_, _, msg), = drain(errors)
    assert msg == "thread 1: kaboom"
    assert "unexpected error" in caplog.text
