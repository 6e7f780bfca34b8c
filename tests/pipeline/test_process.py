# tests/pipeline/test_process.py
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from dms_toolrunner.parallel import WorkUnit
from dms_toolrunner.pipeline.process import ToolProcess, launch_work_unit


def test_stdout_goes_to_console_file(tmp_path):
    console = tmp_path / "out" / "console.txt"
    proc = ToolProcess([sys.executable, "-c", "print('hello')"], console_path=console)
    assert proc.wait(timeout=30) == 0
    assert console.read_text().strip() == "hello"
    assert proc.cached_errors == []


def test_stderr_lines_are_cached(tmp_path):
    code = "import sys; sys.stderr.write('first\\n\\nsecond\\n')"
    proc = ToolProcess([sys.executable, "-c", code])
    assert proc.wait(timeout=30) == 0
    assert proc.cached_errors == ["first", "second"]


def test_ignored_errors_are_dropped():
    code = "import sys; sys.stderr.write('warning: harmless thing\\nreal problem\\n')"
    proc = ToolProcess([sys.executable, "-c", code], errors_to_ignore=["harmless"])
    proc.wait(timeout=30)
    assert proc.cached_errors == ["real problem"]


def test_wait_times_out_then_abort_kills():
    proc = ToolProcess([sys.executable, "-c", "import time; time.sleep(30)"])
    assert proc.wait(timeout=0.1) is None
    proc.abort()
    code = proc.wait(timeout=1)
    assert code is not None and code != 0


def test_missing_executable_raises_oserror(tmp_path):
    console = tmp_path / "console.txt"
    with pytest.raises(OSError):
        ToolProcess([str(tmp_path / "missing.exe")], console_path=console)


def test_launch_work_unit_uses_unit_paths(tmp_path):
    unit = WorkUnit(
        partition=2,
        input_path=tmp_path / "in",
        output_path=tmp_path / "out",
        args=(sys.executable, "-c", "import os; print(os.getcwd())"),
        console_path=tmp_path / "console_2.txt",
        cwd=tmp_path,
    )
    proc = launch_work_unit(unit)
    assert proc.wait(timeout=30) == 0
    assert Path(unit.console_path.read_text().strip()).resolve() == tmp_path.resolve()
