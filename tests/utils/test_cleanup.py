# tests/utils/test_cleanup.py
from pathlib import Path

import pytest

from dms_toolrunner.utils import cleanup
from dms_toolrunner.utils.cleanup import safe_file_cleanup, safe_remove_files


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Disable real sleeping to keep tests fast."""
    import time as _time
    monkeypatch.setattr(_time, "sleep", lambda *_: None)


def test_returns_true_when_path_missing(tmp_path: Path):
    assert safe_file_cleanup(tmp_path / "nope") is True


def test_raises_if_target_is_directory(tmp_path: Path):
    d = tmp_path / "dir"
    d.mkdir()
    with pytest.raises(ValueError):
        safe_file_cleanup(d)


def test_removes_file(tmp_path: Path):
    f = tmp_path / "x.txt"
    f.write_text("x")
    assert safe_file_cleanup(f) is True
    assert not f.exists()


def test_retries_then_succeeds(tmp_path: Path, monkeypatch):
    f = tmp_path / "busy.txt"
    f.write_text("x")
    calls = {"n": 0}
    real_unlink = Path.unlink

    def flaky_unlink(self, *a, **kw):
        calls["n"] += 1
        if calls["n"] < 3:
            raise PermissionError("in use")
        return real_unlink(self, *a, **kw)

    monkeypatch.setattr(Path, "unlink", flaky_unlink)
    assert safe_file_cleanup(f, max_retries=5) is True
    assert calls["n"] == 3


def test_gives_up_after_max_retries(tmp_path: Path, monkeypatch, caplog):
    f = tmp_path / "stuck.txt"
    f.write_text("x")

    def always_fail(self, *a, **kw):
        raise PermissionError("locked")

    monkeypatch.setattr(Path, "unlink", always_fail)
    assert safe_file_cleanup(f, max_retries=2) is False
    assert "Failed to remove" in caplog.text


def test_safe_remove_files_reports_leftovers(tmp_path: Path, monkeypatch):
    ok = tmp_path / "a.txt"
    ok.write_text("a")
    stuck = tmp_path / "b.txt"
    stuck.write_text("b")

    real = cleanup.safe_file_cleanup

    def fake(p, **kw):
        return False if p == stuck else real(p, **kw)

    monkeypatch.setattr(cleanup, "safe_file_cleanup", fake)
    assert safe_remove_files([ok, stuck, tmp_path / "missing"]) == [stuck]
    assert not ok.exists()
