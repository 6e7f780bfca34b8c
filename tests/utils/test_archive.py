# tests/utils/test_archive.py
import zipfile

import pytest

from dms_toolrunner.utils.archive import zip_directory, zip_files


def test_zip_stores_files_flat(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    a = tmp_path / "a.txt"
    b = sub / "b.txt"
    a.write_text("alpha")
    b.write_text("beta")

    out = zip_files(tmp_path / "out.zip", [a, b])

    with zipfile.ZipFile(out) as zf:
        assert sorted(zf.namelist()) == ["a.txt", "b.txt"]
        assert zf.read("b.txt") == b"beta"
    assert a.exists() and b.exists()


def test_missing_files_are_skipped(tmp_path, caplog):
    a = tmp_path / "a.txt"
    a.write_text("alpha")
    out = zip_files(tmp_path / "out.zip", [a, tmp_path / "gone.txt"])
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist() == ["a.txt"]
    assert "gone.txt" in caplog.text


def test_delete_sources(tmp_path):
    a = tmp_path / "a.txt"
    a.write_text("alpha")
    zip_files(tmp_path / "out.zip", [a], delete_sources=True)
    assert not a.exists()


def test_zip_directory_keeps_relative_paths(tmp_path):
    report = tmp_path / "IDPicker"
    (report / "proteins").mkdir(parents=True)
    (report / "index.html").write_text("<html/>")
    (report / "proteins" / "p1.html").write_text("<p/>")

    zip_path = zip_directory(tmp_path / "IDPicker_HTML_Results.zip", report)

    with zipfile.ZipFile(zip_path) as zf:
        assert sorted(zf.namelist()) == ["index.html", "proteins/p1.html"]
    assert (report / "index.html").exists()


def test_zip_directory_requires_directory(tmp_path):
    with pytest.raises(NotADirectoryError):
        zip_directory(tmp_path / "out.zip", tmp_path / "missing")
