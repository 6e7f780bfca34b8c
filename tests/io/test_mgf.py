# tests/io/test_mgf.py
from __future__ import annotations

import io

import pytest

from dms_toolrunner.io.mgf import MgfSplitError, iter_mgf_spectra, split_mgf_file


def spectrum(scan, title=True, end=True):
    lines = ["BEGIN IONS"]
    if title:
        lines.append(f"TITLE=Sample_01.{scan}.{scan}.2")
    lines += ["PEPMASS=500.25", "CHARGE=2+", "100.1 20", "200.2 40"]
    if end:
        lines.append("END IONS")
    return "\n".join(lines) + "\n"


@pytest.fixture
def mgf_file(tmp_path):
    p = tmp_path / "Sample_01.mgf"
    p.write_text("".join(spectrum(s) for s in (100, 101, 102, 103, 104)))
    return p


def test_iter_spectra_reads_scans():
    fh = io.StringIO(spectrum(7) + "\n" + spectrum(9))
    spectra = list(iter_mgf_spectra(fh))
    assert [scan for _, scan in spectra] == [7, 9]
    assert spectra[0][0][0] == "BEGIN IONS"
    assert spectra[0][0][-1] == "END IONS"


def test_iter_spectra_prefers_scans_field():
    text = "BEGIN IONS\nTITLE=something odd\nSCANS=321\nEND IONS\n"
    (_, scan), = list(iter_mgf_spectra(io.StringIO(text)))
    assert scan == 321


def test_missing_end_ions_is_closed():
    fh = io.StringIO(spectrum(1, end=False) + spectrum(2) + spectrum(3, end=False))
    spectra = list(iter_mgf_spectra(fh))
    assert len(spectra) == 3
    assert all(lines[-1] == "END IONS" for lines, _ in spectra)
    assert sum(lines.count("END IONS") for lines, _ in spectra) == 3


def test_split_round_robin(mgf_file, tmp_path):
    parts = split_mgf_file(mgf_file, 2)

    assert [p.name for p in parts] == ["Sample_01_Part1.mgf", "Sample_01_Part2.mgf"]
    part1 = parts[0].read_text()
    part2 = parts[1].read_text()
    assert part1.count("BEGIN IONS") == 3
    assert part2.count("BEGIN IONS") == 2
    assert "Sample_01.101.101" in part2
    assert "Sample_01.104.104" in part1


def test_scan_map_written(mgf_file, tmp_path):
    split_mgf_file(mgf_file, 2)
    rows = (tmp_path / "Sample_01_mgfScanMap.txt").read_text().splitlines()
    assert rows[0] == "ScanNumber\tScanIndexOriginal\tMgfFilePart\tScanIndex"
    assert rows[1:] == [
        "100\t1\t1\t1",
        "101\t2\t2\t1",
        "102\t3\t1\t2",
        "103\t4\t2\t2",
        "104\t5\t1\t3",
    ]


def test_split_count_minimum_is_two(mgf_file):
    assert len(split_mgf_file(mgf_file, 1)) == 2


def test_empty_parts_are_deleted(tmp_path):
    p = tmp_path / "Tiny.mgf"
    p.write_text(spectrum(1) + spectrum(2))
    parts = split_mgf_file(p, 4)
    assert [x.name for x in parts] == ["Tiny_Part1.mgf", "Tiny_Part2.mgf"]
    assert not (tmp_path / "Tiny_Part3.mgf").exists()
    assert not (tmp_path / "Tiny_Part4.mgf").exists()


def test_custom_suffix(mgf_file):
    parts = split_mgf_file(mgf_file, 2, suffix="_Chunk")
    assert parts[0].name == "Sample_01_Chunk1.mgf"


def test_missing_file_raises(tmp_path):
    with pytest.raises(MgfSplitError, match="not found"):
        split_mgf_file(tmp_path / "nope.mgf", 2)


def test_empty_file_raises(tmp_path):
    p = tmp_path / "empty.mgf"
    p.write_text("")
    with pytest.raises(MgfSplitError, match="empty"):
        split_mgf_file(p, 2)


def test_no_spectra_raises_and_cleans_up(tmp_path):
    p = tmp_path / "junk.mgf"
    p.write_text("not an mgf file\n")
    with pytest.raises(MgfSplitError, match="BEGIN IONS"):
        split_mgf_file(p, 3)
    assert not list(tmp_path.glob("junk_Part*.mgf"))
