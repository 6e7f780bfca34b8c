# tests/merge/test_modplus_reader.py
from __future__ import annotations

import pytest

from dms_toolrunner.merge.modplus_reader import ModPlusResultsReader
from dms_toolrunner.merge.stream import MalformedKeyError, merge_to_file

DATASET = "QC_Shew_16_01"


def header(part, index, scan_col, mz, charge, scan, trailer=""):
    return (
        f">>E:\\DMS_WorkDir3\\{DATASET}_Part{part}.mgf\t{index}\t{scan_col}\t{mz}\t{charge}\t"
        f"{DATASET}.{scan}.{scan}.{trailer}"
    )


def write(tmp_path, name, lines):
    p = tmp_path / name
    p.write_text("\n".join(lines) + "\n")
    return p


def read_all(reader):
    blocks = []
    while True:
        key = reader.current_key()
        if key is None:
            break
        blocks.append((key, reader.current_block()))
        reader.advance()
    return blocks


def test_keys_and_blocks(tmp_path):
    path = write(tmp_path, "r1_modp.txt", [
        header(1, 51, 0, 1481.7382, 3, 592),
        "1\tPEPTIDE\t0.9",
        "",
        header(1, 52, 0, 841.5054, 2, 1000, "2"),
        "1\tANOTHER\t0.8",
        "2\tTHIRD\t0.1",
    ])
    with ModPlusResultsReader(DATASET, path) as reader:
        blocks = read_all(reader)

    assert [k for k, _ in blocks] == [pytest.approx(592.03), pytest.approx(1000.02)]
    assert blocks[1][1][1:] == ["1\tANOTHER\t0.8", "2\tTHIRD\t0.1"]


def test_header_is_normalised(tmp_path):
    path = write(tmp_path, "r_modp.txt", [header(3, 51, 0, 1481.7382, 3, 592), "x"])
    with ModPlusResultsReader(DATASET, path) as reader:
        head = reader.current_block()[0]

    cols = head.split("\t")
    assert cols[0] == f">>E:\\DMS_WorkDir\\{DATASET}.mgf"
    assert cols[1] == "51"
    assert cols[2] == "592"
    assert cols[5] == f"{DATASET}.592.592."


def test_nonzero_scan_column_is_kept(tmp_path):
    path = write(tmp_path, "r_modp.txt", [header(1, 5, 777, 500.0, 2, 592)])
    with ModPlusResultsReader(DATASET, path) as reader:
        assert reader.current_block()[0].split("\t")[2] == "777"


def test_dataset_match_is_case_insensitive(tmp_path):
    line = header(1, 5, 0, 500.0, 2, 10).replace(f"\t{DATASET}.", f"\t{DATASET.lower()}.")
    path = write(tmp_path, "r_modp.txt", [line])
    with ModPlusResultsReader(DATASET, path) as reader:
        assert reader.current_key() == pytest.approx(10.02)


def test_header_without_key_is_malformed(tmp_path):
    path = write(tmp_path, "r_modp.txt", [">>E:\\x.mgf\t1\t0\t500.0\t2\tOtherDataset.10.10."])
    with ModPlusResultsReader(DATASET, path) as reader:
        with pytest.raises(MalformedKeyError):
            reader.current_key()


def test_text_before_first_header_is_malformed_block(tmp_path):
    path = write(tmp_path, "r_modp.txt", ["garbage line", header(1, 1, 0, 500.0, 2, 10)])
    with ModPlusResultsReader(DATASET, path) as reader:
        with pytest.raises(MalformedKeyError):
            reader.current_key()
        assert reader.current_block() == ["garbage line"]
        assert reader.advance()
        assert reader.current_key() == pytest.approx(10.02)
        assert not reader.advance()
        assert reader.current_key() is None


def test_empty_file_is_exhausted(tmp_path):
    path = write(tmp_path, "r_modp.txt", [""])
    with ModPlusResultsReader(DATASET, path) as reader:
        assert reader.current_key() is None


def test_merging_thread_results(tmp_path):
    r1 = write(tmp_path, f"{DATASET}_Part1_modp.txt", [
        header(1, 1, 0, 500.0, 2, 100), "hit-a",
        header(1, 2, 0, 500.0, 3, 300), "hit-c",
    ])
    r2 = write(tmp_path, f"{DATASET}_Part2_modp.txt", [
        header(2, 1, 0, 500.0, 2, 200), "hit-b",
        header(2, 2, 0, 500.0, 2, 300), "hit-d",
    ])
    out = tmp_path / f"{DATASET}_modp.txt"

    with ModPlusResultsReader(DATASET, r1) as a, ModPlusResultsReader(DATASET, r2) as b:
        merge_to_file([a, b], out)

    lines = out.read_text().splitlines()
    hits = [l for l in lines if l.startswith("hit-")]
    # 300.02 (thread 2) sorts before 300.03 (thread 1)
    assert hits == ["hit-a", "hit-b", "hit-d", "hit-c"]
    assert lines[2] == ""
    assert all("_Part" not in l for l in lines)
