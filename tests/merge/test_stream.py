# tests/merge/test_stream.py
from __future__ import annotations

import io
import logging

import pytest

from dms_toolrunner.merge.stream import (
    MalformedKeyError,
    MalformedKeyPolicy,
    merge_streams,
    merge_to_file,
)


class ListSource:
    """In-memory merge source; a key of None marks a malformed block."""

    def __init__(self, name, blocks):
        self.name = name
        self._blocks = list(blocks)
        self._i = 0
        self.advances = 0

    def current_key(self):
        if self._i >= len(self._blocks):
            return None
        key = self._blocks[self._i][0]
        if key is None:
            raise MalformedKeyError(f"{self.name}: block {self._i} has no key")
        return key

    def current_block(self):
        return list(self._blocks[self._i][1])

    def advance(self):
        self.advances += 1
        self._i += 1
        return self._i < len(self._blocks)


def keyed(name, keys):
    return ListSource(name, [(k, [f"{name}:{k}"]) for k in keys])


def merged_lines(sources, **kw):
    out = io.StringIO()
    stats = merge_streams(sources, out, **kw)
    return out.getvalue().splitlines(), stats


def test_single_source_is_reproduced():
    src = ListSource("a", [(1.02, ["x", "y"]), (2.03, ["z"])])
    lines, stats = merged_lines([src])
    assert lines == ["x", "y", "", "z", ""]
    assert stats.blocks_written == 2
    assert stats.sources == 1


def test_three_sources_merge_in_key_order():
    a = keyed("a", [1.02, 3.02, 5.04])
    b = keyed("b", [2.02, 3.02])
    c = keyed("c", [4.00])

    lines, stats = merged_lines([a, b, c], separator=None)

    assert lines == ["a:1.02", "b:2.02", "a:3.02", "b:3.02", "c:4.0", "a:5.04"]
    assert stats.blocks_written == 6
    assert stats.malformed_sources == []


def test_ties_keep_source_order():
    a = keyed("a", [7.02])
    b = keyed("b", [7.02])
    c = keyed("c", [7.02])
    lines, _ = merged_lines([c, a, b], separator=None)
    assert lines == ["c:7.02", "a:7.02", "b:7.02"]


def test_ties_follow_order_sources_reach_the_key():
    a = keyed("a", [1.0, 5.0])
    b = keyed("b", [5.0])
    lines, _ = merged_lines([a, b], separator=None)
    assert lines == ["a:1.0", "b:5.0", "a:5.0"]


def test_output_keys_non_decreasing():
    sources = [
        keyed("a", [1.0, 4.0, 9.0, 9.0]),
        keyed("b", [2.0, 2.0, 8.0]),
        keyed("c", [0.5, 10.0]),
        keyed("d", []),
    ]
    lines, _ = merged_lines(sources, separator=None)
    keys = [float(l.split(":")[1]) for l in lines]
    assert keys == sorted(keys)
    assert len(keys) == 9


def test_empty_sources_produce_empty_output():
    lines, stats = merged_lines([keyed("a", []), keyed("b", [])])
    assert lines == []
    assert stats.blocks_written == 0


def test_malformed_key_appends_remaining_blocks(caplog):
    bad = ListSource("bad", [(1.0, ["b1"]), (None, ["junk"]), (2.0, ["b2"])])
    good = keyed("good", [1.5, 3.0])

    with caplog.at_level(logging.WARNING):
        lines, stats = merged_lines([bad, good], separator=None)

    # Ordered part first, then the bad source's remainder verbatim
    assert lines == ["b1", "good:1.5", "good:3.0", "junk", "b2"]
    assert stats.blocks_written == 3
    assert stats.blocks_appended == 2
    assert stats.malformed_sources == ["bad"]
    assert "Malformed key in bad" in caplog.text


def test_malformed_first_block_appends_whole_source():
    bad = ListSource("bad", [(None, ["preamble"]), (1.0, ["b1"])])
    good = keyed("good", [0.5])
    lines, stats = merged_lines([bad, good], separator=None)
    assert lines == ["good:0.5", "preamble", "b1"]
    assert stats.blocks_appended == 2


def test_malformed_key_raise_policy():
    bad = ListSource("bad", [(1.0, ["b1"]), (None, ["junk"])])
    with pytest.raises(MalformedKeyError):
        merged_lines([bad], policy=MalformedKeyPolicy.RAISE)


def test_merge_to_file_writes_separator_lines(tmp_path):
    out = tmp_path / "combined.txt"
    stats = merge_to_file([keyed("a", [1.0]), keyed("b", [0.5])], out)
    assert out.read_text() == "b:0.5\n\na:1.0\n\n"
    assert stats.blocks_written == 2


def test_merge_to_file_removes_partial_output_on_error(tmp_path):
    out = tmp_path / "combined.txt"
    bad = ListSource("bad", [(1.0, ["b1"]), (None, ["junk"])])
    with pytest.raises(MalformedKeyError):
        merge_to_file([bad], out, policy=MalformedKeyPolicy.RAISE)
    assert not out.exists()


def test_each_source_advanced_once_per_block():
    a = keyed("a", [1.0, 2.0, 3.0])
    merged_lines([a])
    assert a.advances == 3
