"""Tests for side-by-side alignment."""

import pytest
from conftest import MODIFIED_DIFF, make_diffset, make_file, make_hunk

from sidediff.diff.alignment import (
    PLACEHOLDER,
    AlignedRow,
    AlignmentCache,
    align_file,
    align_hunk,
)
from sidediff.diff.models import ChangeKind, DiffLine, FileDiff, Hunk, LineKind
from sidediff.diff.parser import parse_unified_diff
from sidediff.errors import ParseError


def _numbers(rows, attr):
    return [getattr(r, attr) for r in rows if getattr(r, attr) is not None]


class TestAlignHunk:
    """Pairing removed and added runs."""

    def test_two_removed_three_added(self):
        """Context, 2 removed, 3 added, context gives 5 rows with one placeholder."""
        hunk = make_hunk([" a", "-b", "-c", "+B", "+C", "+D", " e"])
        rows = align_hunk(hunk)
        assert len(rows) == 5
        assert rows[0].old.text == rows[0].new.text == "a"
        assert (rows[1].old.text, rows[1].new.text) == ("b", "B")
        assert (rows[2].old.text, rows[2].new.text) == ("c", "C")
        assert rows[3].old is PLACEHOLDER
        assert rows[3].new.text == "D"
        assert rows[4].old.text == "e"

    def test_more_removed_than_added(self):
        rows = align_hunk(make_hunk(["-x", "-y", "-z", "+X"]))
        assert len(rows) == 3
        assert [r.new is PLACEHOLDER for r in rows] == [False, True, True]

    def test_row_count_is_context_plus_longest_runs(self):
        """Interleaved change blocks are aligned block by block."""
        lines = [" c1", "-r1", "+a1", "+a2", "-r2", "-r3", " c2", "+a3"]
        rows = align_hunk(make_hunk(lines))
        # c1, max(1, 2), max(2, 0), c2, max(0, 1)
        assert len(rows) == 1 + 2 + 2 + 1 + 1

    def test_every_row_has_a_real_cell(self):
        lines = ["-a", "+b", "+c", " d", "-e", "-f", "+g"]
        for row in align_hunk(make_hunk(lines)):
            assert not (row.old is PLACEHOLDER and row.new is PLACEHOLDER)

    def test_line_numbers_strictly_increase_per_side(self):
        lines = [" a", "-b", "-c", "+B", " d", "+E", "+F", "-g", " h"]
        rows = align_hunk(make_hunk(lines, old_start=10, new_start=20))
        olds = _numbers(rows, "old_lineno")
        news = _numbers(rows, "new_lineno")
        assert olds == sorted(olds) and len(set(olds)) == len(olds)
        assert news == sorted(news) and len(set(news)) == len(news)
        assert olds[0] == 10 and news[0] == 20

    def test_context_rows_share_the_line(self):
        (row,) = align_hunk(make_hunk([" same"], old_start=3, new_start=7))
        assert (row.old_lineno, row.new_lineno) == (3, 7)
        assert not row.is_change

    def test_empty_hunk_raises(self):
        with pytest.raises(ParseError):
            align_hunk(Hunk(1, 0, 1, 0))

    def test_alignment_is_deterministic(self):
        hunk = make_hunk([" a", "-b", "+c", "+d"])
        assert align_hunk(hunk) == align_hunk(hunk)


class TestAlignedRow:
    def test_double_placeholder_is_rejected(self):
        with pytest.raises(ValueError):
            AlignedRow(PLACEHOLDER, PLACEHOLDER)

    def test_placeholder_has_no_line_number(self):
        row = AlignedRow(PLACEHOLDER, DiffLine(LineKind.ADDED, "x", None, 4))
        assert row.old_lineno is None
        assert row.new_lineno == 4
        assert row.is_change


class TestAlignFile:
    def test_hunk_starts(self):
        (fd,) = parse_unified_diff(MODIFIED_DIFF)
        aligned = align_file(fd)
        # First hunk: import os, sys pair, json alone, blank, def main
        assert aligned.hunk_starts == (0, 5)
        assert len(aligned) == 5 + 2
        assert aligned.hunk_count == 2

    def test_hunk_at(self):
        (fd,) = parse_unified_diff(MODIFIED_DIFF)
        aligned = align_file(fd)
        assert aligned.hunk_at(0) == 0
        assert aligned.hunk_at(4) == 0
        assert aligned.hunk_at(5) == 1
        assert aligned.hunk_at(6) == 1

    def test_binary_and_degraded_files_align_to_nothing(self):
        binary = FileDiff("logo.png", change_kind=ChangeKind.BINARY)
        degraded = FileDiff("bad.txt", error="malformed hunk header")
        assert len(align_file(binary)) == 0
        assert len(align_file(degraded)) == 0
        assert align_file(binary).hunk_at(3) == 0


class TestAlignmentCache:
    def test_memoizes_per_generation(self):
        diffset = make_diffset(make_file("a.txt", make_hunk(["-a", "+b"])))
        cache = AlignmentCache()
        first = cache.get(diffset, 0)
        assert cache.get(diffset, 0) is first
        assert len(cache) == 1

    def test_new_generation_drops_entries(self):
        fd = make_file("a.txt", make_hunk(["-a", "+b"]))
        cache = AlignmentCache()
        first = cache.get(make_diffset(fd), 0)
        second = cache.get(make_diffset(fd), 0)
        assert second is not first
        assert second == first
        assert len(cache) == 1

    def test_out_of_range_index(self):
        cache = AlignmentCache()
        assert len(cache.get(make_diffset(), 0)) == 0
        assert len(cache.get(make_diffset(), -1)) == 0

    def test_invalidate(self):
        diffset = make_diffset(make_file("a.txt", make_hunk(["-a", "+b"])))
        cache = AlignmentCache()
        first = cache.get(diffset, 0)
        cache.invalidate()
        assert len(cache) == 0
        assert cache.get(diffset, 0) is not first
