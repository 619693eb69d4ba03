"""Side-by-side alignment of parsed hunks.

Each hunk becomes a run of :class:`AlignedRow`. Context lines sit on both sides; a run
of removed lines followed by a run of added lines is paired index by index, and the
longer run's surplus is matched against :data:`PLACEHOLDER` cells. Placeholders are
blank: they carry no line number, no text and no cursor position, so both panes keep
their line numbers increasing while staying vertically in step.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Union

from sidediff.errors import ParseError

from .models import DiffLine, DiffSet, FileDiff, Hunk, LineKind


class _Placeholder:
    """Empty, non-selectable cell."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PLACEHOLDER"

    def __bool__(self) -> bool:
        return False


PLACEHOLDER = _Placeholder()

Cell = Union[DiffLine, _Placeholder]


@dataclass(frozen=True)
class AlignedRow:
    """One rendered row: an old-side cell and a new-side cell."""

    old: Cell
    new: Cell
    hunk_index: int = 0

    def __post_init__(self):
        if self.old is PLACEHOLDER and self.new is PLACEHOLDER:
            raise ValueError("an aligned row needs at least one real cell")

    @property
    def old_lineno(self) -> int | None:
        return self.old.old_lineno if isinstance(self.old, DiffLine) else None

    @property
    def new_lineno(self) -> int | None:
        return self.new.new_lineno if isinstance(self.new, DiffLine) else None

    @property
    def is_change(self) -> bool:
        return not (isinstance(self.old, DiffLine) and self.old.kind is LineKind.CONTEXT)


@dataclass(frozen=True)
class AlignedFile:
    """Aligned rows of a whole file plus the first row index of every hunk."""

    rows: tuple[AlignedRow, ...] = ()
    hunk_starts: tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def hunk_count(self) -> int:
        return len(self.hunk_starts)

    def hunk_at(self, row: int) -> int:
        """Index of the hunk containing ``row`` (0 for an empty file)."""
        if not self.hunk_starts:
            return 0
        return max(0, bisect.bisect_right(self.hunk_starts, row) - 1)


def align_hunk(hunk: Hunk, hunk_index: int = 0) -> list[AlignedRow]:
    """Align one hunk's lines into rows."""
    if not hunk.lines:
        raise ParseError(f"hunk @@ -{hunk.old_start},{hunk.old_length} +{hunk.new_start},{hunk.new_length} @@ is empty")

    rows: list[AlignedRow] = []
    removed: list[DiffLine] = []
    added: list[DiffLine] = []

    def flush() -> None:
        for i in range(max(len(removed), len(added))):
            old = removed[i] if i < len(removed) else PLACEHOLDER
            new = added[i] if i < len(added) else PLACEHOLDER
            rows.append(AlignedRow(old, new, hunk_index))
        removed.clear()
        added.clear()

    for line in hunk.lines:
        if line.kind is LineKind.CONTEXT:
            flush()
            rows.append(AlignedRow(line, line, hunk_index))
        elif line.kind is LineKind.REMOVED:
            # A removal after additions starts a new change block
            if added:
                flush()
            removed.append(line)
        else:
            added.append(line)
    flush()
    return rows


def align_file(file_diff: FileDiff) -> AlignedFile:
    """Align every hunk of a file; binary and degraded files align to nothing."""
    if file_diff.is_binary or file_diff.degraded or not file_diff.hunks:
        return AlignedFile()

    rows: list[AlignedRow] = []
    starts: list[int] = []
    for index, hunk in enumerate(file_diff.hunks):
        starts.append(len(rows))
        rows.extend(align_hunk(hunk, index))
    return AlignedFile(rows=tuple(rows), hunk_starts=tuple(starts))


def line_stats(file_diff: FileDiff) -> tuple[int, int]:
    """Return ``(added, removed)`` line counts."""
    return file_diff.added_count, file_diff.removed_count


class AlignmentCache:
    """Memoizes aligned files for the current DiffSet generation.

    Asking for a file of a different generation drops everything cached so far, so
    installing a refreshed DiffSet invalidates the cache wholesale. Only the UI thread
    touches the cache.
    """

    def __init__(self):
        self._generation: int | None = None
        self._entries: dict[int, AlignedFile] = {}

    def get(self, diffset: DiffSet, index: int) -> AlignedFile:
        if index < 0 or index >= len(diffset.files):
            return AlignedFile()
        if self._generation != diffset.generation:
            self._generation = diffset.generation
            self._entries = {}
        cached = self._entries.get(index)
        if cached is None:
            cached = self._entries[index] = align_file(diffset.files[index])
        return cached

    def invalidate(self) -> None:
        self._generation = None
        self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)
