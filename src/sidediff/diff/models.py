"""Structured diff model shared by the parser, alignment engine and viewer.

All types are immutable. A DiffSet is created once per fetch and replaced wholesale on
refresh; nothing downstream ever edits one in place.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

_generations = itertools.count(1)


class LineKind(Enum):
    """Kind of a single diff line."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class ChangeKind(Enum):
    """How a file changed between the two sides."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED = "renamed"
    COPIED = "copied"
    BINARY = "binary"

    @property
    def glyph(self) -> str:
        return _GLYPHS[self]


_GLYPHS = {
    ChangeKind.ADDED: "A",
    ChangeKind.REMOVED: "D",
    ChangeKind.MODIFIED: "M",
    ChangeKind.RENAMED: "R",
    ChangeKind.COPIED: "C",
    ChangeKind.BINARY: "B",
}


class SourceKind(Enum):
    """Where a DiffSet came from."""

    WORKING_TREE = "working-tree"
    COMMIT = "commit"
    RANGE = "range"
    BRANCH = "branch"
    PULL_REQUEST = "pull-request"


@dataclass(frozen=True)
class DiffLine:
    """One line of a hunk with its line number on each side it belongs to."""

    kind: LineKind
    text: str
    old_lineno: Optional[int] = None
    new_lineno: Optional[int] = None

    @property
    def on_old_side(self) -> bool:
        return self.kind is not LineKind.ADDED

    @property
    def on_new_side(self) -> bool:
        return self.kind is not LineKind.REMOVED


@dataclass(frozen=True)
class Hunk:
    """A contiguous block of change with its old/new ranges."""

    old_start: int
    old_length: int
    new_start: int
    new_length: int
    lines: tuple[DiffLine, ...] = ()
    heading: str = ""

    def old_lines(self) -> list[DiffLine]:
        return [line for line in self.lines if line.on_old_side]

    def new_lines(self) -> list[DiffLine]:
        return [line for line in self.lines if line.on_new_side]


@dataclass(frozen=True)
class FileDiff:
    """All hunks of one changed file.

    ``error`` is set for degraded entries: sections the parser could not read. They
    keep their place in the file list but carry no hunks.
    """

    path: str
    change_kind: ChangeKind = ChangeKind.MODIFIED
    hunks: tuple[Hunk, ...] = ()
    old_path: Optional[str] = None
    remote_viewed: Optional[bool] = None
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    @property
    def is_binary(self) -> bool:
        return self.change_kind is ChangeKind.BINARY

    @property
    def identity(self) -> tuple[Optional[str], str]:
        return (self.old_path, self.path)

    @property
    def display_path(self) -> str:
        if self.old_path and self.old_path != self.path:
            return f"{self.old_path} -> {self.path}"
        return self.path

    @property
    def added_count(self) -> int:
        return sum(1 for h in self.hunks for line in h.lines if line.kind is LineKind.ADDED)

    @property
    def removed_count(self) -> int:
        return sum(1 for h in self.hunks for line in h.lines if line.kind is LineKind.REMOVED)

    def same_content(self, other: FileDiff) -> bool:
        """True when both entries describe the same change."""
        return (
            self.change_kind is other.change_kind
            and self.old_path == other.old_path
            and self.hunks == other.hunks
            and self.error == other.error
        )


@dataclass(frozen=True)
class SourceInfo:
    """Describes the source a DiffSet was fetched from, for headers and footers."""

    kind: SourceKind
    target: str = ""
    branch: Optional[str] = None
    pr_number: Optional[int] = None
    pr_title: Optional[str] = None
    base_label: Optional[str] = None
    head_label: Optional[str] = None


@dataclass(frozen=True)
class DiffSet:
    """Ordered changed files from one fetch."""

    files: tuple[FileDiff, ...] = ()
    source: SourceInfo = field(default_factory=lambda: SourceInfo(SourceKind.WORKING_TREE))
    generation: int = field(default_factory=lambda: next(_generations), compare=False)

    def __len__(self) -> int:
        return len(self.files)

    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def index_of(self, path: str) -> int:
        """Index of the file with ``path``, or -1."""
        for i, f in enumerate(self.files):
            if f.path == path:
                return i
        return -1

    def get(self, path: str) -> Optional[FileDiff]:
        idx = self.index_of(path)
        return self.files[idx] if idx >= 0 else None
