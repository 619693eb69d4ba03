"""Render snapshot: everything a backend needs to draw one frame.

The snapshot is plain data derived from a :class:`ViewerState`; backends never look at
the state or the DiffSet directly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from sidediff.diff.alignment import Cell, line_stats
from sidediff.diff.models import ChangeKind, DiffLine, LineKind, SourceInfo, SourceKind
from sidediff.diff.tree import build_file_tree
from sidediff.utils.text import expand_tabs, truncate_middle

from .viewer import ViewerState

EMPTY_MESSAGE = "No changes detected."
WATCHING_HINT = "(watching for changes...)"
NO_MATCH_MESSAGE = "No files match the filter."


class StatusLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusLine:
    """Transient message shown under the diff until dismissed or replaced."""

    message: str
    level: StatusLevel = StatusLevel.INFO


@dataclass(frozen=True)
class CellView:
    kind: Optional[LineKind]
    lineno: Optional[int]
    text: str
    placeholder: bool = False

    @classmethod
    def from_cell(cls, cell: Cell, old_side: bool) -> CellView:
        if not isinstance(cell, DiffLine):
            return cls(kind=None, lineno=None, text="", placeholder=True)
        lineno = cell.old_lineno if old_side else cell.new_lineno
        return cls(kind=cell.kind, lineno=lineno, text=expand_tabs(cell.text))


@dataclass(frozen=True)
class RowView:
    index: int
    old: CellView
    new: CellView
    selected: bool = False
    hunk_start: bool = False


@dataclass(frozen=True)
class SidebarRow:
    """A directory heading or a file entry of the sidebar tree."""

    label: str
    depth: int
    file_index: Optional[int] = None
    glyph: str = ""
    change_kind: Optional[ChangeKind] = None
    viewed: bool = False
    matched: bool = False
    selected: bool = False
    added: int = 0
    removed: int = 0

    @property
    def is_dir(self) -> bool:
        return self.file_index is None


@dataclass(frozen=True)
class FileHeader:
    display_path: str
    change_kind: ChangeKind
    position: int
    file_count: int
    hunk: int
    hunk_count: int
    added: int
    removed: int
    viewed: bool = False
    note: Optional[str] = None

    @property
    def text(self) -> str:
        parts = [f"[{self.change_kind.glyph}] {self.display_path}", f"{self.position}/{self.file_count}"]
        if self.hunk_count:
            parts.append(f"hunk {self.hunk}/{self.hunk_count}")
        parts.append(f"+{self.added} -{self.removed}")
        if self.viewed:
            parts.append("viewed")
        return "  ".join(parts)


@dataclass(frozen=True)
class FooterInfo:
    label: str
    watching: bool = False
    paused: bool = False
    viewed_count: int = 0
    file_count: int = 0
    filter_text: str = ""

    def text(self, width: int = 80) -> str:
        parts = []
        if self.file_count:
            parts.append(f"{self.viewed_count}/{self.file_count} viewed")
        if self.filter_text:
            parts.append(f"/{self.filter_text}")
        if self.paused:
            parts.append("refresh paused")
        elif self.watching:
            parts.append("watching")
        right = "  ".join(parts)
        room = max(8, width - len(right) - 2)
        return f"{truncate_middle(self.label, room)}  {right}".rstrip()


@dataclass(frozen=True)
class RenderSnapshot:
    sidebar: tuple[SidebarRow, ...]
    sidebar_visible: bool
    rows: tuple[RowView, ...]
    header: Optional[FileHeader]
    footer: FooterInfo
    status: Optional[StatusLine] = None
    empty_text: Optional[str] = None


def source_label(source: SourceInfo) -> str:
    """Footer label: ``base <- head #n`` for pull requests, else branch and target."""
    if source.kind is SourceKind.PULL_REQUEST:
        label = f"{source.base_label or '?'} <- {source.head_label or '?'} #{source.pr_number}"
        if source.pr_title:
            label += f" {source.pr_title}"
        return label
    branch = source.branch or "unknown"
    if source.kind is SourceKind.WORKING_TREE:
        return branch
    return f"{branch}  {source.target}"


def _sidebar(state: ViewerState) -> tuple[SidebarRow, ...]:
    """Every file of the DiffSet; ``matched`` marks the rows the filter keeps.

    A directory is matched when any file below it is.
    """
    files = state.diffset.files
    shown = set(state.visible_indices)
    rows = []
    open_dirs: list[int] = []
    for entry in build_file_tree(files):
        while open_dirs and rows[open_dirs[-1]].depth >= entry.depth:
            open_dirs.pop()
        if entry.is_dir:
            open_dirs.append(len(rows))
            rows.append(SidebarRow(label=entry.label, depth=entry.depth))
            continue
        matched = entry.file_index in shown
        if matched:
            for i in open_dirs:
                rows[i] = replace(rows[i], matched=True)
        fd = files[entry.file_index]
        added, removed = line_stats(fd)
        rows.append(
            SidebarRow(
                label=entry.label,
                depth=entry.depth,
                file_index=entry.file_index,
                glyph=fd.change_kind.glyph,
                change_kind=fd.change_kind,
                viewed=fd.path in state.viewed,
                matched=matched,
                selected=entry.file_index == state.file_index,
                added=added,
                removed=removed,
            )
        )
    return tuple(rows)


def _header(state: ViewerState) -> Optional[FileHeader]:
    current = state.current_file
    if current is None:
        return None
    aligned = state.aligned
    visible = state.visible_indices
    position = visible.index(state.file_index) + 1 if state.file_index in visible else state.file_index + 1
    if current.degraded:
        note = f"Could not parse this file: {current.error}"
    elif current.is_binary:
        note = "Binary file not shown."
    elif not current.hunks:
        note = "No content changes."
    else:
        note = None
    return FileHeader(
        display_path=current.display_path,
        change_kind=current.change_kind,
        position=position,
        file_count=len(visible),
        hunk=aligned.hunk_at(state.cursor.row) + 1 if aligned.hunk_count else 0,
        hunk_count=aligned.hunk_count,
        added=current.added_count,
        removed=current.removed_count,
        viewed=current.path in state.viewed,
        note=note,
    )


def _rows(state: ViewerState) -> tuple[RowView, ...]:
    aligned = state.aligned
    cursor = state.cursor
    starts = set(aligned.hunk_starts)
    end = min(len(aligned), cursor.scroll + state.viewport_height)
    return tuple(
        RowView(
            index=i,
            old=CellView.from_cell(aligned.rows[i].old, old_side=True),
            new=CellView.from_cell(aligned.rows[i].new, old_side=False),
            selected=i == cursor.row,
            hunk_start=i in starts,
        )
        for i in range(cursor.scroll, end)
    )


def build_snapshot(
    state: ViewerState,
    *,
    watching: bool = False,
    paused: bool = False,
    status: Optional[StatusLine] = None,
) -> RenderSnapshot:
    """Derive the renderable model of ``state``."""
    if state.is_empty:
        empty_text = EMPTY_MESSAGE + (f"\n{WATCHING_HINT}" if watching else "")
    elif not state.visible_indices:
        empty_text = NO_MATCH_MESSAGE
    else:
        empty_text = None

    footer = FooterInfo(
        label=source_label(state.diffset.source),
        watching=watching,
        paused=paused,
        viewed_count=len(state.viewed),
        file_count=len(state.diffset.files),
        filter_text=state.filter_text,
    )
    return RenderSnapshot(
        sidebar=_sidebar(state),
        sidebar_visible=state.sidebar_visible,
        rows=_rows(state),
        header=_header(state),
        footer=footer,
        status=status,
        empty_text=empty_text,
    )
