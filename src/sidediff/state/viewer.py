"""Viewer state machine.

:class:`ViewerState` is immutable; the only way to change it is
``apply_command(state, command)``, which returns a new state and never touches the
old one. Every command is a small frozen dataclass so a sequence of commands can be
replayed deterministically in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Mapping, Optional, Union

from sidediff.diff.alignment import AlignedFile, AlignmentCache
from sidediff.diff.models import DiffLine, DiffSet, FileDiff, SourceKind
from sidediff.diff.tree import build_file_tree
from sidediff.utils.config import config
from sidediff.utils.logger import log

DEFAULT_VIEWPORT_HEIGHT = 24


@dataclass(frozen=True)
class FileCursor:
    """Cursor inside one file: selected row, first visible row and active hunk."""

    row: int = 0
    scroll: int = 0
    hunk: int = 0


@dataclass(frozen=True)
class ViewerState:
    diffset: DiffSet
    file_index: int = -1
    cursors: Mapping[str, FileCursor] = field(default_factory=dict)
    sidebar_visible: bool = True
    viewed: frozenset[str] = frozenset()
    filter_text: str = ""
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    remember_positions: bool = False
    alignments: AlignmentCache = field(default_factory=AlignmentCache, compare=False, repr=False)

    @classmethod
    def initial(
        cls,
        diffset: DiffSet,
        *,
        remember_positions: bool = False,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
        sidebar_visible: bool = True,
    ) -> ViewerState:
        """State for a freshly fetched DiffSet; remote viewed flags seed ``viewed``."""
        return cls(
            diffset=diffset,
            file_index=next(iter(visible_indices(diffset, "")), -1),
            viewed=frozenset(f.path for f in diffset.files if f.remote_viewed),
            viewport_height=max(1, viewport_height),
            remember_positions=remember_positions,
            sidebar_visible=sidebar_visible,
        )

    @property
    def current_file(self) -> Optional[FileDiff]:
        if 0 <= self.file_index < len(self.diffset.files):
            return self.diffset.files[self.file_index]
        return None

    @property
    def current_path(self) -> Optional[str]:
        current = self.current_file
        return current.path if current else None

    @property
    def cursor(self) -> FileCursor:
        path = self.current_path
        if path is None:
            return FileCursor()
        return self.cursors.get(path, FileCursor())

    @property
    def aligned(self) -> AlignedFile:
        """Aligned rows of the current file (cached per DiffSet generation)."""
        return self.alignments.get(self.diffset, self.file_index)

    @property
    def visible_indices(self) -> list[int]:
        """Indices of files matching the filter, in sidebar order."""
        return visible_indices(self.diffset, self.filter_text)

    @property
    def is_empty(self) -> bool:
        return not self.diffset.files


_order_cache: dict[tuple[int, str], tuple[int, ...]] = {}


def visible_indices(diffset: DiffSet, filter_text: str) -> list[int]:
    """Indices of files matching ``filter_text``, in the order the sidebar tree lists them."""
    needle = filter_text.strip().lower()
    key = (diffset.generation, needle)
    order = _order_cache.get(key)
    if order is None:
        matching = [i for i, f in enumerate(diffset.files) if needle in f.path.lower()]
        order = tuple(e.file_index for e in build_file_tree(diffset.files, matching) if not e.is_dir)
        if len(_order_cache) >= 64:
            _order_cache.clear()
        _order_cache[key] = order
    return list(order)


# Commands


@dataclass(frozen=True)
class MoveLine:
    delta: int = 1


@dataclass(frozen=True)
class MoveHunk:
    delta: int = 1


@dataclass(frozen=True)
class NextFile:
    pass


@dataclass(frozen=True)
class PrevFile:
    pass


@dataclass(frozen=True)
class SelectFile:
    index: int


@dataclass(frozen=True)
class ToggleSidebar:
    pass


@dataclass(frozen=True)
class ToggleViewed:
    """Mark-viewed on the current file."""


@dataclass(frozen=True)
class SetViewed:
    """Force a path's viewed flag, used when reconciling remote results."""

    path: str
    viewed: bool


@dataclass(frozen=True)
class SetFilter:
    text: str


@dataclass(frozen=True)
class Refresh:
    """Install a new DiffSet.

    ``pending`` holds viewed intents that have not been confirmed by the remote yet;
    they override the remote flags of a pull request refresh.
    """

    diffset: DiffSet
    pending: Mapping[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class Resize:
    height: int


@dataclass(frozen=True)
class ScrollToTop:
    pass


@dataclass(frozen=True)
class ScrollToBottom:
    pass


Command = Union[
    MoveLine,
    MoveHunk,
    NextFile,
    PrevFile,
    SelectFile,
    ToggleSidebar,
    ToggleViewed,
    SetViewed,
    SetFilter,
    Refresh,
    Resize,
    ScrollToTop,
    ScrollToBottom,
]


@dataclass(frozen=True)
class WatchSnapshot:
    """Anchors of the previous state used to re-target it after a refresh."""

    path: Optional[str]
    row: int = 0
    scroll: int = 0

    @classmethod
    def capture(cls, state: ViewerState) -> WatchSnapshot:
        cursor = state.cursor
        return cls(path=state.current_path, row=cursor.row, scroll=cursor.scroll)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _follow(row: int, scroll: int, height: int, total: int) -> int:
    """Scroll offset keeping ``row`` at least ``scroll_margin`` rows inside the viewport."""
    if total <= 0:
        return 0
    margin = min(config.scroll_margin, (height - 1) // 2)
    if row < scroll + margin:
        scroll = row - margin
    elif row > scroll + height - 1 - margin:
        scroll = row - height + 1 + margin
    return _clamp(scroll, 0, max(0, total - height))


def _place_cursor(state: ViewerState, row: int, scroll: Optional[int] = None) -> ViewerState:
    """Move the current file's cursor to ``row`` (clamped) and update scroll and hunk."""
    path = state.current_path
    if path is None:
        return state
    aligned = state.aligned
    total = len(aligned)
    row = _clamp(row, 0, max(0, total - 1))
    base_scroll = state.cursor.scroll if scroll is None else scroll
    cursor = FileCursor(
        row=row,
        scroll=_follow(row, base_scroll, state.viewport_height, total),
        hunk=aligned.hunk_at(row),
    )
    if cursor == state.cursors.get(path):
        return state
    return replace(state, cursors={**state.cursors, path: cursor})


def _select(state: ViewerState, index: int) -> ViewerState:
    """Make ``index`` the current file, resetting or restoring its cursor."""
    if index == state.file_index:
        return state
    moved = replace(state, file_index=index)
    path = moved.current_path
    if path is None:
        return moved
    remembered = state.cursors.get(path)
    if state.remember_positions and remembered is not None:
        return _place_cursor(moved, remembered.row, remembered.scroll)
    return _place_cursor(moved, 0, 0)


def _move_line(state: ViewerState, command: MoveLine) -> ViewerState:
    if not len(state.aligned):
        return state
    return _place_cursor(state, state.cursor.row + command.delta)


def _move_hunk(state: ViewerState, command: MoveHunk) -> ViewerState:
    aligned = state.aligned
    if not aligned.hunk_count or command.delta == 0:
        return state
    row = state.cursor.row
    current = aligned.hunk_at(row)
    if command.delta < 0 and row > aligned.hunk_starts[current]:
        # Inside a hunk the first step back lands on its own boundary
        target = current + command.delta + 1
    else:
        target = current + command.delta
    target = _clamp(target, 0, aligned.hunk_count - 1)
    return _place_cursor(state, aligned.hunk_starts[target])


def _step_file(state: ViewerState, step: int) -> ViewerState:
    visible = state.visible_indices
    if not visible:
        return state
    if state.file_index in visible:
        pos = _clamp(visible.index(state.file_index) + step, 0, len(visible) - 1)
        return _select(state, visible[pos])
    # Current file is hidden: jump to the nearest visible file in that direction
    order = visible_indices(state.diffset, "")
    if state.file_index not in order:
        return _select(state, visible[0])
    pos = order.index(state.file_index)
    shown = set(visible)
    if step > 0:
        later = [i for i in order[pos + 1:] if i in shown]
        return _select(state, later[0] if later else visible[-1])
    earlier = [i for i in order[:pos] if i in shown]
    return _select(state, earlier[-1] if earlier else visible[0])


def _next_file(state: ViewerState, command: NextFile) -> ViewerState:
    return _step_file(state, 1)


def _prev_file(state: ViewerState, command: PrevFile) -> ViewerState:
    return _step_file(state, -1)


def _select_file(state: ViewerState, command: SelectFile) -> ViewerState:
    if command.index not in state.visible_indices:
        return state
    return _select(state, command.index)


def _toggle_sidebar(state: ViewerState, command: ToggleSidebar) -> ViewerState:
    return replace(state, sidebar_visible=not state.sidebar_visible)


def _toggle_viewed(state: ViewerState, command: ToggleViewed) -> ViewerState:
    path = state.current_path
    if path is None:
        return state
    return _set_viewed(state, SetViewed(path, path not in state.viewed))


def _set_viewed(state: ViewerState, command: SetViewed) -> ViewerState:
    if command.viewed:
        if command.path in state.viewed or state.diffset.index_of(command.path) < 0:
            return state
        return replace(state, viewed=state.viewed | {command.path})
    if command.path not in state.viewed:
        return state
    return replace(state, viewed=state.viewed - {command.path})


def _set_filter(state: ViewerState, command: SetFilter) -> ViewerState:
    if command.text == state.filter_text:
        return state
    filtered = replace(state, filter_text=command.text)
    if command.text.strip().lower() == state.filter_text.strip().lower():
        return filtered
    visible = filtered.visible_indices
    if not visible:
        return replace(filtered, file_index=-1)
    first = replace(filtered, file_index=visible[0])
    return _place_cursor(first, 0, 0)


def _remap_viewed(state: ViewerState, new: DiffSet, pending: Mapping[str, bool]) -> frozenset[str]:
    present = set(new.paths())
    if new.source.kind is SourceKind.PULL_REQUEST:
        viewed = {f.path for f in new.files if f.remote_viewed}
    else:
        viewed = set()
        for path in state.viewed:
            after = new.get(path)
            before = state.diffset.get(path)
            # A file whose change moved on since it was reviewed needs another look
            if after is not None and before is not None and after.same_content(before):
                viewed.add(path)
    for path, value in pending.items():
        if value and path in present:
            viewed.add(path)
        else:
            viewed.discard(path)
    return frozenset(viewed)


def _refresh(state: ViewerState, command: Refresh) -> ViewerState:
    snapshot = WatchSnapshot.capture(state)
    new = command.diffset
    present = set(new.paths())
    refreshed = replace(
        state,
        diffset=new,
        file_index=-1,
        viewed=_remap_viewed(state, new, command.pending),
        cursors={p: c for p, c in state.cursors.items() if p in present},
    )
    visible = refreshed.visible_indices
    index = new.index_of(snapshot.path) if snapshot.path is not None else -1
    if index >= 0 and index in visible:
        kept = replace(refreshed, file_index=index)
        result = _place_cursor(kept, snapshot.row, snapshot.scroll)
    elif visible:
        result = _place_cursor(replace(refreshed, file_index=visible[0]), 0, 0)
    else:
        result = refreshed
    log.debug(
        f"[STATE] Refresh gen={new.generation} files={len(new.files)} "
        f"active={result.current_path!r} row={result.cursor.row}"
    )
    return result


def _resize(state: ViewerState, command: Resize) -> ViewerState:
    height = max(1, command.height)
    if height == state.viewport_height:
        return state
    resized = replace(state, viewport_height=height)
    return _place_cursor(resized, resized.cursor.row)


def _scroll_to_top(state: ViewerState, command: ScrollToTop) -> ViewerState:
    return _place_cursor(state, 0)


def _scroll_to_bottom(state: ViewerState, command: ScrollToBottom) -> ViewerState:
    return _place_cursor(state, len(state.aligned) - 1)


_HANDLERS: dict[type, Callable[[ViewerState, object], ViewerState]] = {
    MoveLine: _move_line,
    MoveHunk: _move_hunk,
    NextFile: _next_file,
    PrevFile: _prev_file,
    SelectFile: _select_file,
    ToggleSidebar: _toggle_sidebar,
    ToggleViewed: _toggle_viewed,
    SetViewed: _set_viewed,
    SetFilter: _set_filter,
    Refresh: _refresh,
    Resize: _resize,
    ScrollToTop: _scroll_to_top,
    ScrollToBottom: _scroll_to_bottom,
}


def apply_command(state: ViewerState, command: Command) -> ViewerState:
    """Apply one command and return the resulting state.

    Raises:
        TypeError: If ``command`` is not a known command type
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"unknown viewer command: {command!r}")
    return handler(state, command)


def editor_target(state: ViewerState) -> Optional[tuple[str, int]]:
    """``(path, line)`` for opening the cursor position in an editor.

    The new-side line number is used; rows that only exist on the old side (deletions)
    fall back to the old-side number. Files without rows open at line 1.
    """
    current = state.current_file
    if current is None:
        return None
    aligned = state.aligned
    if not len(aligned):
        return current.path, 1
    row = aligned.rows[_clamp(state.cursor.row, 0, len(aligned) - 1)]
    if isinstance(row.new, DiffLine) and row.new.new_lineno is not None:
        return current.path, row.new.new_lineno
    if isinstance(row.old, DiffLine) and row.old.old_lineno is not None:
        return current.path, row.old.old_lineno
    return current.path, 1
