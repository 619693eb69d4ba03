"""Side-by-side diff screen.

Draws :class:`~sidediff.state.snapshot.RenderSnapshot` objects produced by the session
and maps keys to viewer commands:

- j/k (or arrows) move the cursor, n/p jump between hunks, g/G go to top/bottom
- h/l move between files, b toggles the sidebar, v marks the file as viewed
- / edits the path filter, e shows the editor target, r refreshes now
- escape dismisses the status line (or closes the filter), q quits
"""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import Input, Static

from sidediff.diff.models import LineKind
from sidediff.session.session import Session
from sidediff.state.snapshot import CellView, RenderSnapshot, RowView, StatusLevel
from sidediff.state.viewer import (
    MoveHunk,
    MoveLine,
    NextFile,
    PrevFile,
    Resize,
    ScrollToBottom,
    ScrollToTop,
    SetFilter,
    ToggleSidebar,
    ToggleViewed,
)
from sidediff.utils.base_screen import BaseScreen
from sidediff.utils.logger import log
from sidediff.widgets.footer import Footer
from sidediff.widgets.header import Header
from sidediff.widgets.sidebar import FileSidebar

# How often background results are applied, in seconds
DRAIN_INTERVAL = 0.05

LINE_STYLES = {
    LineKind.ADDED: "on #12361f",
    LineKind.REMOVED: "on #3c1618",
}

KEY_COMMANDS = {
    "j": MoveLine(1),
    "down": MoveLine(1),
    "k": MoveLine(-1),
    "up": MoveLine(-1),
    "n": MoveHunk(1),
    "p": MoveHunk(-1),
    "l": NextFile(),
    "right": NextFile(),
    "h": PrevFile(),
    "left": PrevFile(),
    "g": ScrollToTop(),
    "home": ScrollToTop(),
    "G": ScrollToBottom(),
    "end": ScrollToBottom(),
    "b": ToggleSidebar(),
    "v": ToggleViewed(),
}


def _render_cell(text: Text, cell: CellView, row: RowView, width: int) -> None:
    gutter_style = "bold cyan" if row.hunk_start else "dim"
    if row.selected:
        gutter_style += " reverse"
    if cell.placeholder:
        # Placeholders stay blank, even on the cursor row
        text.append(" " * (width + 1))
        return
    number = str(cell.lineno) if cell.lineno is not None else ""
    text.append(number.rjust(width), style=gutter_style)
    text.append(" ")
    marker = {LineKind.ADDED: "+", LineKind.REMOVED: "-"}.get(cell.kind, " ")
    text.append(marker + cell.text, style=LINE_STYLES.get(cell.kind))


def render_pane(rows: tuple[RowView, ...], old_side: bool) -> Text:
    """Render one side of the visible row window."""
    width = max((len(str(c.lineno)) for r in rows for c in (r.old, r.new) if c.lineno is not None), default=1)
    width = max(width, 4)
    text = Text(no_wrap=True, overflow="ellipsis")
    for i, row in enumerate(rows):
        if i:
            text.append("\n")
        _render_cell(text, row.old if old_side else row.new, row, width)
    return text


class DiffViewerScreen(BaseScreen):
    DEFAULT_CSS = """
    #diff-body {
        width: 100%;
        height: 1fr;
    }
    #sidebar {
        width: 36;
        height: 100%;
        border-right: solid $primary;
        overflow: hidden;
    }
    #diff-main {
        width: 1fr;
        height: 100%;
    }
    #diff-columns {
        width: 100%;
        height: 1fr;
    }
    .diff-pane {
        width: 1fr;
        height: 100%;
        overflow: hidden;
    }
    #old-pane {
        border-right: solid $primary-darken-2;
    }
    #empty-state {
        width: 100%;
        height: 1fr;
        content-align: center middle;
        display: none;
    }
    #file-note {
        height: auto;
        color: $warning;
        display: none;
    }
    #status-line {
        height: auto;
        display: none;
    }
    #filter-input {
        display: none;
    }
    .header {
        height: 1;
        background: $primary-darken-2;
    }
    .footer {
        height: 2;
        background: $surface-darken-1;
    }
    """

    def __init__(self, session: Session) -> None:
        super().__init__(page_name=session.source.describe())
        self.session = session
        self._drain_timer = None

    def compose_main_content(self) -> ComposeResult:
        with Horizontal(id="diff-body"):
            yield FileSidebar("", id="sidebar")
            with Vertical(id="diff-main"):
                yield Static("", id="file-note")
                with Horizontal(id="diff-columns"):
                    yield Static("", id="old-pane", classes="diff-pane")
                    yield Static("", id="new-pane", classes="diff-pane")
                yield Static("", id="empty-state")
        yield Static("", id="status-line")
        yield Input(placeholder="Filter paths (enter to keep, escape to close)", id="filter-input")

    async def on_mount(self):
        self._drain_timer = self.set_interval(DRAIN_INTERVAL, self._drain)
        self.call_after_refresh(self._sync_viewport)
        self.render_snapshot()

    def on_unmount(self):
        if self._drain_timer is not None:
            self._drain_timer.stop()
            self._drain_timer = None

    def on_resize(self, event) -> None:
        self._sync_viewport()

    def _sync_viewport(self) -> None:
        try:
            height = self.query_one("#diff-columns").size.height
        except NoMatches as e:
            log(f"[UI] Failed to measure diff panes: {e}")
            return
        if height > 0:
            self.session.dispatch(Resize(height))
            self.render_snapshot()

    def _drain(self) -> None:
        if self.session.drain():
            self.render_snapshot()

    # Rendering

    def render_snapshot(self) -> None:
        snapshot = self.session.snapshot()
        self.query_one(Header).show(snapshot.header)
        self.query_one(Footer).show(snapshot.footer)

        sidebar = self.query_one(FileSidebar)
        sidebar.display = snapshot.sidebar_visible
        sidebar.show(snapshot.sidebar)

        self._render_main(snapshot)
        self._render_status(snapshot)

    def _render_main(self, snapshot: RenderSnapshot) -> None:
        columns = self.query_one("#diff-columns")
        empty = self.query_one("#empty-state", Static)
        note = self.query_one("#file-note", Static)
        if snapshot.empty_text:
            columns.display = False
            note.display = False
            empty.display = True
            empty.update(Text(snapshot.empty_text, justify="center"))
            return
        empty.display = False
        columns.display = True
        header_note = snapshot.header.note if snapshot.header else None
        note.display = bool(header_note)
        note.update(header_note or "")
        self.query_one("#old-pane", Static).update(render_pane(snapshot.rows, old_side=True))
        self.query_one("#new-pane", Static).update(render_pane(snapshot.rows, old_side=False))

    def _render_status(self, snapshot: RenderSnapshot) -> None:
        status_line = self.query_one("#status-line", Static)
        if snapshot.status is None:
            status_line.display = False
            return
        style = {StatusLevel.ERROR: "bold red", StatusLevel.WARNING: "yellow"}.get(snapshot.status.level, "")
        status_line.display = True
        status_line.update(Text(f" {snapshot.status.message}", style=style))

    # Input

    def on_key(self, event):
        """Map keys to commands; the filter input keeps its own keys while focused."""
        key = getattr(event, "key", None)
        if key is None:
            return
        filter_input = self.query_one("#filter-input", Input)
        if filter_input.has_focus:
            if key == "escape":
                self._close_filter(clear=True)
                self._stop_event(event, "close filter")
            return

        if key in KEY_COMMANDS:
            self.session.dispatch(KEY_COMMANDS[key])
            self.render_snapshot()
            self._stop_event(event, key)
        elif key in ("pagedown", "pageup"):
            page = self.session.state.viewport_height if self.session.state else 1
            self.session.dispatch(MoveLine(page if key == "pagedown" else -page))
            self.render_snapshot()
            self._stop_event(event, key)
        elif key == "r":
            self.session.request_refresh(user=True)
            self._stop_event(event, "refresh")
        elif key == "slash":
            filter_input.display = True
            filter_input.value = self.session.state.filter_text if self.session.state else ""
            self.safe_set_focus(filter_input)
            self._stop_event(event, "open filter")
        elif key == "e":
            self.action_editor_target()
            self._stop_event(event, "editor target")
        elif key == "escape":
            self.session.dismiss_status()
            self.render_snapshot()
            self._stop_event(event, "dismiss status")
        elif key == "q":
            self.app.exit()
            self._stop_event(event, "quit")

    def on_input_changed(self, event: Input.Changed) -> None:
        self.session.dispatch(SetFilter(event.value))
        self.render_snapshot()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._close_filter(clear=False)

    def _close_filter(self, clear: bool) -> None:
        filter_input = self.query_one("#filter-input", Input)
        if clear:
            self.session.dispatch(SetFilter(""))
        filter_input.display = False
        self.safe_set_focus(None)
        self.render_snapshot()

    def action_editor_target(self) -> None:
        target = self.session.editor_target()
        if target is None:
            return
        path, line = target
        log(f"[UI] Editor target {path}:{line}")
        self.app.notify(f"{path}:{line}", title="Open in editor")
