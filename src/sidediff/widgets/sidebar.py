from rich.text import Text
from textual.widgets import Static

from sidediff.diff.models import ChangeKind
from sidediff.state.snapshot import SidebarRow

_GLYPH_STYLES = {
    ChangeKind.ADDED: "green",
    ChangeKind.REMOVED: "red",
    ChangeKind.MODIFIED: "yellow",
    ChangeKind.RENAMED: "cyan",
    ChangeKind.COPIED: "cyan",
    ChangeKind.BINARY: "magenta",
}


def render_sidebar(rows: tuple[SidebarRow, ...]) -> Text:
    """Indented tree of the matched rows; viewed files are dimmed, the active file reversed."""
    text = Text()
    first = True
    for row in rows:
        if not row.matched:
            continue
        if not first:
            text.append("\n")
        first = False
        indent = "  " * row.depth
        if row.is_dir:
            text.append(f"{indent}{row.label}", style="bold blue")
            continue
        style = "dim" if row.viewed else ""
        if row.selected:
            style = f"{style} reverse".strip()
        text.append(indent)
        text.append(row.glyph, style=_GLYPH_STYLES.get(row.change_kind, ""))
        text.append(" ")
        text.append(row.label, style=style or None)
        if row.added or row.removed:
            text.append(f" +{row.added}", style="green")
            text.append(f" -{row.removed}", style="red")
        if row.viewed:
            text.append(" ✓", style="green")
    return text


class FileSidebar(Static):
    def show(self, rows: tuple[SidebarRow, ...]) -> None:
        self.update(render_sidebar(rows))
