from rich.text import Text
from textual.widgets import Static

from sidediff.state.snapshot import FooterInfo

KEY_HINTS = (
    ("j/k", "Line"),
    ("n/p", "Hunk"),
    ("h/l", "File"),
    ("v", "Viewed"),
    ("b", "Sidebar"),
    ("/", "Filter"),
    ("r", "Refresh"),
    ("q", "Quit"),
)


class Footer(Static):
    """Footer with the source label, watch and viewed indicators and key hints."""

    def __init__(self, info: FooterInfo | None = None, classes: str = "footer") -> None:
        super().__init__(self._render_text(info, 80), classes=classes)

    @staticmethod
    def hints() -> str:
        return "  ".join(f"[orange1]{key}[/orange1] {label}" for key, label in KEY_HINTS)

    def _render_text(self, info: FooterInfo | None, width: int) -> Text:
        text = Text.from_markup(" " + self.hints())
        if info is not None:
            text.append("\n ")
            text.append(info.text(max(20, width - 2)), style="bold")
        return text

    def show(self, info: FooterInfo) -> None:
        self.update(self._render_text(info, self.size.width or 80))
