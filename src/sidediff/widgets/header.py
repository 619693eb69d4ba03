from rich.text import Text
from textual.widgets import Static

from sidediff.state.snapshot import FileHeader


class Header(Static):
    """One-line header: application title and the active file's position and stats."""

    def __init__(self, page_name: str = "", classes: str = "header") -> None:
        self.page_name = page_name
        super().__init__(self._render_text(None), classes=classes)

    def _render_text(self, file_header: FileHeader | None) -> Text:
        text = Text(" sidediff", style="bold")
        if self.page_name:
            text.append(f"  {self.page_name}", style="dim")
        if file_header is not None:
            text.append("   ")
            text.append(file_header.text)
        return text

    def show(self, file_header: FileHeader | None) -> None:
        self.update(self._render_text(file_header))
