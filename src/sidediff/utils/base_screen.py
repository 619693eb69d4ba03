"""Base screen class for the standard Header + main content + Footer layout."""

from textual.app import ComposeResult
from textual.screen import Screen

from sidediff.utils.logger import log
from sidediff.widgets.footer import Footer
from sidediff.widgets.header import Header


class BaseScreen(Screen):
    """Base class for sidediff screens.

    Subclasses implement compose_main_content(); the header and footer are shared.
    """

    def __init__(self, page_name: str):
        super().__init__()
        self.page_name = page_name
        self.title = f"sidediff: {page_name}"

    def compose(self) -> ComposeResult:
        yield Header(page_name=self.page_name)
        yield from self.compose_main_content()
        yield Footer()

    def compose_main_content(self) -> ComposeResult:
        """Define the main content area for this screen."""
        raise NotImplementedError("Subclasses must implement compose_main_content()")

    def safe_set_focus(self, widget) -> None:
        try:
            self.set_focus(widget)
        except (AttributeError, RuntimeError) as e:
            log(f"Failed to set focus: {e}")

    def _stop_event(self, event, action_description: str):
        """Stop event propagation with error handling."""
        try:
            event.stop()
        except (AttributeError, RuntimeError):
            log(f"Failed to stop {action_description} event")
