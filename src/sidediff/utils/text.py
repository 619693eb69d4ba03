from __future__ import annotations

from sidediff.utils.config import config


def truncate_middle(text: str, width: int, ellipsis: str = "…") -> str:
    """Shorten ``text`` to ``width`` characters by cutting out its middle.

    Branch names and paths keep both their start and their end, which is where the
    distinguishing part usually is.
    """
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width <= len(ellipsis):
        return text[:width]
    keep = width - len(ellipsis)
    head = (keep + 1) // 2
    tail = keep - head
    return text[:head] + ellipsis + (text[-tail:] if tail else "")


def expand_tabs(text: str, tab_width: int | None = None) -> str:
    """Expand tabs to spaces and cap very long lines for display."""
    width = tab_width if tab_width is not None else config.tab_width
    expanded = text.expandtabs(width)
    limit = config.max_preview_chars
    if len(expanded) > limit:
        return expanded[: limit - 1] + "…"
    return expanded
