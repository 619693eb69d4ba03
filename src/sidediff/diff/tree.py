"""Directory tree layout for the sidebar file list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .models import FileDiff


@dataclass(frozen=True)
class TreeEntry:
    """A sidebar line: a directory heading or a file leaf."""

    label: str
    depth: int
    file_index: Optional[int] = None

    @property
    def is_dir(self) -> bool:
        return self.file_index is None


def build_file_tree(files: Iterable[FileDiff], indices: Iterable[int] | None = None) -> list[TreeEntry]:
    """Lay out files as an indented tree sorted by path.

    Directory chains with a single child directory are collapsed into one heading
    (``src/pkg/``) the way most review tools show them.

    Args:
        files: The DiffSet's files
        indices: Restrict the tree to these file indices (e.g. the filtered subset)
    """
    files = list(files)
    selected = range(len(files)) if indices is None else indices
    ordered = sorted(selected, key=lambda i: files[i].path.split("/"))

    dirs = {tuple(files[i].path.split("/")[:-1]) for i in ordered}
    # Every ancestor of a file's directory is part of the tree as well
    for d in list(dirs):
        for k in range(1, len(d)):
            dirs.add(d[:k])

    def collapsible(prefix: tuple[str, ...]) -> bool:
        children = [d for d in dirs if len(d) == len(prefix) + 1 and d[: len(prefix)] == prefix]
        has_files = any(tuple(files[i].path.split("/")[:-1]) == prefix for i in ordered)
        return len(children) == 1 and not has_files

    entries: list[TreeEntry] = []
    emitted: dict[tuple[str, ...], int] = {(): -1}
    for i in ordered:
        parts = files[i].path.split("/")
        parent: tuple[str, ...] = ()
        start = 0
        for k in range(1, len(parts)):
            prefix = tuple(parts[:k])
            if prefix in emitted:
                parent, start = prefix, k
                continue
            if k < len(parts) - 1 and collapsible(prefix):
                continue
            depth = emitted[parent] + 1
            entries.append(TreeEntry("/".join(parts[start:k]) + "/", depth))
            emitted[prefix] = depth
            parent, start = prefix, k
        entries.append(TreeEntry(parts[-1], emitted[parent] + 1, i))
    return entries
