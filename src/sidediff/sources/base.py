"""Common contract for everything that can produce a DiffSet."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sidediff.diff.models import DiffSet, SourceKind


class DiffSource(ABC):
    """A diff source owns only the parameters it needs to fetch.

    ``fetch()`` returns a fresh :class:`DiffSet` or raises a
    :class:`~sidediff.errors.FetchError` subclass. It runs on a background thread, so
    implementations must not touch viewer state.
    """

    kind: SourceKind = SourceKind.WORKING_TREE
    supports_viewed_sync: bool = False

    @abstractmethod
    def fetch(self) -> DiffSet:
        """Fetch and parse the current diff."""

    @abstractmethod
    def describe(self) -> str:
        """Short human description, e.g. ``main...feature``."""

    @property
    def watch_root(self) -> Optional[str]:
        """Directory to observe for changes, or None when the source must be polled."""
        return None

    def set_file_viewed(self, path: str, viewed: bool) -> None:
        """Send a viewed flag to the remote; only pull-request sources support this."""
        raise NotImplementedError(f"{type(self).__name__} has no remote viewed state")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.describe()!r})"

    def close(self) -> None:
        """Release network clients or other resources held by the source."""
