"""Messages posted by background threads to the session queue.

Every message carries the session ``epoch`` it was started under; the session drops
messages from an older epoch (a replaced source or a closed session).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from sidediff.diff.models import DiffSet
from sidediff.errors import FetchError, SyncError, WatchError


@dataclass(frozen=True)
class FetchCompleted:
    epoch: int
    request_id: int
    diffset: DiffSet


@dataclass(frozen=True)
class FetchFailed:
    epoch: int
    request_id: int
    error: FetchError


@dataclass(frozen=True)
class SyncCompleted:
    """A remote viewed update finished; ``error`` is set when it failed."""

    epoch: int
    path: str
    viewed: bool
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WatchTriggered:
    epoch: int
    reason: str = "change"


@dataclass(frozen=True)
class WatchDegraded:
    """The file-system observer could not start; polling took over."""

    epoch: int
    error: WatchError


Message = Union[FetchCompleted, FetchFailed, SyncCompleted, WatchTriggered, WatchDegraded]
