"""Optimistic, coalescing synchronizer for remote viewed flags.

The local state changes immediately; this class only makes the remote agree
eventually. Per path it keeps the latest desired value and sends it after a short
coalescing window. While a call is in flight newer intents wait, and at most one
follow-up call carries whatever is desired once the first call returns. Rapid toggles
therefore collapse into the fewest calls, and the last intent always wins.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from sidediff.errors import FetchError, SyncError
from sidediff.sources.base import DiffSource
from sidediff.utils.config import config
from sidediff.utils.error_handling import describe_error, log_sync_error
from sidediff.utils.logger import log

from .messages import Message, SyncCompleted

Post = Callable[[Message], None]
# schedule(delay_seconds, callback) -> handle with cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class ViewedStateSynchronizer:
    def __init__(
        self,
        source: DiffSource,
        post: Post,
        *,
        epoch: int = 0,
        schedule: Scheduler = timer_scheduler,
        coalesce_ms: Optional[int] = None,
    ):
        self.source = source
        self._post = post
        self.epoch = epoch
        self._schedule = schedule
        window = coalesce_ms if coalesce_ms is not None else config.sync_coalesce_ms
        self._delay = max(0, window) / 1000.0
        self._lock = threading.Lock()
        self._desired: dict[str, bool] = {}
        self._confirmed: dict[str, bool] = {}
        self._in_flight: set[str] = set()
        self._timers: dict[str, Any] = {}
        self._cancelled = False

    def request(self, path: str, viewed: bool, confirmed: Optional[bool] = None) -> None:
        """Record the desired remote value for ``path``.

        Args:
            path: File path
            viewed: Desired flag
            confirmed: Last value known to be on the remote, used for reverting a failure
        """
        with self._lock:
            if self._cancelled:
                return
            if confirmed is not None and path not in self._confirmed:
                self._confirmed[path] = confirmed
            self._desired[path] = viewed
            if path in self._in_flight or path in self._timers:
                return
            self._timers[path] = self._schedule(self._delay, lambda: self._flush(path))

    def pending(self) -> dict[str, bool]:
        """Intents not yet confirmed by the remote."""
        with self._lock:
            return dict(self._desired)

    def is_pending(self, path: str) -> bool:
        with self._lock:
            return path in self._desired

    def confirmed(self, path: str) -> Optional[bool]:
        with self._lock:
            return self._confirmed.get(path)

    def set_confirmed(self, path: str, viewed: bool) -> None:
        """Record a value observed on the remote (e.g. from a refresh)."""
        with self._lock:
            self._confirmed[path] = viewed

    def _flush(self, path: str) -> None:
        with self._lock:
            self._timers.pop(path, None)
            if self._cancelled or path not in self._desired or path in self._in_flight:
                return
            value = self._desired[path]
            self._in_flight.add(path)

        error: Optional[SyncError] = None
        try:
            self.source.set_file_viewed(path, value)
        except (FetchError, NotImplementedError) as e:
            log_sync_error(path, value, e)
            error = SyncError(describe_error(e), path, value)
        except Exception as e:
            log.error(f"[SYNC] Unexpected failure marking {path}: {type(e).__name__}: {e}")
            error = SyncError(describe_error(e), path, value)

        with self._lock:
            self._in_flight.discard(path)
            if self._cancelled:
                log.debug(f"[SYNC] Dropping result for {path}: synchronizer cancelled")
                return
            if error is None:
                self._confirmed[path] = value
            latest = self._desired.get(path)
            if latest is not None and latest != value:
                # A newer intent arrived during the call
                self._timers[path] = self._schedule(self._delay, lambda: self._flush(path))
            else:
                self._desired.pop(path, None)
            epoch = self.epoch
        self._post(SyncCompleted(epoch, path, value, error))

    def cancel(self) -> None:
        """Drop queued work; results of calls already in flight are discarded."""
        with self._lock:
            self._cancelled = True
            timers = list(self._timers.values())
            self._timers.clear()
            self._desired.clear()
        for timer in timers:
            cancel = getattr(timer, "cancel", None)
            if cancel is not None:
                cancel()
