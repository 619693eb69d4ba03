"""Live refresh triggers.

Local sources are observed with watchdog; pull requests (and local sources whose
observer could not start) are polled. Either way the controller only posts
:class:`WatchTriggered` messages; fetching is the session's job.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from sidediff.errors import WatchError
from sidediff.sources.base import DiffSource
from sidediff.utils.config import config
from sidediff.utils.logger import log
from sidediff.utils.watchdog import start_observer

from .messages import Message, WatchDegraded, WatchTriggered

Post = Callable[[Message], None]


class WatchController:
    """Starts either an observer or a polling thread for one source and one epoch."""

    def __init__(
        self,
        source: DiffSource,
        post: Post,
        *,
        epoch: int = 0,
        poll_interval: Optional[float] = None,
        debounce_ms: Optional[int] = None,
    ):
        self.source = source
        self._post = post
        self.epoch = epoch
        self.poll_interval = poll_interval if poll_interval is not None else config.poll_interval
        self.debounce_ms = debounce_ms if debounce_ms is not None else config.debounce_ms
        self._stop_observer: Optional[Callable[[], None]] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._retry_timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    @property
    def mode(self) -> str:
        if self._stopped.is_set():
            return "stopped"
        if self._stop_observer is not None:
            return "observer"
        if self._poll_thread is not None:
            return "polling"
        return "idle"

    def start(self) -> None:
        root = self.source.watch_root
        if root is None:
            self._start_polling()
            return
        try:
            _, self._stop_observer = start_observer(
                root, self._on_change, recursive=True, debounce_ms=self.debounce_ms
            )
        except WatchError as e:
            log.warning(f"[WATCH] Falling back to polling every {self.poll_interval}s: {e}")
            self._post(WatchDegraded(self.epoch, e))
            self._start_polling()

    def _on_change(self) -> None:
        if not self._stopped.is_set():
            self._post(WatchTriggered(self.epoch, "change"))

    def _start_polling(self) -> None:
        def loop() -> None:
            while not self._stopped.wait(self.poll_interval):
                self._post(WatchTriggered(self.epoch, "poll"))

        self._poll_thread = threading.Thread(target=loop, name="sidediff-poll", daemon=True)
        self._poll_thread.start()
        log.debug(f"[WATCH] Polling {self.source.describe()} every {self.poll_interval}s")

    def schedule_retry(self) -> None:
        """Post one extra trigger after ``poll_interval``; polling retries by itself."""
        if self._poll_thread is not None or self._stopped.is_set():
            return
        with self._lock:
            if self._retry_timer is not None and self._retry_timer.is_alive():
                return
            self._retry_timer = threading.Timer(self.poll_interval, self._post_retry)
            self._retry_timer.daemon = True
            self._retry_timer.start()

    def _post_retry(self) -> None:
        if not self._stopped.is_set():
            self._post(WatchTriggered(self.epoch, "retry"))

    def stop(self) -> None:
        self._stopped.set()
        with self._lock:
            if self._retry_timer is not None:
                self._retry_timer.cancel()
                self._retry_timer = None
        if self._stop_observer is not None:
            self._stop_observer()
            self._stop_observer = None
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=0.5)
            self._poll_thread = None
