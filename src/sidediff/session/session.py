"""The per-invocation session.

A :class:`Session` owns the active source, the current DiffSet (inside the viewer
state), the watch controller and the viewed-state synchronizer. It is driven from a
single UI thread: commands go through :meth:`Session.dispatch`, and results from
background threads are applied only when the UI calls :meth:`Session.drain`.

Two counters keep late results from clobbering newer ones. Every fetch gets a request
id, and a completion older than the last applied id is dropped. Every background task
also carries the session epoch, which :meth:`switch_source` and :meth:`close` bump, so
anything started for a previous source is ignored.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Optional

from sidediff.errors import AuthError, FetchError, NotFoundError
from sidediff.sources.base import DiffSource
from sidediff.state.snapshot import RenderSnapshot, StatusLevel, StatusLine, build_snapshot
from sidediff.state.viewer import (
    Command,
    Refresh,
    SetViewed,
    ToggleViewed,
    ViewerState,
    apply_command,
    editor_target,
)
from sidediff.utils.error_handling import describe_error
from sidediff.utils.logger import log

from .messages import (
    FetchCompleted,
    FetchFailed,
    Message,
    SyncCompleted,
    WatchDegraded,
    WatchTriggered,
)
from .sync import Scheduler, ViewedStateSynchronizer, timer_scheduler
from .watch import WatchController

Spawner = Callable[[Callable[[], None]], Any]


def thread_spawner(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, name="sidediff-fetch", daemon=True)
    thread.start()
    return thread


class Session:
    def __init__(
        self,
        source: DiffSource,
        *,
        watch: bool = True,
        remember_positions: bool = False,
        poll_interval: Optional[float] = None,
        spawn: Spawner = thread_spawner,
        schedule: Scheduler = timer_scheduler,
        watch_factory: Callable[..., WatchController] = WatchController,
    ):
        self.source = source
        self.watch_enabled = watch
        self.remember_positions = remember_positions
        self.poll_interval = poll_interval
        self._spawn = spawn
        self._schedule = schedule
        self._watch_factory = watch_factory

        self.queue: queue.Queue[Message] = queue.Queue()
        self.epoch = 0
        self.state: Optional[ViewerState] = None
        self.status: Optional[StatusLine] = None
        self.paused = False
        self.closed = False

        self._last_request = 0
        self._applied_request = 0
        self._in_flight: Optional[int] = None
        self._refresh_queued = False
        self._watcher: Optional[WatchController] = None
        self._sync: Optional[ViewedStateSynchronizer] = None

    # Lifecycle

    def start(self, viewport_height: Optional[int] = None) -> ViewerState:
        """Fetch the first DiffSet synchronously and start watching.

        Raises:
            FetchError: The first fetch failed; nothing has been started
        """
        diffset = self.source.fetch()
        kwargs = {"viewport_height": viewport_height} if viewport_height else {}
        self.state = ViewerState.initial(diffset, remember_positions=self.remember_positions, **kwargs)
        log.info(f"[SESSION] Started on {self.source.describe()} with {len(diffset)} file(s)")
        self._start_background()
        return self.state

    def _start_background(self) -> None:
        if self.source.supports_viewed_sync:
            self._sync = ViewedStateSynchronizer(self.source, self.post, epoch=self.epoch, schedule=self._schedule)
        if self.watch_enabled:
            self._watcher = self._watch_factory(self.source, self.post, epoch=self.epoch, poll_interval=self.poll_interval)
            self._watcher.start()

    def _stop_background(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._sync is not None:
            self._sync.cancel()
            self._sync = None

    def switch_source(self, source: DiffSource) -> None:
        """Replace the source; results still pending for the old one are discarded."""
        self.epoch += 1
        self._stop_background()
        if source is not self.source:
            self.source.close()
        self.source = source
        self._in_flight = None
        self._refresh_queued = False
        self.paused = False
        log.info(f"[SESSION] Switched to {source.describe()} (epoch {self.epoch})")
        self._start_background()
        self.request_refresh()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.epoch += 1
        self._stop_background()
        self.source.close()
        log.info("[SESSION] Closed")

    @property
    def watching(self) -> bool:
        return self._watcher is not None

    # Commands

    def post(self, message: Message) -> None:
        """Thread-safe entry point for background tasks."""
        self.queue.put(message)

    def dispatch(self, command: Command) -> ViewerState:
        if self.state is None:
            raise RuntimeError("session has not been started")
        before = self.state
        self.state = apply_command(before, command)
        if self.state is not before:
            self.status = None
        if isinstance(command, ToggleViewed) and self._sync is not None and self.state is not before:
            path = before.current_path
            if path is not None:
                self._sync.request(path, path in self.state.viewed, confirmed=path in before.viewed)
        return self.state

    def dismiss_status(self) -> None:
        self.status = None

    def request_refresh(self, user: bool = False) -> None:
        """Start a fetch unless one is running; a running fetch gets one follow-up.

        ``user`` marks an explicit refresh-now, which also lifts a pause caused by an
        authentication or not-found failure.
        """
        if self.closed:
            return
        if user:
            self.paused = False
        if self.paused:
            log.debug("[SESSION] Refresh paused; ignoring trigger")
            return
        if self._in_flight is not None:
            self._refresh_queued = True
            return

        self._last_request += 1
        request_id = self._last_request
        epoch = self.epoch
        source = self.source
        self._in_flight = request_id

        def run() -> None:
            try:
                diffset = source.fetch()
            except FetchError as e:
                self.post(FetchFailed(epoch, request_id, e))
                return
            except Exception as e:
                log.error(f"[SESSION] Unexpected fetch failure from {source!r}: {type(e).__name__}: {e}")
                self.post(FetchFailed(epoch, request_id, FetchError(describe_error(e))))
                return
            self.post(FetchCompleted(epoch, request_id, diffset))

        self._spawn(run)

    # Message handling

    def drain(self, limit: int = 100) -> bool:
        """Apply queued background results. Returns True when anything changed."""
        changed = False
        for _ in range(limit):
            try:
                message = self.queue.get_nowait()
            except queue.Empty:
                break
            if message.epoch != self.epoch:
                log.debug(f"[SESSION] Discarding {type(message).__name__} from epoch {message.epoch}")
                continue
            changed = self._handle(message) or changed
        return changed

    def _handle(self, message: Message) -> bool:
        if isinstance(message, FetchCompleted):
            return self._on_fetch_completed(message)
        if isinstance(message, FetchFailed):
            return self._on_fetch_failed(message)
        if isinstance(message, SyncCompleted):
            return self._on_sync_completed(message)
        if isinstance(message, WatchTriggered):
            self.request_refresh()
            return False
        if isinstance(message, WatchDegraded):
            self.status = StatusLine(
                f"File watching unavailable ({describe_error(message.error)}); polling instead",
                StatusLevel.WARNING,
            )
            return True
        log.warning(f"[SESSION] Unknown message {message!r}")
        return False

    def _finish_request(self, request_id: int) -> bool:
        """Clear the in-flight marker; False when the result is already superseded."""
        if self._in_flight == request_id:
            self._in_flight = None
        if request_id <= self._applied_request:
            log.debug(f"[SESSION] Discarding superseded fetch #{request_id}")
            return False
        self._applied_request = request_id
        return True

    def _run_queued(self) -> None:
        if self._refresh_queued and self._in_flight is None:
            self._refresh_queued = False
            self.request_refresh()

    def _on_fetch_completed(self, message: FetchCompleted) -> bool:
        if not self._finish_request(message.request_id) or self.state is None:
            self._run_queued()
            return False
        pending: dict[str, bool] = {}
        if self._sync is not None:
            for f in message.diffset.files:
                if f.remote_viewed is not None:
                    self._sync.set_confirmed(f.path, f.remote_viewed)
            pending = self._sync.pending()
        self.state = apply_command(self.state, Refresh(message.diffset, pending))
        if self.status is not None and self.status.level is StatusLevel.ERROR:
            self.status = None
        self._run_queued()
        return True

    def _on_fetch_failed(self, message: FetchFailed) -> bool:
        if not self._finish_request(message.request_id):
            self._run_queued()
            return False
        error = message.error
        if isinstance(error, (AuthError, NotFoundError)):
            self.paused = True
            self._refresh_queued = False
            text = f"Refresh failed: {describe_error(error)} (press r to retry)"
        else:
            text = f"Refresh failed: {describe_error(error)}"
            if error.retryable and self._watcher is not None:
                self._watcher.schedule_retry()
        log.warning(f"[SESSION] {text}")
        self.status = StatusLine(text, StatusLevel.ERROR)
        self._run_queued()
        return True

    def _on_sync_completed(self, message: SyncCompleted) -> bool:
        if message.ok or self.state is None:
            return False
        if self._sync is not None and not self._sync.is_pending(message.path):
            confirmed = self._sync.confirmed(message.path)
            if confirmed is not None:
                self.state = apply_command(self.state, SetViewed(message.path, confirmed))
        self.status = StatusLine(f"Could not update viewed state of {message.path}: {message.error}", StatusLevel.ERROR)
        return True

    # Rendering helpers

    def snapshot(self) -> RenderSnapshot:
        if self.state is None:
            raise RuntimeError("session has not been started")
        return build_snapshot(self.state, watching=self.watching, paused=self.paused, status=self.status)

    def editor_target(self) -> Optional[tuple[str, int]]:
        return editor_target(self.state) if self.state is not None else None
