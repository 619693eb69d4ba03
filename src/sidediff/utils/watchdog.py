from __future__ import annotations

import os
import threading
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from sidediff.errors import WatchError

from .error_handling import log_watch_error
from .logger import log

IGNORED_DIR_PARTS = (os.path.join(".git", "objects"), os.path.join(".git", "logs"))
IGNORED_SUFFIXES = (".lock", ".swp", "~")


def is_ignored_path(path: str) -> bool:
    """Git internals and editor scratch files that never change the diff."""
    if not path:
        return True
    normalized = os.path.normpath(path)
    if any(part in normalized for part in IGNORED_DIR_PARTS):
        return True
    return normalized.endswith(IGNORED_SUFFIXES)


class _DebouncedHandler(FileSystemEventHandler):
    def __init__(
        self,
        callback: Callable[[], None],
        debounce_ms: int = 300,
        ignore: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self._callback = callback
        self._debounce = max(0, int(debounce_ms)) / 1000.0
        self._ignore = ignore or is_ignored_path
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def _schedule(self) -> None:
        def fire() -> None:
            try:
                self._callback()
            except (RuntimeError, OSError) as e:
                log(f"[WATCHDOG] Callback failed: {e}")

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce, fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # Watchdog hooks
    def on_any_event(self, event: FileSystemEvent):  # type: ignore[override]
        # Only react to events that likely change file contents or names.
        et = getattr(event, "event_type", "")
        if et not in ("modified", "created", "moved", "deleted"):
            return
        paths = [getattr(event, "src_path", ""), getattr(event, "dest_path", "")]
        paths = [os.fsdecode(p) for p in paths if p]
        if paths and all(self._ignore(p) for p in paths):
            return
        log("[WATCHDOG] Event:", et, "on", paths[0] if paths else "")
        self._schedule()


def start_observer(
    path: str,
    on_change: Callable[[], None],
    *,
    recursive: bool = True,
    debounce_ms: int = 300,
    ignore: Optional[Callable[[str], bool]] = None,
) -> tuple[object, Callable[[], None]]:
    """
    Start a filesystem observer and return (observer, stop_fn).

    stop_fn() is idempotent and cancels any pending debounced callbacks.

    Raises:
        WatchError: If the path cannot be watched (missing, inotify limits, ...)
    """
    abs_path = os.path.abspath(path)
    log(f"[WATCHDOG] Watching path: {abs_path}")
    if not os.path.isdir(abs_path):
        raise WatchError(f"cannot watch {abs_path}: not a directory")

    handler = _DebouncedHandler(on_change, debounce_ms=debounce_ms, ignore=ignore)
    observer = Observer()
    observer.daemon = True
    try:
        observer.schedule(handler, abs_path, recursive=recursive)
        observer.start()
    except (OSError, RuntimeError) as e:
        log_watch_error(abs_path, "starting observer", e)
        raise WatchError(f"cannot watch {abs_path}: {e}") from e

    _stopped = False
    _lock = threading.Lock()

    def stop() -> None:
        nonlocal _stopped
        with _lock:
            if _stopped:
                return
            _stopped = True
        handler.cancel()
        try:
            observer.stop()
            observer.join(timeout=0.5)
        except (RuntimeError, OSError) as e:
            log_watch_error(abs_path, "stopping observer", e)

    return observer, stop
