from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, TextIO

# Leveled logger shared by every sidediff module
# Use: from sidediff.utils.logger import log
# log.info("message")
# log.debug("fetch finished", extra={"files": 3})
# log.error("fetch failed", exc_info=sys.exc_info())


class LogLevel(IntEnum):
    """Log severity levels."""
    DEBUG = 10
    INFO = 20
    WARN = 30
    WARNING = 30  # Alias for WARN
    ERROR = 40
    CRITICAL = 50


_COLORS = {
    LogLevel.DEBUG: "\033[90m",
    LogLevel.INFO: "\033[0m",
    LogLevel.WARN: "\033[93m",
    LogLevel.ERROR: "\033[91m",
    LogLevel.CRITICAL: "\033[95m",
}
_RESET = "\033[0m"


class Logger:
    """Logger with levels, optional file output and a console switch.

    The console is turned off while the terminal UI owns the screen; file output
    keeps working so background threads stay observable.
    """

    def __init__(self):
        self._level = LogLevel.INFO
        self._file_handle: TextIO | None = None
        self._file_path: Path | None = None
        self._console = True
        self._format_string = "{timestamp} [{level:8}] {message}"

        self._configure_from_env()

    def _configure_from_env(self) -> None:
        """Configure logger from environment variables."""
        if os.environ.get("DEBUG") == "1":
            self._level = LogLevel.DEBUG
            self.set_file_output(Path(tempfile.gettempdir()) / "sidediff_debug.log")

        log_file = os.environ.get("SIDEDIFF_LOG_FILE")
        if log_file:
            self.set_file_output(Path(log_file))

        level_str = os.environ.get("LOG_LEVEL", "").upper()
        if level_str in LogLevel.__members__:
            self._level = LogLevel[level_str]

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def file_path(self) -> Path | None:
        return self._file_path

    def set_level(self, level: LogLevel) -> None:
        """Set the minimum log level."""
        self._level = level

    def set_console_output(self, enabled: bool) -> None:
        """Enable or disable writing to stdout."""
        self._console = enabled

    def set_file_output(self, path: Path, append: bool = True) -> None:
        """Enable file output for logging."""
        try:
            if self._file_handle:
                self._file_handle.close()
            self._file_handle = open(path, "a" if append else "w", encoding="utf-8")
            self._file_path = path
        except OSError:
            # Nowhere to report a broken log destination
            self._file_handle = None
            self._file_path = None

    def close(self) -> None:
        if self._file_handle:
            try:
                self._file_handle.close()
            except OSError:
                pass
        self._file_handle = None
        self._file_path = None

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        extra: dict | None = None,
        exc_info: tuple | None = None
    ) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        formatted = self._format_string.format(timestamp=timestamp, level=level.name, message=message)

        if extra:
            formatted += f" | {extra}"

        if exc_info and exc_info[0] is not None:
            import traceback
            formatted += "\n" + "".join(traceback.format_exception(*exc_info))

        return formatted

    def _write(
        self,
        level: LogLevel,
        *args: Any,
        sep: str = " ",
        extra: dict | None = None,
        exc_info: tuple | None = None
    ) -> None:
        if level < self._level:
            return

        message = sep.join(str(a) for a in args)
        formatted = self._format_message(level, message, extra, exc_info)

        if self._file_handle:
            try:
                self._file_handle.write(formatted + "\n")
                self._file_handle.flush()
            except (OSError, ValueError):
                pass

        if not self._console:
            return
        try:
            if sys.stdout.isatty():
                sys.stdout.write(f"{_COLORS.get(level, _RESET)}{formatted}{_RESET}\n")
            else:
                sys.stdout.write(formatted + "\n")
            sys.stdout.flush()
        except (OSError, ValueError, AttributeError):
            # Never raise from logging
            pass

    def debug(self, *args: Any, **kwargs) -> None:
        """Log a debug message."""
        self._write(LogLevel.DEBUG, *args, **kwargs)

    def info(self, *args: Any, **kwargs) -> None:
        """Log an info message."""
        self._write(LogLevel.INFO, *args, **kwargs)

    def warn(self, *args: Any, **kwargs) -> None:
        """Log a warning message."""
        self._write(LogLevel.WARN, *args, **kwargs)

    def warning(self, *args: Any, **kwargs) -> None:
        """Alias for warn()."""
        self.warn(*args, **kwargs)

    def error(self, *args: Any, **kwargs) -> None:
        """Log an error message."""
        self._write(LogLevel.ERROR, *args, **kwargs)

    def critical(self, *args: Any, **kwargs) -> None:
        """Log a critical message."""
        self._write(LogLevel.CRITICAL, *args, **kwargs)

    def __call__(self, *args: Any, sep: str = " ") -> None:
        """Shorthand for debug-level tracing: ``log("[GIT] running", cmd)``."""
        self.debug(*args, sep=sep)


log = Logger()
