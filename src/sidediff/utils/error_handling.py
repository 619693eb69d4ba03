"""Consistent error logging for the diff engine.

Every background component reports failures through these helpers so the debug log
reads the same way whether the failure came from git, the GitHub API, the parser,
the file watcher or the viewed-state synchronizer.
"""

from typing import Optional, Sequence

from .logger import log


def log_git_error(args: Sequence[str], exception: Exception) -> None:
    """Log a failed git invocation.

    Args:
        args: The git arguments (without the leading ``git``)
        exception: The exception that was raised
    """
    error_type = type(exception).__name__
    log.warning(f"[GIT] Failed git {' '.join(args)}: {error_type}: {exception}")


def log_api_error(method: str, url: str, exception: Exception, status: Optional[int] = None) -> None:
    """Log a failed hosting API request.

    Args:
        method: HTTP method
        url: Request URL
        exception: The exception that was raised
        status: HTTP status code when a response was received
    """
    error_type = type(exception).__name__
    status_str = f" (HTTP {status})" if status else ""
    log.warning(f"[API] Failed {method} {url}{status_str}: {error_type}: {exception}")


def log_parse_error(path: Optional[str], exception: Exception) -> None:
    """Log a file section that could not be parsed and was degraded.

    Args:
        path: Best-known path of the file section
        exception: The exception that was raised
    """
    error_type = type(exception).__name__
    log.warning(f"[PARSE] Degraded {path or '<unknown>'}: {error_type}: {exception}")


def log_watch_error(path: str, operation: str, exception: Exception) -> None:
    """Log file watching errors.

    Args:
        path: Path being watched
        operation: The operation being performed (e.g., "starting observer")
        exception: The exception that was raised
    """
    error_type = type(exception).__name__
    log.warning(f"[WATCH] Failed {operation} for {path}: {error_type}: {exception}")


def log_sync_error(path: str, viewed: bool, exception: Exception) -> None:
    """Log a failed remote viewed-state update.

    Args:
        path: File path whose viewed flag was being sent
        viewed: The value that was being sent
        exception: The exception that was raised
    """
    error_type = type(exception).__name__
    state = "viewed" if viewed else "unviewed"
    log.warning(f"[SYNC] Failed marking {path} as {state}: {error_type}: {exception}")


def describe_error(exception: Exception) -> str:
    """Short user-facing description for the status line."""
    message = str(exception).strip() or type(exception).__name__
    return message.splitlines()[0]
