"""Exception taxonomy for the diff engine.

Every error here is recoverable from the viewer's point of view: the session keeps
running on the last good DiffSet. Only a failure of the very first fetch reaches the
caller before the UI starts.
"""


class SideDiffError(Exception):
    """Base class for engine errors."""


class ParseError(SideDiffError):
    """A fragment of unified diff text could not be understood."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class FetchError(SideDiffError):
    """A diff source could not produce a DiffSet."""

    retryable = False


class AuthError(FetchError):
    """Credentials are missing or were rejected by the hosting API."""


class NotFoundError(FetchError):
    """The requested revision, repository or pull request does not exist."""


class NetworkError(FetchError):
    """Transient transport failure; the watch controller keeps retrying."""

    retryable = True


class SyncError(SideDiffError):
    """A remote viewed-state update failed."""

    def __init__(self, message: str, path: str, viewed: bool):
        super().__init__(message)
        self.path = path
        self.viewed = viewed


class WatchError(SideDiffError):
    """The file-system observer could not be started."""
