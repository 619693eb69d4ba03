import os
import shutil
import subprocess
import sys
from typing import Iterable, Optional

import pytest

# Ensure local src path is importable
_here = os.path.dirname(os.path.dirname(__file__))
_src = os.path.join(_here, "src")
if os.path.isdir(_src) and _src not in sys.path:
    sys.path.insert(0, _src)

from sidediff.diff.models import (  # noqa: E402
    ChangeKind,
    DiffLine,
    DiffSet,
    FileDiff,
    Hunk,
    LineKind,
    SourceInfo,
    SourceKind,
)
from sidediff.errors import FetchError  # noqa: E402
from sidediff.sources.base import DiffSource  # noqa: E402

MODIFIED_DIFF = "\n".join(
    [
        "diff --git a/src/app.py b/src/app.py",
        "index 83db48f..bf269f4 100644",
        "--- a/src/app.py",
        "+++ b/src/app.py",
        "@@ -1,4 +1,5 @@ def main():",
        " import os",
        "-import sys",
        "+import sys, re",
        "+import json",
        " ",
        " def main():",
        "@@ -10,2 +11,2 @@",
        "-    return 1",
        "+    return 0",
        " # end",
        "",
    ]
)

TRUNCATED_HEADER_DIFF = "\n".join(
    [
        "diff --git a/good.txt b/good.txt",
        "--- a/good.txt",
        "+++ b/good.txt",
        "@@ -1,2 +1,2 @@",
        " keep",
        "-old",
        "+new",
        "diff --git a/bad.txt b/bad.txt",
        "--- a/bad.txt",
        "+++ b/bad.txt",
        "@@ -1,2 +1",
        " keep",
        "-old",
        "",
    ]
)

BINARY_DIFF = "\n".join(
    [
        "diff --git a/logo.png b/logo.png",
        "index 1111111..2222222 100644",
        "Binary files a/logo.png and b/logo.png differ",
        "",
    ]
)


def make_hunk(lines: Iterable[str], old_start: int = 1, new_start: int = 1, heading: str = "") -> Hunk:
    """Build a Hunk from ``+``/``-``/`` `` prefixed lines, numbering both sides."""
    body = []
    old_no, new_no = old_start, new_start
    for raw in lines:
        tag, text = raw[:1], raw[1:]
        if tag == "+":
            body.append(DiffLine(LineKind.ADDED, text, None, new_no))
            new_no += 1
        elif tag == "-":
            body.append(DiffLine(LineKind.REMOVED, text, old_no, None))
            old_no += 1
        else:
            body.append(DiffLine(LineKind.CONTEXT, text, old_no, new_no))
            old_no += 1
            new_no += 1
    return Hunk(
        old_start=old_start,
        old_length=old_no - old_start,
        new_start=new_start,
        new_length=new_no - new_start,
        lines=tuple(body),
        heading=heading,
    )


def make_file(path: str, *hunks: Hunk, kind: ChangeKind = ChangeKind.MODIFIED, **kwargs) -> FileDiff:
    return FileDiff(path=path, change_kind=kind, hunks=tuple(hunks), **kwargs)


def context_file(path: str, rows: int, hunks: int = 1) -> FileDiff:
    """A file with ``hunks`` hunks of ``rows`` context lines each."""
    return make_file(
        path,
        *[make_hunk([f" line {h}-{i}" for i in range(rows)], old_start=1 + h * 100, new_start=1 + h * 100) for h in range(hunks)],
    )


def make_diffset(*files: FileDiff, kind: SourceKind = SourceKind.WORKING_TREE, **info) -> DiffSet:
    return DiffSet(files=tuple(files), source=SourceInfo(kind=kind, **info))


class FakeSource(DiffSource):
    """In-memory source: returns queued results in order, repeating the last one."""

    def __init__(
        self,
        results: Iterable = (),
        *,
        kind: SourceKind = SourceKind.WORKING_TREE,
        viewed_sync: bool = False,
        watch_root: Optional[str] = None,
        name: str = "fake",
    ):
        self.results = list(results)
        self.kind = kind
        self.supports_viewed_sync = viewed_sync
        self._watch_root = watch_root
        self.name = name
        self.fetch_count = 0
        self.viewed_calls: list[tuple[str, bool]] = []
        self.viewed_error: Optional[FetchError] = None
        self.on_set_viewed = None
        self.closed = False

    @property
    def watch_root(self) -> Optional[str]:
        return self._watch_root

    def describe(self) -> str:
        return self.name

    def fetch(self) -> DiffSet:
        self.fetch_count += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def set_file_viewed(self, path: str, viewed: bool) -> None:
        self.viewed_calls.append((path, viewed))
        if self.on_set_viewed is not None:
            self.on_set_viewed(path, viewed)
        if self.viewed_error is not None:
            raise self.viewed_error

    def close(self) -> None:
        self.closed = True


class _Handle:
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects scheduled callbacks so tests decide when (and whether) they run."""

    def __init__(self):
        self.handles: list[_Handle] = []

    def __call__(self, delay: float, callback) -> _Handle:
        handle = _Handle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self.handles if not h.cancelled and not h.ran]

    def run_all(self) -> int:
        ran = 0
        while self.pending:
            handle = self.pending[0]
            handle.ran = True
            handle.callback()
            ran += 1
        return ran


class DeferredSpawner:
    """Collects spawned fetch tasks instead of starting threads."""

    def __init__(self):
        self.tasks = []

    def __call__(self, target) -> None:
        self.tasks.append(target)

    def run_next(self) -> None:
        self.tasks.pop(0)()


def run_inline(target) -> None:
    target()


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def deferred_spawner() -> DeferredSpawner:
    return DeferredSpawner()


def _git(repo, *args) -> str:
    return subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True).stdout


@pytest.fixture
def git_env(monkeypatch, tmp_path):
    """Isolate git from the user's configuration."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    return tmp_path


@pytest.fixture
def git_repo(git_env):
    """A repository on branch ``main`` with one commit containing ``a.txt``."""
    repo = git_env / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    (repo / "a.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
    _git(repo, "add", "a.txt")
    _git(repo, "commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def git():
    return _git
