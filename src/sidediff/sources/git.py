"""Local git diff sources.

Every diff is produced by ``git diff`` with forced ``a/``/``b/`` prefixes, no colour and
no external diff driver, so the parser sees the same text regardless of user config.
"""

from __future__ import annotations

import os
import re
import subprocess
from typing import Optional, Sequence

from sidediff.diff.models import DiffSet, SourceInfo, SourceKind
from sidediff.diff.parser import parse_unified_diff
from sidediff.errors import FetchError, NotFoundError
from sidediff.utils.config import config
from sidediff.utils.error_handling import log_git_error
from sidediff.utils.logger import log

from .base import DiffSource

# Hash of the empty tree object; lets a repository without commits diff against "nothing"
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

_DIFF_FLAGS = ("--no-color", "--no-ext-diff", "-M", "--src-prefix=a/", "--dst-prefix=b/")
_NOT_FOUND_MARKERS = (
    "unknown revision",
    "bad revision",
    "ambiguous argument",
    "not a valid object name",
    "invalid object name",
    "no merge base",
)

_REMOTE_RE = re.compile(r"(?:[:/])([^/:]+)/([^/]+?)(?:\.git)?/?$")


class GitCommandError(FetchError):
    """git exited with an unexpected status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        detail = stderr.strip().splitlines()[0] if stderr.strip() else f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)}: {detail}")
        self.returncode = returncode
        self.stderr = stderr


def run_git(args: Sequence[str], cwd: Optional[str] = None, ok_codes: Sequence[int] = (0,)) -> str:
    """Run git and return stdout.

    Raises:
        NotFoundError: an unknown revision or a directory that is not a repository
        FetchError: git is missing or failed otherwise
    """
    cmd = ["git", "-c", "core.quotepath=false", *args]
    log(f"[GIT] {' '.join(args)} (cwd={cwd or os.getcwd()})")
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as e:
        log_git_error(args, e)
        raise FetchError("git executable not found") from e
    except OSError as e:
        log_git_error(args, e)
        raise FetchError(f"could not run git: {e}") from e

    if proc.returncode not in ok_codes:
        stderr = proc.stderr or ""
        lowered = stderr.lower()
        if "not a git repository" in lowered:
            error: FetchError = NotFoundError(f"{cwd or os.getcwd()} is not a git repository")
        elif any(marker in lowered for marker in _NOT_FOUND_MARKERS):
            error = NotFoundError(stderr.strip().splitlines()[0])
        else:
            error = GitCommandError(args, proc.returncode, stderr)
        log_git_error(args, error)
        raise error
    return proc.stdout


def get_current_branch(cwd: Optional[str] = None) -> str:
    """Name of the checked-out branch, or ``unknown`` when it cannot be determined."""
    try:
        return run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd).strip() or "unknown"
    except FetchError:
        return "unknown"


def get_repo_root(cwd: Optional[str] = None) -> str:
    return run_git(["rev-parse", "--show-toplevel"], cwd=cwd).strip()


def get_remote_repo(cwd: Optional[str] = None, remote: str = "origin") -> Optional[tuple[str, str, str]]:
    """Return ``(host, owner, name)`` parsed from a remote URL, if any."""
    try:
        url = run_git(["remote", "get-url", remote], cwd=cwd).strip()
    except FetchError:
        return None
    return parse_remote_url(url)


def parse_remote_url(url: str) -> Optional[tuple[str, str, str]]:
    """Parse ``git@host:owner/repo.git`` or ``https://host/owner/repo`` forms."""
    url = url.strip()
    if not url:
        return None
    host = ""
    if "://" in url:
        rest = url.split("://", 1)[1]
        host = rest.split("/", 1)[0].rsplit("@", 1)[-1].split(":", 1)[0]
    elif "@" in url and ":" in url:
        host = url.split("@", 1)[1].split(":", 1)[0]
    match = _REMOTE_RE.search(url)
    if not match or not host:
        return None
    return host, match.group(1), match.group(2)


def _rev_exists(rev: str, cwd: Optional[str]) -> bool:
    out = run_git(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], cwd=cwd, ok_codes=(0, 1, 128))
    return bool(out.strip())


def split_ref_expression(ref: Optional[str]) -> tuple[Optional[str], Optional[str], bool]:
    """Split ``A..B`` / ``A...B`` / ``X`` into ``(from, to, merge_base)``.

    An empty side defaults to ``HEAD`` as git does.
    """
    if not ref:
        return None, None, False
    if "..." in ref:
        left, right = ref.split("...", 1)
        return left or "HEAD", right or "HEAD", True
    if ".." in ref:
        left, right = ref.split("..", 1)
        return left or "HEAD", right or "HEAD", False
    return ref, None, False


class LocalRefSource(DiffSource):
    """Working tree, a single commit, or a commit range of a local repository."""

    def __init__(self, ref: Optional[str] = None, paths: Sequence[str] = (), repo: Optional[str] = None):
        self.ref = (ref or "").strip() or None
        self.paths = tuple(p for p in paths if p)
        self.repo = repo

    @property
    def kind(self) -> SourceKind:
        if self.ref is None:
            return SourceKind.WORKING_TREE
        from_ref, to_ref, _ = split_ref_expression(self.ref)
        return SourceKind.RANGE if to_ref is not None else SourceKind.COMMIT

    @property
    def watch_root(self) -> Optional[str]:
        return self.repo or os.getcwd()

    def describe(self) -> str:
        return self.ref or "working tree"

    def _current_ref(self) -> Optional[str]:
        return self.ref

    def fetch(self) -> DiffSet:
        ref = self._current_ref()
        if ref is None:
            text = self._working_tree_diff()
        else:
            text = self._ref_diff(ref)
        files = parse_unified_diff(text)
        log.debug(f"[GIT] {self.describe()}: {len(files)} changed file(s)")
        info = SourceInfo(
            kind=self.kind,
            target=self.describe(),
            branch=get_current_branch(self.repo),
        )
        return DiffSet(files=tuple(files), source=info)

    def _diff(self, revs: Sequence[str]) -> str:
        args = ["diff", *_DIFF_FLAGS, *revs]
        if self.paths:
            args += ["--", *self.paths]
        return run_git(args, cwd=self.repo)

    def _ref_diff(self, ref: str) -> str:
        from_ref, to_ref, merge_base = split_ref_expression(ref)
        if to_ref is None:
            parent = f"{from_ref}^"
            base = parent if _rev_exists(parent, self.repo) else EMPTY_TREE
            if base == EMPTY_TREE and not _rev_exists(from_ref, self.repo):
                raise NotFoundError(f"unknown revision: {from_ref}")
            return self._diff([base, from_ref])
        if merge_base:
            from_ref = run_git(["merge-base", from_ref, to_ref], cwd=self.repo).strip()
        return self._diff([from_ref, to_ref])

    def _working_tree_diff(self) -> str:
        base = "HEAD" if _rev_exists("HEAD", self.repo) else EMPTY_TREE
        tracked = self._diff([base])
        return tracked + self._untracked_diff()

    def _untracked_diff(self) -> str:
        args = ["ls-files", "--others", "--exclude-standard", "-z"]
        if self.paths:
            args += ["--", *self.paths]
        names = [name for name in run_git(args, cwd=self.repo).split("\0") if name]
        limit = config.max_untracked_files
        if len(names) > limit:
            log.warning(f"[GIT] {len(names)} untracked files, showing the first {limit}")
            names = names[:limit]
        chunks: list[str] = []
        for name in names:
            # --no-index exits 1 when the files differ, which is always the case here
            chunks.append(
                run_git(
                    ["diff", "--no-index", *_DIFF_FLAGS, "--", os.devnull, name],
                    cwd=self.repo,
                    ok_codes=(0, 1),
                )
            )
        return "".join(chunks)


class BranchCompareSource(LocalRefSource):
    """Comparison of two branches, ``base...head`` (merge-base) or ``base..head``.

    Without an explicit head the checked-out branch is used, resolved on every fetch so
    switching branches while watching follows the new branch.
    """

    kind = SourceKind.BRANCH

    def __init__(
        self,
        base: str = "main",
        head: Optional[str] = None,
        three_dot: bool = True,
        paths: Sequence[str] = (),
        repo: Optional[str] = None,
    ):
        super().__init__(ref=None, paths=paths, repo=repo)
        self.base = base
        self.head = head
        self.three_dot = three_dot

    def _current_ref(self) -> str:
        head = self.head or get_current_branch(self.repo)
        if head == "unknown":
            head = "HEAD"
        return f"{self.base}{'...' if self.three_dot else '..'}{head}"

    def describe(self) -> str:
        return f"{self.base}{'...' if self.three_dot else '..'}{self.head or 'HEAD'}"
