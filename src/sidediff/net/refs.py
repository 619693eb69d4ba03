"""Pull request identifiers.

A reference can be written as ``123``, ``#123``, ``owner/repo#123`` or as a web URL
``https://github.com/owner/repo/pull/123``. Bare numbers need the repository from the
local ``origin`` remote.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from sidediff.utils.logger import log
from sidediff.utils.validation import ValidationError

DEFAULT_HOST = "github.com"

_URL_RE = re.compile(r"^https?://(?P<host>[^/]+)/(?P<owner>[^/]+)/(?P<repo>[^/]+)/pulls?/(?P<number>\d+)(?:[/?#].*)?$")
_SHORT_RE = re.compile(r"^(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)#(?P<number>\d+)$")
_NUMBER_RE = re.compile(r"^#?(?P<number>\d+)$")


@dataclass(frozen=True)
class PullRequestRef:
    """Identifies one pull request on a GitHub (or GitHub Enterprise) host."""

    owner: str
    repo: str
    number: int
    host: str = DEFAULT_HOST

    def __post_init__(self):
        if not self.owner or not self.repo:
            raise ValueError("owner and repo cannot be empty")
        if self.number < 1:
            raise ValueError(f"pull request number must be positive, got {self.number}")
        if self.host != DEFAULT_HOST:
            log.debug(f"[API] Using enterprise host {self.host}")

    @property
    def api_url(self) -> str:
        if self.host == DEFAULT_HOST:
            return "https://api.github.com"
        return f"https://{self.host}/api/v3"

    @property
    def graphql_url(self) -> str:
        if self.host == DEFAULT_HOST:
            return "https://api.github.com/graphql"
        return f"https://{self.host}/api/graphql"

    @property
    def rest_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}/pulls/{self.number}"

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


def parse_pr_reference(text: str, default_repo: Optional[tuple[str, str, str]] = None) -> PullRequestRef:
    """Parse a pull request reference.

    Args:
        text: Number, ``#number``, ``owner/repo#number`` or a pull request URL
        default_repo: ``(host, owner, repo)`` used for bare numbers

    Raises:
        ValidationError: If the reference cannot be understood
    """
    value = (text or "").strip()
    if not value:
        raise ValidationError("Pull request reference cannot be empty")

    match = _URL_RE.match(value)
    if match:
        repo = match.group("repo")
        return PullRequestRef(match.group("owner"), repo.removesuffix(".git"), int(match.group("number")), match.group("host"))

    match = _SHORT_RE.match(value)
    if match:
        host = default_repo[0] if default_repo else DEFAULT_HOST
        return PullRequestRef(match.group("owner"), match.group("repo"), int(match.group("number")), host)

    match = _NUMBER_RE.match(value)
    if match:
        if not default_repo:
            raise ValidationError(
                f"Cannot resolve pull request {value}: no GitHub 'origin' remote; use owner/repo#{match.group('number')}"
            )
        host, owner, repo = default_repo
        return PullRequestRef(owner, repo, int(match.group("number")), host)

    raise ValidationError(f"Not a pull request reference: {value}")
