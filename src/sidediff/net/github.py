"""Blocking GitHub API client used by the pull-request source.

Runs on background threads only. Every failure is mapped onto the engine's error
taxonomy so the session can decide whether to keep retrying:

- missing token, 401, 403 → :class:`AuthError`
- 404 or GraphQL ``NOT_FOUND`` → :class:`NotFoundError`
- timeouts, transport errors, 429, 5xx and rate-limit 403s → :class:`NetworkError`
- anything else → :class:`FetchError`
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from sidediff.errors import AuthError, FetchError, NetworkError, NotFoundError
from sidediff.utils.config import config
from sidediff.utils.error_handling import log_api_error
from sidediff.utils.logger import log

from .refs import PullRequestRef

USER_AGENT = "sidediff"
JSON_MEDIA_TYPE = "application/vnd.github+json"
DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"

_VIEWED_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      files(first: 100, after: $after) {
        nodes { path viewerViewedState }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_MARK_MUTATION = """
mutation($id: ID!, $path: String!) {
  markFileAsViewed(input: {pullRequestId: $id, path: $path}) { clientMutationId }
}
"""

_UNMARK_MUTATION = """
mutation($id: ID!, $path: String!) {
  unmarkFileAsViewed(input: {pullRequestId: $id, path: $path}) { clientMutationId }
}
"""

# Upper bound on GraphQL pages; 100 files per page
_MAX_PAGES = 30


@dataclass(frozen=True)
class PullRequestInfo:
    """Pull request metadata needed for headers, footers and mutations."""

    number: int
    node_id: str
    title: str
    base_ref: str
    head_ref: str
    base_owner: str
    head_owner: Optional[str]
    state: str = "open"

    @property
    def is_fork(self) -> bool:
        return self.head_owner is None or self.head_owner != self.base_owner

    @property
    def base_label(self) -> str:
        return self.base_ref

    @property
    def head_label(self) -> str:
        if self.is_fork:
            return f"{self.head_owner or 'unknown'}:{self.head_ref}"
        return self.head_ref

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PullRequestInfo:
        try:
            base = data["base"]
            head = data["head"]
            head_repo = head.get("repo") or {}
            return cls(
                number=int(data["number"]),
                node_id=str(data["node_id"]),
                title=str(data.get("title") or ""),
                base_ref=str(base["ref"]),
                head_ref=str(head["ref"]),
                base_owner=str(base["repo"]["owner"]["login"]),
                # A deleted fork leaves head.repo null
                head_owner=(head_repo.get("owner") or {}).get("login"),
                state=str(data.get("state") or "open"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"unexpected pull request payload: {e}") from e


class GitHubClient:
    """Thin wrapper over :class:`httpx.Client` for the few calls the viewer needs."""

    def __init__(self, token: Optional[str], timeout: Optional[float] = None, transport: httpx.BaseTransport | None = None):
        self._token = token
        self._timeout = timeout if timeout is not None else config.network_timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the underlying HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _request(self, method: str, url: str, *, accept: str = JSON_MEDIA_TYPE, json: Any = None) -> httpx.Response:
        if not self._token:
            raise AuthError("no GitHub token; set GITHUB_TOKEN or pass --token")
        headers = {"Accept": accept, "Authorization": f"Bearer {self._token}"}
        log(f"[API] {method} {url}")
        try:
            response = self._get_client().request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as e:
            log_api_error(method, url, e)
            raise NetworkError(f"request to {url} timed out") from e
        except httpx.HTTPError as e:
            log_api_error(method, url, e)
            raise NetworkError(f"request to {url} failed: {e}") from e

        error = _status_error(response)
        if error is not None:
            log_api_error(method, url, error, response.status_code)
            raise error
        return response

    def _graphql(self, ref: PullRequestRef, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        response = self._request("POST", ref.graphql_url, json={"query": query, "variables": variables})
        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"invalid GraphQL response: {e}") from e
        errors = payload.get("errors") or []
        if errors:
            error = _graphql_error(errors)
            log_api_error("POST", ref.graphql_url, error)
            raise error
        return payload.get("data") or {}

    def get_pull_request(self, ref: PullRequestRef) -> PullRequestInfo:
        response = self._request("GET", ref.api_url + ref.rest_path)
        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"invalid pull request response: {e}") from e
        return PullRequestInfo.from_json(data)

    def get_diff(self, ref: PullRequestRef) -> str:
        """Unified diff text of the whole pull request."""
        return self._request("GET", ref.api_url + ref.rest_path, accept=DIFF_MEDIA_TYPE).text

    def get_viewed_states(self, ref: PullRequestRef) -> dict[str, bool]:
        """Map of path → viewed for every file of the pull request.

        ``DISMISSED`` (viewed, then changed) counts as not viewed.
        """
        states: dict[str, bool] = {}
        after: Optional[str] = None
        for _ in range(_MAX_PAGES):
            data = self._graphql(
                ref,
                _VIEWED_QUERY,
                {"owner": ref.owner, "name": ref.repo, "number": ref.number, "after": after},
            )
            pull = ((data.get("repository") or {}).get("pullRequest")) or None
            if pull is None:
                raise NotFoundError(f"pull request {ref} not found")
            files = pull.get("files") or {}
            for node in files.get("nodes") or []:
                states[node["path"]] = node.get("viewerViewedState") == "VIEWED"
            page = files.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                break
            after = page.get("endCursor")
        else:
            log.warning(f"[API] Viewed states for {ref} truncated after {_MAX_PAGES} pages")
        return states

    def set_viewed(self, ref: PullRequestRef, node_id: str, path: str, viewed: bool) -> None:
        mutation = _MARK_MUTATION if viewed else _UNMARK_MUTATION
        self._graphql(ref, mutation, {"id": node_id, "path": path})
        log.debug(f"[API] {ref} {path} -> {'viewed' if viewed else 'unviewed'}")


def _status_error(response: httpx.Response) -> FetchError | None:
    status = response.status_code
    if status < 400:
        return None
    if status == 401:
        return AuthError("GitHub rejected the token (HTTP 401)")
    if status == 403:
        if response.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in response.text.lower():
            return NetworkError("GitHub API rate limit exceeded (HTTP 403)")
        return AuthError("access denied by GitHub (HTTP 403)")
    if status == 404:
        return NotFoundError("pull request or repository not found (HTTP 404)")
    if status == 429 or status >= 500:
        return NetworkError(f"GitHub API unavailable (HTTP {status})")
    return FetchError(f"GitHub API request failed (HTTP {status})")


def _graphql_error(errors: list[dict[str, Any]]) -> FetchError:
    first = errors[0]
    kind = str(first.get("type") or "")
    message = str(first.get("message") or "GraphQL request failed")
    if kind == "NOT_FOUND":
        return NotFoundError(message)
    if kind in ("FORBIDDEN", "INSUFFICIENT_SCOPES"):
        return AuthError(message)
    if kind == "RATE_LIMITED":
        return NetworkError(message)
    return FetchError(message)
