"""Remote pull request source backed by the GitHub API."""

from __future__ import annotations

import dataclasses
from typing import Optional

from sidediff.diff.models import DiffSet, SourceInfo, SourceKind
from sidediff.diff.parser import parse_unified_diff
from sidediff.net.github import GitHubClient
from sidediff.net.refs import PullRequestRef
from sidediff.utils.logger import log

from .base import DiffSource


class PullRequestSource(DiffSource):
    """A pull request: metadata, diff text and the reviewer's viewed flags.

    The pull request's GraphQL node id is learned on the first fetch and reused for
    viewed-state mutations.
    """

    kind = SourceKind.PULL_REQUEST
    supports_viewed_sync = True

    def __init__(self, ref: PullRequestRef, client: GitHubClient):
        self.ref = ref
        self.client = client
        self._node_id: Optional[str] = None

    def describe(self) -> str:
        return f"#{self.ref.number}"

    def fetch(self) -> DiffSet:
        info = self.client.get_pull_request(self.ref)
        self._node_id = info.node_id
        text = self.client.get_diff(self.ref)
        viewed = self.client.get_viewed_states(self.ref)

        files = [dataclasses.replace(f, remote_viewed=viewed.get(f.path, False)) for f in parse_unified_diff(text)]
        log.debug(f"[API] {self.ref}: {len(files)} file(s), {sum(viewed.values())} viewed")
        source = SourceInfo(
            kind=self.kind,
            target=self.describe(),
            pr_number=info.number,
            pr_title=info.title,
            base_label=info.base_label,
            head_label=info.head_label,
        )
        return DiffSet(files=tuple(files), source=source)

    def set_file_viewed(self, path: str, viewed: bool) -> None:
        if self._node_id is None:
            self._node_id = self.client.get_pull_request(self.ref).node_id
        self.client.set_viewed(self.ref, self._node_id, path, viewed)

    def close(self) -> None:
        self.client.close()
