"""Build the diff source selected on the command line."""

from __future__ import annotations

from sidediff.net.github import GitHubClient
from sidediff.net.refs import parse_pr_reference
from sidediff.utils.config import SourceConfig
from sidediff.utils.logger import log

from .base import DiffSource
from .git import BranchCompareSource, LocalRefSource, get_remote_repo
from .pull_request import PullRequestSource


def create_source(source_config: SourceConfig) -> DiffSource:
    """Create a DiffSource from a validated SourceConfig.

    Raises:
        ValidationError: If a pull request reference cannot be resolved
    """
    if source_config.pr:
        default_repo = get_remote_repo(source_config.repo)
        ref = parse_pr_reference(source_config.pr, default_repo)
        source: DiffSource = PullRequestSource(ref, GitHubClient(source_config.token))
    elif source_config.base or source_config.head:
        source = BranchCompareSource(
            base=source_config.base or "main",
            head=source_config.head,
            three_dot=source_config.three_dot,
            paths=source_config.paths,
            repo=source_config.repo,
        )
    else:
        source = LocalRefSource(source_config.ref, paths=source_config.paths, repo=source_config.repo)
    log.info(f"[SOURCE] Using {source!r}")
    return source
