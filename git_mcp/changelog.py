"""Commit listing between two refs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from git_mcp.errors import Failure, Result, Success
from git_mcp.github_client import CommitSummary, GitHubClient
from git_mcp.repo_ref import RepoRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Changelog:
    """Commits reachable from `end_sha` but not `start_sha`, oldest first."""

    start_ref: str
    end_ref: str
    start_sha: str
    end_sha: str
    commits: tuple[CommitSummary, ...]
    total_commits: int
    truncated: bool


def diff_refs(
    client: GitHubClient,
    repo: RepoRef,
    start_ref: str,
    end_ref: str,
) -> Result[Changelog]:
    """Resolve both refs, then list the commits between them in upstream order."""
    start_result = client.resolve_commit(repo, start_ref)
    if isinstance(start_result, Failure):
        return start_result
    end_result = client.resolve_commit(repo, end_ref)
    if isinstance(end_result, Failure):
        return end_result

    compare_result = client.compare_commits(repo, start_result.value, end_result.value)
    if isinstance(compare_result, Failure):
        return compare_result

    listing = compare_result.value
    logger.debug(
        "Compared %s %s...%s: %d commit(s)",
        repo.full_name,
        start_ref,
        end_ref,
        len(listing.items),
    )
    return Success(
        Changelog(
            start_ref=start_ref,
            end_ref=end_ref,
            start_sha=start_result.value,
            end_sha=end_result.value,
            commits=listing.items,
            total_commits=listing.total_count if listing.total_count is not None else 0,
            truncated=listing.truncated,
        )
    )
