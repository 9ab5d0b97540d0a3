"""Repository reference parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from git_mcp.errors import Result, Success, validation_failure

SCP_STYLE_PATTERN = re.compile(r"^[\w.-]+@(?P<host>[^:/]+):(?P<path>.+)$")
REF_PATH_MARKERS = frozenset({"tree", "blob", "commit"})


@dataclass(frozen=True, slots=True)
class RepoRef:
    """Owner/name pair plus an optional branch, tag, or commit."""

    owner: str
    name: str
    ref: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def api_path(self) -> str:
        """Return the `/repos/{owner}/{name}` API prefix."""
        return f"/repos/{self.owner}/{self.name}"


def _strip_location(value: str) -> str:
    """Drop scheme, credentials, and host so only the repository path remains."""
    scp_match = SCP_STYLE_PATTERN.match(value)
    if scp_match is not None and "://" not in value:
        return scp_match.group("path")

    if "://" in value:
        return urlsplit(value).path

    path = value.split("?", 1)[0].split("#", 1)[0]
    # Bare host form, e.g. `github.com/acme/widgets`.
    first_segment, separator, remainder = path.partition("/")
    if separator and "." in first_segment:
        return remainder
    return path


def resolve_repo_ref(value: object, ref: str | None = None) -> Result[RepoRef]:
    """Parse a repository URL or `owner/name` shorthand into a RepoRef.

    A `/tree/<ref>` or `/blob/<ref>/...` suffix in a URL supplies the ref
    when none is passed explicitly. The ref itself is never validated here.
    """
    if not isinstance(value, str) or not value.strip():
        return validation_failure(
            "Invalid repository reference ''. Expected a repository URL or owner/name."
        )

    raw_value = value.strip()
    path = unquote(_strip_location(raw_value))
    segments = path.strip("/").split("/")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        return validation_failure(
            f"Invalid repository reference '{raw_value}'. Expected a repository URL or owner/name."
        )

    owner = segments[0]
    name = segments[1].removesuffix(".git")
    if not name:
        return validation_failure(
            f"Invalid repository reference '{raw_value}'. Repository name is empty."
        )

    resolved_ref = ref or None
    if resolved_ref is None:
        resolved_ref = _ref_from_path(segments[2:])

    return Success(RepoRef(owner=owner, name=name, ref=resolved_ref))


def _ref_from_path(extra_segments: list[str]) -> str | None:
    """Pick the ref out of `tree/<ref>`, `blob/<ref>/...` or `releases/tag/<ref>` suffixes."""
    if len(extra_segments) >= 2 and extra_segments[0] in REF_PATH_MARKERS:
        return extra_segments[1] or None
    if len(extra_segments) >= 3 and extra_segments[:2] == ["releases", "tag"]:
        return extra_segments[2] or None
    return None
