"""Tool registry: definitions, argument validation, and handlers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from git_mcp.changelog import diff_refs
from git_mcp.config import Settings
from git_mcp.errors import ErrorKind, Failure, Result, Success, ToolError, validation_failure
from git_mcp.github_client import GitHubClient
from git_mcp.repo_ref import RepoRef, resolve_repo_ref
from git_mcp.schema import ToolDefinition
from git_mcp.semver import sort_descending
from git_mcp.tree import render_tree

logger = logging.getLogger(__name__)

ToolResult = Result[dict[str, Any]]

DEFAULT_TREE_REF = "HEAD"
FILE_TRUNCATION_NOTICE = (
    "\n\n[WARNING: File content truncated because it exceeds {limit} characters]"
)
README_TRUNCATION_NOTICE = "... [TRUNCATED]"

JSON_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda value: isinstance(value, str),
    "integer": lambda value: isinstance(value, int) and not isinstance(value, bool),
    "boolean": lambda value: isinstance(value, bool),
}


@dataclass(frozen=True, slots=True)
class ToolRequest:
    """One tool invocation."""

    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Collaborators shared by every handler."""

    client: GitHubClient
    settings: Settings


Handler = Callable[[ToolContext, Mapping[str, Any]], ToolResult]


def _url_property() -> dict[str, str]:
    return {
        "type": "string",
        "description": "Repository URL (https://github.com/owner/name) or owner/name.",
    }


def _ref_property(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


GET_TAGS = ToolDefinition(
    name="get_tags",
    description=(
        "Call this tool BEFORE writing any dependency version. Returns tags ordered newest "
        "SemVer first; tags that are not versions come last. Use 'limit: 5' to avoid "
        "fetching old tags."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "limit": {
                "type": "integer",
                "description": "Number of latest tags to return. Omit (or <= 0) for all tags.",
            },
        },
        "required": ["url"],
    },
)

GET_FILE_TREE = ToolDefinition(
    name="get_file_tree",
    description=(
        "Explore the repository structure. Look for 'examples/' or 'tests/' folders to find "
        "up-to-date code patterns."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "ref": _ref_property("Branch, tag, or commit. Defaults to the default branch."),
            "branch": _ref_property("Alias for 'ref'."),
            "hierarchical": {
                "type": "boolean",
                "description": "Return a nested tree instead of a flat list.",
            },
            "max_depth": {
                "type": "integer",
                "description": "Omit entries nested deeper than this many path segments.",
            },
        },
        "required": ["url"],
    },
)

GET_FILE_CONTENT = ToolDefinition(
    name="get_file_content",
    description=(
        "Read content of source files (especially in 'examples/'). Use this to verify API "
        "syntax and ensure the code you write matches the library version."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "path": {
                "type": "string",
                "description": "Path to the file (e.g., 'src/main.py' or 'pyproject.toml').",
            },
            "ref": _ref_property("Branch, tag, or commit (e.g., 'v1.0.0'). Defaults to HEAD."),
            "branch": _ref_property("Alias for 'ref'."),
        },
        "required": ["url", "path"],
    },
)

GET_README = ToolDefinition(
    name="get_readme",
    description=(
        "Read the README to find installation instructions and basic usage examples that "
        "are compatible with the fetched version."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "ref": _ref_property("Branch, tag, or commit. Defaults to the default branch."),
        },
        "required": ["url"],
    },
)

GET_CHANGELOG = ToolDefinition(
    name="get_changelog",
    description=(
        "Analyze commit messages between versions to identify breaking changes, deprecated "
        "features, or migration guides."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "start_tag": _ref_property("Older tag or ref."),
            "end_tag": _ref_property("Newer tag or ref."),
        },
        "required": ["url", "start_tag", "end_tag"],
    },
)

SEARCH_REPOSITORY = ToolDefinition(
    name="search_repository",
    description=(
        "Search code inside the repository and return matching paths with a snippet. "
        "Requires a GitHub token."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": _url_property(),
            "query": {"type": "string", "description": "Code search query."},
            "limit": {"type": "integer", "description": "Maximum number of matches."},
        },
        "required": ["url", "query"],
    },
)


def _ref_argument(arguments: Mapping[str, Any]) -> str | None:
    return arguments.get("ref") or arguments.get("branch") or None


def _resolve(arguments: Mapping[str, Any], ref: str | None = None) -> Result[RepoRef]:
    return resolve_repo_ref(arguments["url"], ref)


def _truncate(text: str, limit: int, notice: str) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return f"{text[:limit]}{notice}", True


def handle_get_tags(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    repo_result = _resolve(arguments)
    if isinstance(repo_result, Failure):
        return repo_result
    listing = context.client.list_tags(repo_result.value)
    if isinstance(listing, Failure):
        return listing

    limit = arguments.get("limit")
    tags = sort_descending(listing.value.items, limit)
    return Success(
        {
            "repository": arguments["url"],
            "count": len(tags),
            "limit_applied": limit if limit is not None and limit > 0 else None,
            "total_tags": len(listing.value.items),
            "listing_truncated": listing.value.truncated,
            "tags": tags,
        }
    )


def handle_get_file_tree(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    repo_result = _resolve(arguments, _ref_argument(arguments))
    if isinstance(repo_result, Failure):
        return repo_result
    repo = repo_result.value
    target_ref = repo.ref or DEFAULT_TREE_REF

    listing = context.client.get_tree(repo, target_ref)
    if isinstance(listing, Failure):
        return listing

    max_depth = context.settings.tree_max_depth
    requested_depth = arguments.get("max_depth")
    if requested_depth is not None and requested_depth > 0:
        max_depth = min(requested_depth, max_depth)

    body = render_tree(
        listing.value.entries,
        hierarchical=bool(arguments.get("hierarchical", False)),
        max_depth=max_depth,
        max_entries=context.settings.tree_max_entries,
    )
    body["truncated"] = body["truncated"] or listing.value.truncated
    return Success({"repository": arguments["url"], "ref": target_ref, **body})


def handle_get_file_content(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    repo_result = _resolve(arguments, _ref_argument(arguments))
    if isinstance(repo_result, Failure):
        return repo_result
    repo = repo_result.value
    path = arguments["path"].lstrip("/")

    text_result = context.client.get_file_text(repo, path, repo.ref)
    if isinstance(text_result, Failure):
        return text_result

    limit = context.settings.max_file_chars
    content, is_truncated = _truncate(
        text_result.value, limit, FILE_TRUNCATION_NOTICE.format(limit=limit)
    )
    return Success(
        {
            "repository": arguments["url"],
            "path": path,
            "ref": repo.ref or DEFAULT_TREE_REF,
            "is_truncated": is_truncated,
            "content": content,
        }
    )


def handle_get_readme(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    repo_result = _resolve(arguments, _ref_argument(arguments))
    if isinstance(repo_result, Failure):
        return repo_result
    repo = repo_result.value

    text_result = context.client.get_readme_text(repo, repo.ref)
    if isinstance(text_result, Failure):
        return text_result

    content, is_truncated = _truncate(
        text_result.value, context.settings.max_readme_chars, README_TRUNCATION_NOTICE
    )
    return Success(
        {
            "repository": arguments["url"],
            "type": "readme",
            "ref": repo.ref or DEFAULT_TREE_REF,
            "is_truncated": is_truncated,
            "content": content,
        }
    )


def handle_get_changelog(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    repo_result = _resolve(arguments)
    if isinstance(repo_result, Failure):
        return repo_result

    changelog = diff_refs(
        context.client, repo_result.value, arguments["start_tag"], arguments["end_tag"]
    )
    if isinstance(changelog, Failure):
        return changelog

    value = changelog.value
    return Success(
        {
            "repository": arguments["url"],
            "from": value.start_ref,
            "to": value.end_ref,
            "from_sha": value.start_sha,
            "to_sha": value.end_sha,
            "total_commits": value.total_commits,
            "truncated": value.truncated,
            "commits": [asdict(commit) for commit in value.commits],
        }
    )


def handle_search_repository(context: ToolContext, arguments: Mapping[str, Any]) -> ToolResult:
    query = arguments["query"].strip()
    if not query:
        return validation_failure("Argument 'query' must not be empty.")
    repo_result = _resolve(arguments)
    if isinstance(repo_result, Failure):
        return repo_result

    limit = arguments.get("limit")
    search_result = context.client.search_code(
        repo_result.value, query, limit=limit if limit is not None and limit > 0 else None
    )
    if isinstance(search_result, Failure):
        return search_result

    matches = search_result.value
    return Success(
        {
            "repository": arguments["url"],
            "query": query,
            "total_count": matches.total_count,
            "returned_count": len(matches.items),
            "truncated": matches.truncated,
            "matches": [asdict(match) for match in matches.items],
        }
    )


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    definition: ToolDefinition
    handler: Handler


TOOLS: Mapping[str, RegisteredTool] = {
    tool.definition.name: tool
    for tool in (
        RegisteredTool(GET_TAGS, handle_get_tags),
        RegisteredTool(GET_FILE_TREE, handle_get_file_tree),
        RegisteredTool(GET_FILE_CONTENT, handle_get_file_content),
        RegisteredTool(GET_README, handle_get_readme),
        RegisteredTool(GET_CHANGELOG, handle_get_changelog),
        RegisteredTool(SEARCH_REPOSITORY, handle_search_repository),
    )
}


def validate_arguments(
    definition: ToolDefinition, arguments: Mapping[str, Any]
) -> Failure | None:
    """Check required arguments and declared JSON types; unknown arguments are ignored."""
    for name in definition.required_arguments:
        value = arguments.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return validation_failure(
                f"Missing required argument '{name}' for tool '{definition.name}'."
            )

    for name, schema in definition.properties.items():
        value = arguments.get(name)
        if value is None:
            continue
        expected_type = schema.get("type")
        check = JSON_TYPE_CHECKS.get(expected_type)
        if check is not None and not check(value):
            return validation_failure(
                f"Argument '{name}' for tool '{definition.name}' must be of type "
                f"{expected_type}, got {type(value).__name__}."
            )
    return None


class ToolRegistry:
    """Dispatches tool requests to handlers and never lets an exception escape."""

    def __init__(
        self,
        context: ToolContext,
        tools: Mapping[str, RegisteredTool] = TOOLS,
    ) -> None:
        self._context = context
        self._tools = tools

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition for tool in self._tools.values()]

    def call(self, request: ToolRequest) -> ToolResult:
        tool = self._tools.get(request.name)
        if tool is None:
            return validation_failure(f"Tool '{request.name}' not found.")

        invalid = validate_arguments(tool.definition, request.arguments)
        if invalid is not None:
            return invalid

        logger.info("Calling tool %s", request.name)
        try:
            result = tool.handler(self._context, request.arguments)
        except Exception as error:  # noqa: BLE001
            logger.exception("Tool %s raised an unexpected error", request.name)
            return Failure(
                ToolError(
                    kind=ErrorKind.INTERNAL,
                    message=f"Tool '{request.name}' failed unexpectedly: {error}",
                )
            )

        if isinstance(result, Failure):
            logger.info(
                "Tool %s failed (%s): %s", request.name, result.error.kind, result.error.message
            )
        return result
