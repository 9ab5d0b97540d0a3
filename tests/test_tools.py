"""Unit tests for tool handlers and the registry."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from git_mcp.config import Settings
from git_mcp.errors import ErrorKind, Failure, Success
from git_mcp.tools import TOOLS, ToolRegistry, ToolRequest

RegistryFactory = Callable[..., ToolRegistry]
URL = "https://github.com/acme/widgets"


def tag_rows(names: list[str]) -> list[dict[str, str]]:
    return [{"name": name} for name in names]


def not_found(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(status_code=404, json={"message": "Not Found"})


@pytest.mark.unit
def test_registry_advertises_six_tools_with_schemas() -> None:
    assert sorted(TOOLS) == [
        "get_changelog",
        "get_file_content",
        "get_file_tree",
        "get_readme",
        "get_tags",
        "search_repository",
    ]
    for tool in TOOLS.values():
        assert tool.definition.description
        assert tool.definition.input_schema["type"] == "object"
        assert "url" in tool.definition.required_arguments


@pytest.mark.unit
def test_get_tags_returns_five_newest_of_twenty(registry_factory: RegistryFactory) -> None:
    names = [f"v1.{minor}.0" for minor in range(20)]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/widgets/tags"
        return httpx.Response(status_code=200, json=tag_rows(names))

    result = registry_factory(handler).call(
        ToolRequest(name="get_tags", arguments={"url": URL, "limit": 5})
    )

    assert isinstance(result, Success)
    assert result.value["tags"] == ["v1.19.0", "v1.18.0", "v1.17.0", "v1.16.0", "v1.15.0"]
    assert result.value["count"] == 5
    assert result.value["limit_applied"] == 5
    assert result.value["total_tags"] == 20
    assert result.value["repository"] == URL


@pytest.mark.unit
def test_get_tags_puts_unparseable_tags_last(registry_factory: RegistryFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code=200, json=tag_rows(["release-final", "v1.9.0", "v1.10.0"])
        )

    result = registry_factory(handler).call(ToolRequest(name="get_tags", arguments={"url": URL}))

    assert isinstance(result, Success)
    assert result.value["tags"] == ["v1.10.0", "v1.9.0", "release-final"]
    assert result.value["limit_applied"] is None


@pytest.mark.unit
def test_missing_required_argument_fails_before_any_request(
    registry_factory: RegistryFactory,
) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code=200, json={})

    result = registry_factory(handler).call(
        ToolRequest(name="get_changelog", arguments={"url": URL, "start_tag": "v1.0.0"})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION
    assert "end_tag" in result.error.message
    assert requests == []


@pytest.mark.unit
def test_blank_required_argument_is_rejected(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(
        ToolRequest(name="get_file_content", arguments={"url": URL, "path": "   "})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION
    assert "'path'" in result.error.message


@pytest.mark.unit
def test_wrongly_typed_argument_is_rejected(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(
        ToolRequest(name="get_tags", arguments={"url": URL, "limit": "5"})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION
    assert "integer" in result.error.message


@pytest.mark.unit
def test_unknown_tool_is_a_validation_failure(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(ToolRequest(name="delete_repository"))

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION
    assert result.error.message == "Tool 'delete_repository' not found."


@pytest.mark.unit
def test_invalid_url_is_a_validation_failure(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(
        ToolRequest(name="get_readme", arguments={"url": "widgets"})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION


@pytest.mark.unit
def test_upstream_not_found_is_reported(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(
        ToolRequest(name="get_file_content", arguments={"url": URL, "path": "missing.txt"})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.NOT_FOUND
    assert result.error.status_code == 404


@pytest.mark.unit
def test_get_file_tree_defaults_to_head_and_honors_depth(
    registry_factory: RegistryFactory,
) -> None:
    seen_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_paths.append(request.url.path)
        return httpx.Response(
            status_code=200,
            json={
                "sha": "abc",
                "truncated": False,
                "tree": [
                    {"path": "examples", "type": "tree"},
                    {"path": "examples/basic.py", "type": "blob", "size": 42},
                    {"path": "README.md", "type": "blob", "size": 7},
                ],
            },
        )

    result = registry_factory(handler).call(
        ToolRequest(name="get_file_tree", arguments={"url": URL, "max_depth": 1})
    )

    assert seen_paths == ["/repos/acme/widgets/git/trees/HEAD"]
    assert isinstance(result, Success)
    assert result.value["ref"] == "HEAD"
    assert result.value["entries"] == [
        {"path": "examples", "kind": "directory"},
        {"path": "README.md", "kind": "file", "size": 7},
    ]
    assert result.value["truncated"] is True


@pytest.mark.unit
def test_get_file_tree_uses_branch_alias(registry_factory: RegistryFactory) -> None:
    seen_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_paths.append(request.url.path)
        return httpx.Response(status_code=200, json={"sha": "abc", "tree": []})

    result = registry_factory(handler).call(
        ToolRequest(
            name="get_file_tree",
            arguments={"url": URL, "branch": "develop", "hierarchical": True},
        )
    )

    assert isinstance(result, Success)
    assert seen_paths == ["/repos/acme/widgets/git/trees/develop"]
    assert result.value["tree"] == []


@pytest.mark.unit
def test_get_file_content_truncates_long_files(registry_factory: RegistryFactory) -> None:
    seen_refs: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_refs.append(request.url.params.get("ref"))
        return httpx.Response(status_code=200, text="x" * 50)

    settings = Settings(max_file_chars=10)
    result = registry_factory(handler, settings).call(
        ToolRequest(
            name="get_file_content",
            arguments={"url": URL, "path": "/src/app.py", "ref": "v1.0.0"},
        )
    )

    assert isinstance(result, Success)
    assert seen_refs == ["v1.0.0"]
    assert result.value["path"] == "src/app.py"
    assert result.value["is_truncated"] is True
    assert result.value["content"].startswith("x" * 10 + "\n\n[WARNING")


@pytest.mark.unit
def test_get_readme_returns_content(registry_factory: RegistryFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/widgets/readme"
        return httpx.Response(status_code=200, text="# Widgets\n")

    result = registry_factory(handler).call(ToolRequest(name="get_readme", arguments={"url": URL}))

    assert isinstance(result, Success)
    assert result.value["content"] == "# Widgets\n"
    assert result.value["is_truncated"] is False


@pytest.mark.unit
def test_get_readme_truncation_marker(registry_factory: RegistryFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, text="abcdefghij")

    result = registry_factory(handler, Settings(max_readme_chars=4)).call(
        ToolRequest(name="get_readme", arguments={"url": URL})
    )

    assert isinstance(result, Success)
    assert result.value["content"] == "abcd... [TRUNCATED]"


@pytest.mark.unit
def test_get_changelog_returns_commit_dicts(registry_factory: RegistryFactory) -> None:
    start_sha, end_sha = "1" * 40, "2" * 40
    shas = {"v1.0.0": start_sha, "v1.2.0": end_sha}

    def handler(request: httpx.Request) -> httpx.Response:
        ref = request.url.path.rsplit("/", 1)[-1]
        if ref in shas:
            return httpx.Response(status_code=200, text=shas[ref])
        return httpx.Response(
            status_code=200,
            json={
                "total_commits": 1,
                "commits": [
                    {
                        "sha": "f" * 40,
                        "commit": {
                            "message": "Drop legacy API",
                            "author": {"name": "Ada", "date": "2024-03-01T00:00:00Z"},
                        },
                    }
                ],
            },
        )

    result = registry_factory(handler).call(
        ToolRequest(
            name="get_changelog",
            arguments={"url": URL, "start_tag": "v1.0.0", "end_tag": "v1.2.0"},
        )
    )

    assert isinstance(result, Success)
    assert result.value["from_sha"] == start_sha
    assert result.value["to_sha"] == end_sha
    assert result.value["commits"] == [
        {
            "id": "f" * 40,
            "message": "Drop legacy API",
            "author": "Ada",
            "timestamp": "2024-03-01T00:00:00Z",
        }
    ]


@pytest.mark.unit
def test_search_repository_rejects_blank_query(registry_factory: RegistryFactory) -> None:
    result = registry_factory(not_found).call(
        ToolRequest(name="search_repository", arguments={"url": URL, "query": "  "})
    )

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.VALIDATION


@pytest.mark.unit
def test_search_repository_scopes_query_to_repo(registry_factory: RegistryFactory) -> None:
    seen_queries: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_queries.append(request.url.params.get("q"))
        return httpx.Response(
            status_code=200,
            json={
                "total_count": 1,
                "items": [
                    {
                        "path": "src/client.py",
                        "text_matches": [{"fragment": "def connect(timeout):"}],
                    }
                ],
            },
        )

    result = registry_factory(handler).call(
        ToolRequest(name="search_repository", arguments={"url": URL, "query": "connect"})
    )

    assert isinstance(result, Success)
    assert seen_queries == ["connect repo:acme/widgets"]
    assert result.value["matches"] == [
        {"path": "src/client.py", "snippet": "def connect(timeout):"}
    ]


@pytest.mark.unit
def test_unexpected_handler_exception_becomes_internal_error(
    registry_factory: RegistryFactory,
) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        raise RuntimeError("boom")

    result = registry_factory(handler).call(ToolRequest(name="get_tags", arguments={"url": URL}))

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.INTERNAL
    assert "boom" in result.error.message
