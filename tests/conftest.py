"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os
from collections.abc import Callable

import httpx
import pytest
from git_mcp.config import Settings
from git_mcp.github_client import GitHubClient
from git_mcp.tools import ToolContext, ToolRegistry

RequestHandler = Callable[[httpx.Request], httpx.Response]


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (external dependencies).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry delays instead of sleeping."""
    sleep_durations: list[float] = []
    monkeypatch.setattr("git_mcp.github_client._sleep_for_retry", sleep_durations.append)
    return sleep_durations


@pytest.fixture
def registry_factory(
    no_retry_sleep: list[float],
) -> Callable[..., ToolRegistry]:
    """Build a tool registry whose client is backed by a mock transport."""

    def factory(handler: RequestHandler, settings: Settings | None = None) -> ToolRegistry:
        resolved_settings = settings or Settings()
        client = GitHubClient.from_settings(
            resolved_settings, transport=httpx.MockTransport(handler)
        )
        return ToolRegistry(ToolContext(client=client, settings=resolved_settings))

    return factory
