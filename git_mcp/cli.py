"""Typer CLI for the git-mcp server."""

from __future__ import annotations

import json
from typing import Annotated

import typer

from git_mcp.config import Settings
from git_mcp.errors import ConfigError, Failure
from git_mcp.github_client import GitHubClient
from git_mcp.logging_config import setup_logging
from git_mcp.server import build_registry, run_stdio_server
from git_mcp.tools import ToolRequest

app = typer.Typer(help="Read-only GitHub repository tools for AI agents (MCP over stdio).")


def _load_settings() -> Settings:
    """Load settings or exit with a diagnostic."""
    try:
        settings = Settings.from_env()
    except ConfigError as error:
        typer.echo(f"Invalid configuration: {error}", err=True)
        raise typer.Exit(code=2) from error
    setup_logging(level=settings.log_level, log_format=settings.log_format)
    return settings


@app.command("serve")
def serve_command() -> None:
    """Serve tools over stdin/stdout until stdin closes."""
    settings = _load_settings()
    run_stdio_server(settings)


@app.command("call")
def call_command(
    tool: Annotated[str, typer.Argument(help="Tool name, e.g. get_tags.")],
    arguments: Annotated[
        str, typer.Option("--arguments", "-a", help="Tool arguments as a JSON object.")
    ] = "{}",
) -> None:
    """Run one tool call and print its JSON result."""
    try:
        parsed_arguments = json.loads(arguments)
    except json.JSONDecodeError as error:
        raise typer.BadParameter(f"--arguments is not valid JSON: {error.msg}") from error
    if not isinstance(parsed_arguments, dict):
        raise typer.BadParameter("--arguments must be a JSON object.")

    settings = _load_settings()
    with GitHubClient.from_settings(settings) as client:
        result = build_registry(settings, client).call(
            ToolRequest(name=tool, arguments=parsed_arguments)
        )

    if isinstance(result, Failure):
        typer.echo(json.dumps(result.error.to_payload(), indent=2, ensure_ascii=False))
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.value, indent=2, ensure_ascii=False))


@app.command("auth-check")
def auth_check_command() -> None:
    """Validate GitHub token setup and report the remaining rate limit."""
    settings = _load_settings()
    if settings.token is None:
        typer.echo("No token configured (GITHUB_TOKEN or GH_TOKEN); anonymous limits apply.")
        raise typer.Exit(code=1)

    typer.echo(f"Token detected in {settings.token_source}.")
    with GitHubClient.from_settings(settings) as client:
        result = client.get_authenticated_login()
        snapshot = client.rate_limit.snapshot()

    if isinstance(result, Failure):
        typer.echo(f"GitHub auth check failed: {result.error.kind}: {result.error.message}")
        raise typer.Exit(code=1)

    typer.echo(f"Authenticated as GitHub user '{result.value}'.")
    if snapshot.remaining is not None:
        typer.echo(f"Rate limit: {snapshot.remaining}/{snapshot.limit} remaining.")
    typer.echo("GitHub token setup is valid.")
