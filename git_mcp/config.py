"""Environment-driven server settings and token lookup."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from git_mcp.errors import ConfigError

GITHUB_API_BASE_URL = "https://api.github.com"
TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
ENV_PREFIX = "GIT_MCP_"

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
DEFAULT_MAX_PAGES = 10
DEFAULT_PER_PAGE = 100
DEFAULT_TREE_MAX_DEPTH = 10
DEFAULT_TREE_MAX_ENTRIES = 1000
DEFAULT_MAX_FILE_CHARS = 30_000
DEFAULT_MAX_README_CHARS = 20_000
LOG_FORMATS = frozenset({"text", "json"})


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration, read once at startup."""

    token: str | None = None
    token_source: str | None = None
    api_base_url: str = GITHUB_API_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    max_pages: int = DEFAULT_MAX_PAGES
    per_page: int = DEFAULT_PER_PAGE
    tree_max_depth: int = DEFAULT_TREE_MAX_DEPTH
    tree_max_entries: int = DEFAULT_TREE_MAX_ENTRIES
    max_file_chars: int = DEFAULT_MAX_FILE_CHARS
    max_readme_chars: int = DEFAULT_MAX_README_CHARS
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from the process environment (after loading `.env`)."""
        if environ is None:
            load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
            environ = os.environ

        token, token_source = find_token(environ)
        log_format = environ.get(f"{ENV_PREFIX}LOG_FORMAT", "text").strip().lower()
        if log_format not in LOG_FORMATS:
            raise ConfigError(
                f"{ENV_PREFIX}LOG_FORMAT must be one of {sorted(LOG_FORMATS)}, got '{log_format}'."
            )

        return cls(
            token=token,
            token_source=token_source,
            api_base_url=environ.get(f"{ENV_PREFIX}API_URL", GITHUB_API_BASE_URL).rstrip("/"),
            timeout_seconds=_read_float(environ, "TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            max_retries=_read_int(environ, "MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=0),
            retry_backoff_seconds=_read_float(
                environ, "RETRY_BACKOFF_SECONDS", DEFAULT_RETRY_BACKOFF_SECONDS
            ),
            max_pages=_read_int(environ, "MAX_PAGES", DEFAULT_MAX_PAGES),
            per_page=_read_int(environ, "PER_PAGE", DEFAULT_PER_PAGE),
            tree_max_depth=_read_int(environ, "TREE_MAX_DEPTH", DEFAULT_TREE_MAX_DEPTH),
            tree_max_entries=_read_int(environ, "TREE_MAX_ENTRIES", DEFAULT_TREE_MAX_ENTRIES),
            max_file_chars=_read_int(environ, "MAX_FILE_CHARS", DEFAULT_MAX_FILE_CHARS),
            max_readme_chars=_read_int(environ, "MAX_README_CHARS", DEFAULT_MAX_README_CHARS),
            log_level=environ.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO").strip().upper(),
            log_format=log_format,
        )


def find_token(environ: Mapping[str, str]) -> tuple[str | None, str | None]:
    """Return the configured token and the variable it came from, if any."""
    for name in TOKEN_ENV_VARS:
        value = environ.get(name)
        if value:
            return value, name
    return None, None


def _read_int(environ: Mapping[str, str], suffix: str, default: int, *, minimum: int = 1) -> int:
    """Read an integer setting, rejecting values below the minimum."""
    name = f"{ENV_PREFIX}{suffix}"
    raw_value = environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value)
    except ValueError as error:
        raise ConfigError(f"{name} must be an integer, got '{raw_value}'.") from error
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}.")
    return value


def _read_float(environ: Mapping[str, str], suffix: str, default: float) -> float:
    """Read a non-negative float setting."""
    name = f"{ENV_PREFIX}{suffix}"
    raw_value = environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = float(raw_value)
    except ValueError as error:
        raise ConfigError(f"{name} must be a number, got '{raw_value}'.") from error
    if value < 0:
        raise ConfigError(f"{name} must be non-negative, got {value}.")
    return value
