"""GitHub API client: auth, retries, pagination, and rate-limit enforcement.

Every call returns an explicit `Success`/`Failure` result. Expected
upstream conditions (not found, auth, rate limiting, outages) never escape
as exceptions.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import quote

import httpx

from git_mcp import __version__
from git_mcp.config import Settings
from git_mcp.errors import (
    ErrorKind,
    Failure,
    MalformedResponseError,
    Result,
    Success,
    ToolError,
    malformed_response_failure,
    validation_failure,
)
from git_mcp.rate_limit import (
    RESET_HEADER,
    RESOURCE_HEADER,
    RateLimitState,
    is_exhausted_response,
    resource_for_endpoint,
)
from git_mcp.repo_ref import RepoRef

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = f"git-mcp/{__version__}"
JSON_MEDIA_TYPE = "application/vnd.github+json"
RAW_MEDIA_TYPE = "application/vnd.github.raw"
SHA_MEDIA_TYPE = "application/vnd.github.sha"
TEXT_MATCH_MEDIA_TYPE = "application/vnd.github.text-match+json"
COMMIT_SHA_PATTERN = re.compile(r"^[a-f0-9]{7,40}$")
DEFAULT_NOT_FOUND_STATUSES = frozenset({404})
REF_NOT_FOUND_STATUSES = frozenset({404, 422})
DEFAULT_RATE_LIMIT_WAIT_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One path in a repository tree listing."""

    path: str
    kind: str
    size: int | None = None

    @property
    def depth(self) -> int:
        return self.path.count("/") + 1


@dataclass(frozen=True, slots=True)
class TreeListing:
    """Recursive tree listing at one ref."""

    sha: str | None
    entries: tuple[TreeEntry, ...]
    truncated: bool


@dataclass(frozen=True, slots=True)
class CommitSummary:
    """Normalized commit from a compare listing."""

    id: str
    message: str
    author: str
    timestamp: str | None


@dataclass(frozen=True, slots=True)
class SearchMatch:
    """Code search hit with the first matching fragment."""

    path: str
    snippet: str


@dataclass(frozen=True, slots=True)
class Page:
    """One page of a paginated listing."""

    number: int
    items: tuple[Any, ...]
    payload: Any
    has_next: bool


@dataclass(frozen=True, slots=True)
class PagedItems:
    """Items concatenated from every fetched page, in encounter order."""

    items: tuple[Any, ...]
    pages_fetched: int
    truncated: bool
    total_count: int | None = None


def _ensure_mapping(value: object, *, endpoint: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise MalformedResponseError(f"expected JSON object from '{endpoint}'.", endpoint=endpoint)
    return value


def _require_str(payload: Mapping[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise MalformedResponseError(
            f"expected string field '{key}' from '{endpoint}'.", endpoint=endpoint
        )
    return value


def _optional_str(payload: Mapping[str, Any], *, key: str, endpoint: str) -> str | None:
    """Read an optional string field, tolerating absence and null."""
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedResponseError(
            f"expected '{key}' to be a string or null from '{endpoint}'.", endpoint=endpoint
        )
    return value


def _optional_int(payload: Mapping[str, Any], *, key: str, endpoint: str) -> int | None:
    """Read an optional integer field, tolerating absence and null."""
    value = payload.get(key)
    if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
        raise MalformedResponseError(
            f"expected '{key}' to be an integer or null from '{endpoint}'.", endpoint=endpoint
        )
    return value


def _optional_object(payload: Mapping[str, Any], *, key: str, endpoint: str) -> dict[str, Any]:
    """Read an optional object field; absent or null becomes an empty mapping."""
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedResponseError(
            f"expected '{key}' to be an object or null from '{endpoint}'.", endpoint=endpoint
        )
    return value


def _decode_json(response: httpx.Response, *, endpoint: str) -> Any:
    """Parse a response body as JSON."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise MalformedResponseError(
            f"response from '{endpoint}' is not valid JSON.", endpoint=endpoint
        ) from error


def _extract_items(payload: Any, *, items_key: str | None, endpoint: str) -> tuple[Any, ...]:
    """Pull the item array out of a list payload or an object's `items_key` field."""
    if items_key is None:
        rows = payload
    else:
        rows = _ensure_mapping(payload, endpoint=endpoint).get(items_key)
    if not isinstance(rows, list):
        target = "JSON array" if items_key is None else f"array field '{items_key}'"
        raise MalformedResponseError(f"expected {target} from '{endpoint}'.", endpoint=endpoint)
    for row in rows:
        if not isinstance(row, dict):
            raise MalformedResponseError(
                f"expected all array items to be JSON objects from '{endpoint}'.",
                endpoint=endpoint,
            )
    return tuple(rows)


def _parse_retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse Retry-After header as seconds if present and valid."""
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        parsed_value = float(retry_after)
    except ValueError:
        return None
    if parsed_value < 0:
        return None
    return parsed_value


def _compute_retry_delay_seconds(
    response: httpx.Response | None, *, attempt_number: int, backoff_seconds: float
) -> float:
    """Compute retry delay from Retry-After header or exponential backoff."""
    if response is not None:
        retry_after_seconds = _parse_retry_after_seconds(response)
        if retry_after_seconds is not None:
            return retry_after_seconds
    return backoff_seconds * (2 ** (attempt_number - 1))


def _sleep_for_retry(seconds: float) -> None:
    """Sleep helper for retry delays (wrapped for deterministic tests)."""
    time.sleep(seconds)


def _upstream_message(response: httpx.Response) -> str | None:
    """Return GitHub's `message` field from an error body, if there is one."""
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return None


def _rate_limit_reset_at(response: httpx.Response, *, now: float) -> float:
    """Return when a rate-limited caller may try again."""
    reset_header = response.headers.get(RESET_HEADER)
    if reset_header is not None:
        try:
            return float(int(reset_header))
        except ValueError:
            pass
    retry_after_seconds = _parse_retry_after_seconds(response)
    if retry_after_seconds is not None:
        return now + retry_after_seconds
    return now + DEFAULT_RATE_LIMIT_WAIT_SECONDS


def _failure_for_response(
    response: httpx.Response,
    endpoint: str,
    *,
    not_found_statuses: frozenset[int],
    now: float,
) -> Failure:
    """Map a non-success GitHub API response to a typed failure."""
    status_code = response.status_code
    message = f"GitHub API request failed with status {status_code} for '{endpoint}'."
    upstream_message = _upstream_message(response)
    if upstream_message:
        message = f"{message} {upstream_message}"

    secondary_limit = status_code == 403 and "Retry-After" in response.headers
    if status_code == 429 or (
        status_code == 403 and (is_exhausted_response(response.headers) or secondary_limit)
    ):
        reset_at = _rate_limit_reset_at(response, now=now)
        return Failure(
            ToolError(
                kind=ErrorKind.RATE_LIMITED,
                message=message,
                status_code=status_code,
                endpoint=endpoint,
                reset_at=reset_at,
                retry_after_seconds=max(reset_at - now, 0.0),
            )
        )

    if status_code in {401, 403}:
        kind = ErrorKind.AUTH
    elif status_code in not_found_statuses:
        kind = ErrorKind.NOT_FOUND
    elif 400 <= status_code < 500:
        kind = ErrorKind.VALIDATION
    else:
        kind = ErrorKind.NETWORK
    return Failure(
        ToolError(kind=kind, message=message, status_code=status_code, endpoint=endpoint)
    )


def _encode_path(path: str) -> str:
    return quote(path, safe="/")


def build_http_client(
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build the shared HTTP client, authenticated when a token is configured."""
    headers = {
        "Accept": JSON_MEDIA_TYPE,
        "User-Agent": USER_AGENT,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    if settings.token:
        headers["Authorization"] = f"Bearer {settings.token}"
    return httpx.Client(
        base_url=settings.api_base_url,
        headers=headers,
        timeout=settings.timeout_seconds,
        transport=transport,
    )


class GitHubClient:
    """Single choke point for outbound GitHub API calls.

    Thread-safe: the underlying `httpx.Client` is shared, and the rate-limit
    budget is lock-guarded inside `RateLimitState`.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        *,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        max_pages: int = 10,
        per_page: int = 100,
        rate_limit: RateLimitState | None = None,
    ) -> None:
        self._http = http_client
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._max_pages = max_pages
        self._per_page = per_page
        self.rate_limit = rate_limit or RateLimitState()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> GitHubClient:
        if settings.token is None:
            logger.warning("No GitHub token configured; using the anonymous rate limit.")
        return cls(
            build_http_client(settings, transport=transport),
            max_retries=settings.max_retries,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            max_pages=settings.max_pages,
            per_page=settings.per_page,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    def request(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str | int] | None = None,
        accept: str = JSON_MEDIA_TYPE,
        not_found_statuses: frozenset[int] = DEFAULT_NOT_FOUND_STATUSES,
        resource: str | None = None,
    ) -> Result[httpx.Response]:
        """Perform a GET, retrying network failures with exponential backoff.

        `resource` names the rate-limit bucket; it defaults to the one the
        endpoint belongs to.
        """
        resource = resource or resource_for_endpoint(endpoint)
        max_attempts = self._max_retries + 1
        for attempt_number in range(1, max_attempts + 1):
            rate_limited = self.rate_limit.reserve(resource)
            if rate_limited is not None:
                logger.warning("Refusing request to %s: %s", endpoint, rate_limited.message)
                return Failure(replace(rate_limited, endpoint=endpoint))

            response: httpx.Response | None = None
            try:
                response = self._http.get(endpoint, params=params, headers={"Accept": accept})
            except httpx.TimeoutException:
                failure = Failure(
                    ToolError(
                        kind=ErrorKind.NETWORK,
                        message=f"Request to '{endpoint}' timed out.",
                        endpoint=endpoint,
                    )
                )
            except httpx.TransportError as error:
                failure = Failure(
                    ToolError(
                        kind=ErrorKind.NETWORK,
                        message=f"Network error for '{endpoint}': {error}",
                        endpoint=endpoint,
                    )
                )
            else:
                self.rate_limit.update_from_headers(response.headers, resource=resource)
                if response.status_code < 400:
                    return Success(response)
                failure = _failure_for_response(
                    response,
                    endpoint,
                    not_found_statuses=not_found_statuses,
                    now=time.time(),
                )
                if failure.error.kind is ErrorKind.RATE_LIMITED and failure.error.reset_at:
                    self.rate_limit.mark_exhausted(
                        failure.error.reset_at,
                        resource=response.headers.get(RESOURCE_HEADER) or resource,
                    )

            if not failure.error.retryable or attempt_number >= max_attempts:
                logger.info("Request to %s failed: %s", endpoint, failure.error.message)
                return failure

            delay_seconds = _compute_retry_delay_seconds(
                response,
                attempt_number=attempt_number,
                backoff_seconds=self._retry_backoff_seconds,
            )
            logger.info(
                "Retrying %s in %.2fs (attempt %d/%d): %s",
                endpoint,
                delay_seconds,
                attempt_number + 1,
                max_attempts,
                failure.error.message,
            )
            _sleep_for_retry(delay_seconds)

        raise RuntimeError("Unexpected retry loop exit without a response.")

    def request_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str | int] | None = None,
        accept: str = JSON_MEDIA_TYPE,
        not_found_statuses: frozenset[int] = DEFAULT_NOT_FOUND_STATUSES,
    ) -> Result[Any]:
        """Perform a request and decode the JSON body."""
        result = self.request(
            endpoint, params=params, accept=accept, not_found_statuses=not_found_statuses
        )
        if isinstance(result, Failure):
            return result
        try:
            return Success(_decode_json(result.value, endpoint=endpoint))
        except MalformedResponseError as error:
            return error.to_failure()

    def iter_pages(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str | int] | None = None,
        items_key: str | None = None,
        accept: str = JSON_MEDIA_TYPE,
        per_page: int | None = None,
    ) -> Iterator[Result[Page]]:
        """Lazily walk `Link: rel="next"` pages, stopping at the page cap.

        Each call starts over from the first page. A failure is yielded once
        and ends the iteration.
        """
        next_endpoint = endpoint
        resource = resource_for_endpoint(endpoint)
        next_params: dict[str, str | int] | None = {
            **(params or {}),
            "per_page": per_page or self._per_page,
        }
        for page_number in range(1, self._max_pages + 1):
            result = self.request(
                next_endpoint, params=next_params, accept=accept, resource=resource
            )
            if isinstance(result, Failure):
                yield result
                return
            response = result.value
            try:
                payload = _decode_json(response, endpoint=endpoint)
                items = _extract_items(payload, items_key=items_key, endpoint=endpoint)
            except MalformedResponseError as error:
                yield error.to_failure()
                return

            next_url = response.links.get("next", {}).get("url")
            yield Success(
                Page(
                    number=page_number,
                    items=items,
                    payload=payload,
                    has_next=next_url is not None,
                )
            )
            if next_url is None:
                return
            next_endpoint = next_url
            next_params = None

        logger.info("Stopped paginating %s at the %d-page cap.", endpoint, self._max_pages)

    def collect_pages(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str | int] | None = None,
        items_key: str | None = None,
        accept: str = JSON_MEDIA_TYPE,
        limit: int | None = None,
        total_key: str = "total_count",
    ) -> Result[PagedItems]:
        """Concatenate paginated items; any page failure discards the whole listing."""
        per_page = min(limit, self._per_page) if limit else None
        items: list[Any] = []
        pages_fetched = 0
        truncated = False
        total_count: int | None = None
        for page_result in self.iter_pages(
            endpoint, params=params, items_key=items_key, accept=accept, per_page=per_page
        ):
            if isinstance(page_result, Failure):
                return page_result
            page = page_result.value
            pages_fetched += 1
            items.extend(page.items)
            truncated = page.has_next
            if total_count is None and isinstance(page.payload, dict):
                count_value = page.payload.get(total_key)
                if isinstance(count_value, int) and not isinstance(count_value, bool):
                    total_count = count_value
            if limit and len(items) >= limit:
                truncated = truncated or len(items) > limit
                del items[limit:]
                break

        return Success(
            PagedItems(
                items=tuple(items),
                pages_fetched=pages_fetched,
                truncated=truncated,
                total_count=total_count,
            )
        )

    def list_tags(self, repo: RepoRef) -> Result[PagedItems]:
        """Fetch tag names in API order."""
        endpoint = f"{repo.api_path}/tags"
        result = self.collect_pages(endpoint)
        if isinstance(result, Failure):
            return result
        try:
            names = tuple(
                _require_str(row, key="name", endpoint=endpoint) for row in result.value.items
            )
        except MalformedResponseError as error:
            return error.to_failure()
        return Success(replace(result.value, items=names))

    def get_tree(self, repo: RepoRef, ref: str) -> Result[TreeListing]:
        """Fetch the recursive git tree for a ref."""
        endpoint = f"{repo.api_path}/git/trees/{_encode_path(ref)}"
        result = self.request_json(endpoint, params={"recursive": 1})
        if isinstance(result, Failure):
            return result
        try:
            payload = _ensure_mapping(result.value, endpoint=endpoint)
            rows = _extract_items(payload, items_key="tree", endpoint=endpoint)
            entries: list[TreeEntry] = []
            for row in rows:
                path = _require_str(row, key="path", endpoint=endpoint)
                entry_type = _require_str(row, key="type", endpoint=endpoint)
                is_directory = entry_type == "tree"
                entries.append(
                    TreeEntry(
                        path=path,
                        kind="directory" if is_directory else "file",
                        size=None
                        if is_directory
                        else _optional_int(row, key="size", endpoint=endpoint),
                    )
                )
            return Success(
                TreeListing(
                    sha=_optional_str(payload, key="sha", endpoint=endpoint),
                    entries=tuple(entries),
                    truncated=payload.get("truncated") is True,
                )
            )
        except MalformedResponseError as error:
            return error.to_failure()

    def _get_raw_text(
        self, endpoint: str, *, params: Mapping[str, str | int] | None, label: str
    ) -> Result[str]:
        result = self.request(endpoint, params=params, accept=RAW_MEDIA_TYPE)
        if isinstance(result, Failure):
            return result
        response = result.value
        if response.headers.get("Content-Type", "").startswith("application/json"):
            try:
                payload = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                payload = None
            if isinstance(payload, list):
                return validation_failure(f"'{label}' is a directory, not a file.")
        try:
            return Success(response.content.decode("utf-8"))
        except UnicodeDecodeError:
            return validation_failure(f"'{label}' is not UTF-8 text (binary file?).")

    def get_file_text(self, repo: RepoRef, path: str, ref: str | None) -> Result[str]:
        """Fetch one file's raw text at a ref (default branch when ref is None)."""
        normalized_path = path.lstrip("/")
        if not normalized_path:
            return validation_failure("Invalid file path ''. Expected a non-empty repository path.")
        endpoint = f"{repo.api_path}/contents/{_encode_path(normalized_path)}"
        params = {"ref": ref} if ref else None
        return self._get_raw_text(endpoint, params=params, label=normalized_path)

    def get_readme_text(self, repo: RepoRef, ref: str | None) -> Result[str]:
        """Fetch the repository's default README as raw text."""
        endpoint = f"{repo.api_path}/readme"
        params = {"ref": ref} if ref else None
        return self._get_raw_text(endpoint, params=params, label="README")

    def resolve_commit(self, repo: RepoRef, ref: str) -> Result[str]:
        """Resolve a branch, tag, or sha to a full commit sha."""
        endpoint = f"{repo.api_path}/commits/{_encode_path(ref)}"
        result = self.request(
            endpoint, accept=SHA_MEDIA_TYPE, not_found_statuses=REF_NOT_FOUND_STATUSES
        )
        if isinstance(result, Failure):
            if result.error.kind is ErrorKind.NOT_FOUND:
                return Failure(
                    replace(
                        result.error,
                        message=f"Ref '{ref}' does not resolve to a commit in {repo.full_name}.",
                    )
                )
            return result
        sha = result.value.text.strip()
        if not COMMIT_SHA_PATTERN.fullmatch(sha):
            return malformed_response_failure(
                f"expected a commit sha from '{endpoint}'.", endpoint=endpoint
            )
        return Success(sha)

    def compare_commits(self, repo: RepoRef, base_sha: str, head_sha: str) -> Result[PagedItems]:
        """List commits between two shas, oldest first, as CommitSummary items."""
        endpoint = f"{repo.api_path}/compare/{base_sha}...{head_sha}"
        result = self.collect_pages(endpoint, items_key="commits", total_key="total_commits")
        if isinstance(result, Failure):
            return result
        try:
            commits = tuple(_commit_summary(row, endpoint=endpoint) for row in result.value.items)
        except MalformedResponseError as error:
            return error.to_failure()
        total_commits = result.value.total_count
        if total_commits is None:
            total_commits = len(commits)
        return Success(replace(result.value, items=commits, total_count=total_commits))

    def search_code(
        self, repo: RepoRef, query: str, *, limit: int | None = None
    ) -> Result[PagedItems]:
        """Search code inside one repository; items are SearchMatch."""
        endpoint = "/search/code"
        result = self.collect_pages(
            endpoint,
            params={"q": f"{query} repo:{repo.full_name}"},
            items_key="items",
            accept=TEXT_MATCH_MEDIA_TYPE,
            limit=limit,
        )
        if isinstance(result, Failure):
            return result
        try:
            matches = tuple(_search_match(row, endpoint=endpoint) for row in result.value.items)
        except MalformedResponseError as error:
            return error.to_failure()
        return Success(replace(result.value, items=matches))

    def get_authenticated_login(self) -> Result[str]:
        """Fetch the login of the token's user."""
        endpoint = "/user"
        result = self.request_json(endpoint)
        if isinstance(result, Failure):
            return result
        try:
            payload = _ensure_mapping(result.value, endpoint=endpoint)
            return Success(_require_str(payload, key="login", endpoint=endpoint))
        except MalformedResponseError as error:
            return error.to_failure()


def _commit_summary(row: Mapping[str, Any], *, endpoint: str) -> CommitSummary:
    """Map one compare-listing row to a CommitSummary."""
    commit_payload = _optional_object(row, key="commit", endpoint=endpoint)
    git_author = _optional_object(commit_payload, key="author", endpoint=endpoint)
    account = _optional_object(row, key="author", endpoint=endpoint)
    author = (
        _optional_str(git_author, key="name", endpoint=endpoint)
        or _optional_str(account, key="login", endpoint=endpoint)
        or "unknown"
    )
    return CommitSummary(
        id=_require_str(row, key="sha", endpoint=endpoint),
        message=_require_str(commit_payload, key="message", endpoint=endpoint),
        author=author,
        timestamp=_optional_str(git_author, key="date", endpoint=endpoint),
    )


def _search_match(row: Mapping[str, Any], *, endpoint: str) -> SearchMatch:
    """Map one search hit to its path and first text-match fragment."""
    snippet = ""
    text_matches = row.get("text_matches")
    if isinstance(text_matches, list):
        for text_match in text_matches:
            if isinstance(text_match, dict) and isinstance(text_match.get("fragment"), str):
                snippet = text_match["fragment"]
                break
    return SearchMatch(path=_require_str(row, key="path", endpoint=endpoint), snippet=snippet)
