"""Thread-safe tracking of the hosting API's rate-limit budget."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from git_mcp.errors import ErrorKind, ToolError

logger = logging.getLogger(__name__)

REMAINING_HEADER = "X-RateLimit-Remaining"
LIMIT_HEADER = "X-RateLimit-Limit"
RESET_HEADER = "X-RateLimit-Reset"
RESOURCE_HEADER = "X-RateLimit-Resource"
CORE_RESOURCE = "core"
SEARCH_RESOURCE = "search"


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    """Point-in-time copy of the budget."""

    remaining: int | None
    limit: int | None
    reset_at: float | None


def _parse_header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def is_exhausted_response(headers: Mapping[str, str]) -> bool:
    """Return whether the response says the budget is used up."""
    return _parse_header_int(headers, REMAINING_HEADER) == 0


@dataclass(slots=True)
class _Bucket:
    """Mutable budget for one rate-limit resource; guarded by the owning state's lock."""

    remaining: int | None = None
    limit: int | None = None
    reset_at: float | None = None


def resource_for_endpoint(endpoint: str) -> str:
    """Return the rate-limit resource a relative API endpoint draws from."""
    if endpoint.startswith("/search/"):
        return SEARCH_RESOURCE
    return CORE_RESOURCE


class RateLimitState:
    """Remaining-call budgets shared by every request made through one client.

    GitHub meters some endpoint families separately (`search` has its own
    small per-minute budget), so each `X-RateLimit-Resource` gets its own
    bucket and a request only draws from and updates the bucket it uses.

    Each request reserves one call before it is sent, so concurrent callers
    working from the same snapshot cannot overshoot the advertised budget
    by more than one in-flight request. `remaining` only goes back up once
    the reset time has passed.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def _bucket_locked(self, resource: str) -> _Bucket:
        bucket = self._buckets.get(resource)
        if bucket is None:
            bucket = self._buckets[resource] = _Bucket()
        return bucket

    def snapshot(self, resource: str = CORE_RESOURCE) -> RateLimitSnapshot:
        with self._lock:
            bucket = self._bucket_locked(resource)
            return RateLimitSnapshot(
                remaining=bucket.remaining,
                limit=bucket.limit,
                reset_at=bucket.reset_at,
            )

    @staticmethod
    def _expire_window_locked(bucket: _Bucket, now: float) -> None:
        if bucket.reset_at is not None and now >= bucket.reset_at:
            bucket.remaining = None
            bucket.reset_at = None

    def reserve(self, resource: str = CORE_RESOURCE) -> ToolError | None:
        """Claim one call from a bucket, or return a RateLimited error without claiming."""
        with self._lock:
            now = self._clock()
            bucket = self._bucket_locked(resource)
            self._expire_window_locked(bucket, now)
            if bucket.remaining is None:
                return None
            if bucket.remaining <= 0 and bucket.reset_at is not None:
                wait_seconds = max(bucket.reset_at - now, 0.0)
                return ToolError(
                    kind=ErrorKind.RATE_LIMITED,
                    message=(
                        f"Rate limit for '{resource}' exhausted; retry after "
                        f"{wait_seconds:.0f}s (resets at {bucket.reset_at:.0f})."
                    ),
                    reset_at=bucket.reset_at,
                    retry_after_seconds=wait_seconds,
                )
            bucket.remaining = max(bucket.remaining - 1, 0)
            return None

    def update_from_headers(
        self, headers: Mapping[str, str], *, resource: str = CORE_RESOURCE
    ) -> None:
        """Merge the budget advertised by a response.

        The response's `X-RateLimit-Resource` header names the bucket; `resource`
        is used when the header is missing.
        """
        remaining = _parse_header_int(headers, REMAINING_HEADER)
        if remaining is None:
            return
        limit = _parse_header_int(headers, LIMIT_HEADER)
        reset_value = _parse_header_int(headers, RESET_HEADER)
        reset_at = float(reset_value) if reset_value is not None else None
        resource = headers.get(RESOURCE_HEADER) or resource

        with self._lock:
            now = self._clock()
            bucket = self._bucket_locked(resource)
            self._expire_window_locked(bucket, now)
            new_window = bucket.reset_at is None or (
                reset_at is not None and reset_at > bucket.reset_at
            )
            if new_window or bucket.remaining is None:
                bucket.remaining = remaining
            else:
                bucket.remaining = min(bucket.remaining, remaining)
            if reset_at is not None and (bucket.reset_at is None or reset_at > bucket.reset_at):
                bucket.reset_at = reset_at
            if limit is not None:
                bucket.limit = limit
            current_remaining = bucket.remaining
            current_reset = bucket.reset_at

        logger.debug(
            "Rate limit for %s updated: remaining=%s reset_at=%s",
            resource,
            current_remaining,
            current_reset,
        )

    def mark_exhausted(self, reset_at: float, *, resource: str = CORE_RESOURCE) -> None:
        """Record that upstream refused a call from `resource` until `reset_at`."""
        with self._lock:
            bucket = self._bucket_locked(resource)
            bucket.remaining = 0
            if bucket.reset_at is None or reset_at > bucket.reset_at:
                bucket.reset_at = reset_at
