"""Semantic version parsing and tag ordering.

Tags are parsed leniently: a leading `v`/`V` is dropped and missing
minor/patch components default to 0. Anything that still does not parse
is kept but sorts after every parseable tag, in the order the API
returned it.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

CORE_PART_PATTERN = re.compile(r"^[0-9]+$")
IDENTIFIER_PATTERN = re.compile(r"^[0-9A-Za-z-]+$")

PrereleaseIdentifier = int | str


@dataclass(frozen=True, slots=True)
class SemVersion:
    """Parsed version; `build` and `raw` do not take part in precedence."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[PrereleaseIdentifier, ...] = ()
    build: str | None = None
    raw: str = field(default="", compare=False)

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return compare_versions(self, other) < 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return compare_versions(self, other) > 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return compare_versions(self, other) <= 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return compare_versions(self, other) >= 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return compare_versions(self, other) == 0

    def __hash__(self) -> int:
        return hash((self.core, self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text = f"{text}-{'.'.join(str(part) for part in self.prerelease)}"
        if self.build:
            text = f"{text}+{self.build}"
        return text


def _parse_identifiers(text: str) -> tuple[str, ...] | None:
    """Split a dot-separated identifier list, rejecting empty or invalid parts."""
    parts = tuple(text.split("."))
    if any(not IDENTIFIER_PATTERN.fullmatch(part) for part in parts):
        return None
    return parts


def parse(raw: str) -> SemVersion | None:
    """Parse a raw tag into a SemVersion, or return None when it is not a version."""
    text = raw.strip()
    if text[:1] in {"v", "V"}:
        text = text[1:]
    if not text:
        return None

    build: str | None = None
    if "+" in text:
        text, build = text.split("+", 1)
        if _parse_identifiers(build) is None:
            return None

    prerelease_text: str | None = None
    if "-" in text:
        text, prerelease_text = text.split("-", 1)

    core_parts = text.split(".")
    if len(core_parts) > 3 or any(not CORE_PART_PATTERN.fullmatch(part) for part in core_parts):
        return None
    numbers = [int(part) for part in core_parts] + [0] * (3 - len(core_parts))

    prerelease: tuple[PrereleaseIdentifier, ...] = ()
    if prerelease_text is not None:
        identifiers = _parse_identifiers(prerelease_text)
        if identifiers is None:
            return None
        prerelease = tuple(int(part) if part.isdigit() else part for part in identifiers)

    return SemVersion(
        major=numbers[0],
        minor=numbers[1],
        patch=numbers[2],
        prerelease=prerelease,
        build=build,
        raw=raw,
    )


def _compare_identifier(left: PrereleaseIdentifier, right: PrereleaseIdentifier) -> int:
    """Numeric identifiers compare numerically and sort before alphanumeric ones."""
    left_numeric = isinstance(left, int)
    right_numeric = isinstance(right, int)
    if left_numeric and right_numeric:
        return (left > right) - (left < right)
    if left_numeric:
        return -1
    if right_numeric:
        return 1
    return (left > right) - (left < right)


def compare_versions(left: SemVersion, right: SemVersion) -> int:
    """Return -1, 0, or 1 by SemVer precedence (build metadata ignored)."""
    if left.core != right.core:
        return -1 if left.core < right.core else 1

    if not left.prerelease or not right.prerelease:
        # A release outranks any pre-release of the same core.
        return (not left.prerelease) - (not right.prerelease)

    for left_part, right_part in zip(left.prerelease, right.prerelease):
        result = _compare_identifier(left_part, right_part)
        if result:
            return result
    return (len(left.prerelease) > len(right.prerelease)) - (
        len(left.prerelease) < len(right.prerelease)
    )


def sort_descending(tags: Iterable[str], limit: int | None = None) -> list[str]:
    """Order tags newest first; unparseable tags trail in their original order.

    A positive `limit` truncates the result; zero, negative, or None keeps
    every tag.
    """
    parsed: list[tuple[SemVersion, str]] = []
    unparsed: list[str] = []
    for tag in tags:
        version = parse(tag)
        if version is None:
            unparsed.append(tag)
        else:
            parsed.append((version, tag))

    def _descending(left: tuple[SemVersion, str], right: tuple[SemVersion, str]) -> int:
        result = compare_versions(right[0], left[0])
        if result:
            return result
        return (right[1] > left[1]) - (right[1] < left[1])

    ordered = [tag for _version, tag in sorted(parsed, key=functools.cmp_to_key(_descending))]
    ordered.extend(unparsed)
    return truncate(ordered, limit)


def truncate(tags: Sequence[str], limit: int | None) -> list[str]:
    """Apply an optional positive limit."""
    if limit is None or limit <= 0:
        return list(tags)
    return list(tags[:limit])
