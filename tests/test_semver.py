"""Unit tests for SemVer parsing and tag ordering."""

from __future__ import annotations

import random

import pytest
from git_mcp.semver import SemVersion, compare_versions, parse, sort_descending


def parsed(raw: str) -> SemVersion:
    version = parse(raw)
    assert version is not None, raw
    return version


@pytest.mark.unit
def test_parse_strips_v_prefix_and_defaults_missing_parts() -> None:
    assert parsed("v1.2.3").core == (1, 2, 3)
    assert parsed("V2").core == (2, 0, 0)
    assert parsed("3.4").core == (3, 4, 0)


@pytest.mark.unit
def test_parse_captures_prerelease_and_build() -> None:
    version = parsed("1.0.0-rc.1+build.5")
    assert version.prerelease == ("rc", 1)
    assert version.build == "build.5"
    assert version.raw == "1.0.0-rc.1+build.5"


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        "release-final",
        "",
        "v",
        "1.2.3.4",
        "1..2",
        "1.x.0",
        "1.0.0-",
        "1.0.0+",
        "1.0.0-a..b",
        "-1.0.0",
    ],
)
def test_parse_returns_none_for_non_versions(raw: str) -> None:
    assert parse(raw) is None


@pytest.mark.unit
def test_numeric_components_compare_numerically() -> None:
    assert parsed("v1.10.0") > parsed("v1.9.0")


@pytest.mark.unit
def test_prerelease_sorts_before_release() -> None:
    assert parsed("1.0.0-alpha") < parsed("1.0.0")


@pytest.mark.unit
def test_build_metadata_is_ignored_for_precedence() -> None:
    assert parsed("1.0.0+build5") == parsed("1.0.0+build9")
    assert compare_versions(parsed("1.0.0+build5"), parsed("1.0.0+build9")) == 0


@pytest.mark.unit
def test_prerelease_precedence_follows_semver_rules() -> None:
    ordered = [
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
    ]
    for lower, higher in zip(ordered, ordered[1:]):
        assert parsed(lower) < parsed(higher), (lower, higher)


@pytest.mark.unit
def test_sort_descending_orders_newest_first_with_unparseable_trailing() -> None:
    tags = ["nightly", "v1.9.0", "v1.10.0", "release-final", "v1.10.0-rc.1", "v0.1"]

    assert sort_descending(tags) == [
        "v1.10.0",
        "v1.10.0-rc.1",
        "v1.9.0",
        "v0.1",
        "nightly",
        "release-final",
    ]


@pytest.mark.unit
def test_sort_descending_breaks_precedence_ties_by_raw_string() -> None:
    tags = ["1.0.0+build5", "v1.0.0", "1.0.0+build9", "1.0.0"]

    first = sort_descending(tags)
    second = sort_descending(list(reversed(tags)))

    assert first == second
    assert sorted(first) == sorted(tags)


@pytest.mark.unit
def test_sort_descending_is_idempotent_permutation() -> None:
    rng = random.Random(7)
    tags = [f"v{rng.randint(0, 3)}.{rng.randint(0, 12)}.{rng.randint(0, 5)}" for _ in range(40)]
    tags += ["latest", "1.0.0-beta.2", "1.0.0-beta", "v2.0.0+meta"]
    rng.shuffle(tags)

    once = sort_descending(tags)
    twice = sort_descending(once)

    assert twice == once
    assert sorted(once) == sorted(tags)
    versions = [parse(tag) for tag in once if parse(tag) is not None]
    for current, following in zip(versions, versions[1:]):
        assert current is not None and following is not None
        assert compare_versions(current, following) >= 0


@pytest.mark.unit
def test_sort_descending_limit_returns_highest() -> None:
    tags = [f"v1.{minor}.0" for minor in range(20)]
    random.Random(3).shuffle(tags)

    assert sort_descending(tags, limit=5) == [
        "v1.19.0",
        "v1.18.0",
        "v1.17.0",
        "v1.16.0",
        "v1.15.0",
    ]


@pytest.mark.unit
@pytest.mark.parametrize("limit", [None, 0, -3])
def test_sort_descending_non_positive_limit_passes_through(limit: int | None) -> None:
    tags = ["v1.0.0", "v2.0.0", "v3.0.0"]
    assert sort_descending(tags, limit=limit) == ["v3.0.0", "v2.0.0", "v1.0.0"]
