"""Flat and nested views over a recursive tree listing."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from git_mcp.github_client import TreeEntry


@dataclass(frozen=True, slots=True)
class TreeView:
    """Entries kept after depth and size bounds are applied."""

    entries: tuple[TreeEntry, ...]
    total_count: int
    truncated: bool


def bound_entries(
    entries: Iterable[TreeEntry],
    *,
    max_depth: int,
    max_entries: int,
) -> TreeView:
    """Drop entries deeper than `max_depth` and cap the listing at `max_entries`."""
    all_entries = tuple(entries)
    within_depth = [entry for entry in all_entries if entry.depth <= max_depth]
    truncated = len(within_depth) < len(all_entries)
    if len(within_depth) > max_entries:
        within_depth = within_depth[:max_entries]
        truncated = True
    return TreeView(entries=tuple(within_depth), total_count=len(all_entries), truncated=truncated)


def entry_to_dict(entry: TreeEntry) -> dict[str, Any]:
    payload: dict[str, Any] = {"path": entry.path, "kind": entry.kind}
    if entry.kind == "file":
        payload["size"] = entry.size
    return payload


def build_nested(entries: Iterable[TreeEntry]) -> list[dict[str, Any]]:
    """Group entries under their parent directories.

    Parent directories missing from the input are synthesized so that every
    entry is reachable from the root.
    """
    root: list[dict[str, Any]] = []
    directories: dict[str, dict[str, Any]] = {}

    def children_of(parent_path: str) -> list[dict[str, Any]]:
        if not parent_path:
            return root
        return ensure_directory(parent_path)["children"]

    def ensure_directory(path: str) -> dict[str, Any]:
        node = directories.get(path)
        if node is None:
            parent_path, _separator, name = path.rpartition("/")
            node = {"name": name, "path": path, "kind": "directory", "children": []}
            directories[path] = node
            children_of(parent_path).append(node)
        return node

    for entry in entries:
        if entry.kind == "directory":
            ensure_directory(entry.path)
            continue
        parent_path, _separator, name = entry.path.rpartition("/")
        children_of(parent_path).append(
            {"name": name, "path": entry.path, "kind": entry.kind, "size": entry.size}
        )
    return root


def render_tree(
    entries: Iterable[TreeEntry],
    *,
    hierarchical: bool,
    max_depth: int,
    max_entries: int,
) -> dict[str, Any]:
    """Return the `get_file_tree` payload body for a listing."""
    view = bound_entries(entries, max_depth=max_depth, max_entries=max_entries)
    payload: dict[str, Any] = {
        "total_count": view.total_count,
        "returned_count": len(view.entries),
        "truncated": view.truncated,
    }
    if hierarchical:
        payload["tree"] = build_nested(view.entries)
    else:
        payload["entries"] = [entry_to_dict(entry) for entry in view.entries]
    return payload
