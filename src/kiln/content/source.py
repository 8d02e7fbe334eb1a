"""Source discovery — the files a generation builds from.

A ``SourceItem`` is identified by its root-relative POSIX path (the node
id).  Items are immutable once hashed; when the file changes a new item
supersedes the old one.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from kiln._errors import ContentError
from kiln._hashing import combine
from kiln.content.classifier import classify, is_partial

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kiln._types import ContentKind, NodeId, SourceRole
    from kiln.config import KilnConfig


@dataclass(frozen=True, slots=True)
class SourceItem:
    """One source file as read at a point in time.

    Attributes:
        node_id: Root-relative POSIX path, e.g. ``content/about.md``.
        path: Absolute path on disk.
        role: Which tree the file lives in.
        kind: Content kind from the classifier.
        raw: File bytes (front matter included).
        content_hash: Digest of kind, identity and bytes.
        relative: POSIX path inside its own tree (``about.md`` for
            ``content/about.md``).

    """

    node_id: NodeId
    path: Path
    role: SourceRole
    kind: ContentKind
    raw: bytes
    content_hash: str
    relative: str = ""

    @property
    def text(self) -> str:
        return self.raw.decode("utf-8")


def read_source(path: Path, node_id: NodeId, role: SourceRole, relative: str | None = None) -> SourceItem:
    """Read and hash one file.

    *relative* defaults to the node id minus its first segment.

    Raises:
        OSError: If the file cannot be read.

    """
    raw = path.read_bytes()
    kind = classify(path, role)
    return SourceItem(
        node_id=node_id,
        path=path,
        role=role,
        kind=kind,
        raw=raw,
        content_hash=combine(kind, node_id, raw),
        relative=relative if relative is not None else node_id.partition("/")[2] or node_id,
    )


def tree_root(config: KilnConfig, role: SourceRole) -> Path:
    """Directory of the tree a role lives in."""
    if role == "layout":
        return config.layouts_path
    if role == "data":
        return config.data_path
    return config.content_path


def is_ignored(node_id: NodeId, relative: str, patterns: Iterable[str]) -> bool:
    """True if one of the config's ``ignore`` globs matches a file.

    A pattern may name the root-relative path (``content/drafts/**``) or
    the path inside the file's own tree (``drafts/**``, ``**/*.bak``).
    ``**`` spans any number of directories.
    """
    paths = (PurePosixPath(node_id), PurePosixPath(relative))
    return any(path.full_match(pattern) for pattern in patterns for path in paths)


def discover_sources(config: KilnConfig) -> dict[NodeId, tuple[Path, SourceRole]]:
    """Walk the content, layouts and data trees.

    Hidden entries and ``__pycache__`` are skipped everywhere.  In the
    content tree, entries starting with ``_`` are skipped too, except
    stylesheet partials which other stylesheets import.
    Files matching a config ``ignore`` glob are left out.

    Returns:
        Mapping of node id to ``(absolute path, role)`` in sorted order.

    Raises:
        ContentError: If the content root is missing or unreadable.

    """
    content = config.content_path
    if not content.is_dir():
        msg = f"content directory not found: {content}"
        raise ContentError(msg)
    if not os.access(content, os.R_OK | os.X_OK):
        msg = f"content directory is not readable: {content}"
        raise ContentError(msg)

    found: dict[NodeId, tuple[Path, SourceRole]] = {}
    trees: tuple[tuple[Path, SourceRole], ...] = (
        (content, "content"),
        (config.layouts_path, "layout"),
        (config.data_path, "data"),
    )
    output = config.output_path.resolve()
    for tree, role in trees:
        if not tree.is_dir():
            continue
        for path in sorted(tree.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(tree)
            if _skip(rel, role):
                continue
            if path.resolve().is_relative_to(output):
                continue
            node_id = path.relative_to(config.root).as_posix()
            if config.ignore and is_ignored(node_id, rel.as_posix(), config.ignore):
                continue
            found[node_id] = (path, role)
    return found


def _skip(rel: Path, role: SourceRole) -> bool:
    for part in rel.parts:
        if part.startswith(".") or part == "__pycache__":
            return True
    if role != "content":
        return False
    if any(part.startswith("_") for part in rel.parts[:-1]):
        return True
    if rel.name.startswith("_"):
        return not (classify(rel, role) == "stylesheet" and is_partial(rel))
    return False
