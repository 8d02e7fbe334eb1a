"""Dependency scanning — which nodes a source item reads.

Scanning runs on the scheduler thread before any transform, so it must be
cheap: front matter for the layout name, a regex over templates and
stylesheets.  Malformed input yields no edges; the transform itself will
report the error.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from kiln.content.classifier import PAGE_KINDS, classify, companion_stem
from kiln.content.front_matter import FrontMatterError, split_front_matter
from kiln.pipeline.stylesheet import resolve_import, scan_imports

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kiln._types import NodeId
    from kiln.config import KilnConfig
    from kiln.content.source import SourceItem

_TEMPLATE_REF_RE = re.compile(
    r"""\{%-?\s*(?:extends|include|import|from|embed)\s+["']([^"']+)["']""",
)

LAYOUT_KEY = "layout"
DATA_KINDS = frozenset({"data", "script_data"})


def tree_prefix(config: KilnConfig, directory: str) -> str:
    """Node-id prefix of a configured directory, e.g. ``content/``."""
    return (config.root / directory).relative_to(config.root).as_posix().rstrip("/") + "/"


def layout_name(metadata: dict[str, object], config: KilnConfig) -> str | None:
    """Layout a page asks for: its ``layout`` key, else the default layout.

    A name without an extension gets ``.html``.  ``layout: false`` or an
    empty layout means no layout.
    """
    value = metadata.get(LAYOUT_KEY, config.default_layout)
    if value is None or value is False or value == "":
        return None
    name = str(value)
    if not PurePosixPath(name).suffix:
        name += ".html"
    return name


def page_metadata(item: SourceItem) -> dict[str, object]:
    """Front matter of a page, or an empty mapping if it cannot be read."""
    try:
        header, _ = split_front_matter(item.raw.decode("utf-8"))
    except (UnicodeDecodeError, FrontMatterError):
        return {}
    return header


def companion_ids(page_id: NodeId, known: Iterable[NodeId]) -> list[NodeId]:
    """Data files next to *page_id* sharing its stem, in sorted order.

    ``content/about.md`` pairs with ``content/about.yaml``,
    ``content/about.lua``, ``content/about.data.js``...
    """
    page = PurePosixPath(page_id)
    stem = companion_stem(page)
    found = []
    for node_id in known:
        path = PurePosixPath(node_id)
        if node_id == page_id or path.parent != page.parent:
            continue
        if companion_stem(path) != stem:
            continue
        if classify(path, "content") in DATA_KINDS:
            found.append(node_id)
    return sorted(found)


def scan_dependencies(item: SourceItem, config: KilnConfig, known: set[NodeId]) -> set[NodeId]:
    """Node ids *item* depends on.

    Args:
        item: The source item.
        config: Generation config.
        known: Every node id of the current source listing.

    """
    deps: set[NodeId] = set()
    layouts = tree_prefix(config, config.layouts_dir)

    if item.kind in PAGE_KINDS:
        name = layout_name(page_metadata(item), config)
        if name is not None:
            deps.add(layouts + name)
        deps.update(companion_ids(item.node_id, known))

    elif item.kind == "template":
        try:
            text = item.raw.decode("utf-8")
        except UnicodeDecodeError:
            return deps
        for ref in _TEMPLATE_REF_RE.findall(text):
            deps.add(layouts + ref)

    elif item.kind == "stylesheet":
        try:
            text = item.raw.decode("utf-8")
        except UnicodeDecodeError:
            return deps
        for name in scan_imports(text):
            target = resolve_import(name, item.path, [config.content_path])
            if target is None:
                continue
            try:
                deps.add(target.relative_to(config.root).as_posix())
            except ValueError:
                continue

    return {d for d in deps if d in known}
