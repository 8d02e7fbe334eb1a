"""Navigation tree derived from page URLs.

A page's parent is the page at the nearest ancestor URL; pages with no
page above them are roots.  ``/`` itself is a root, and top-level sections
hang below it only when it exists::

    /                 Home
    ├── /about/       About
    └── /blog/        Blog
        └── /blog/first/
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from kiln.site.model import PageEntry


@dataclass(frozen=True, slots=True)
class NavNode:
    node_id: str
    url: str
    title: str
    children: tuple[NavNode, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "children": [child.as_dict() for child in self.children],
        }

    def replace_titles(self, entries: Mapping[str, PageEntry]) -> NavNode:
        """Copy with titles refreshed from *entries*, keyed by node id."""
        entry = entries.get(self.node_id)
        children = tuple(child.replace_titles(entries) for child in self.children)
        title = entry.title if entry is not None else self.title
        if title == self.title and all(a is b for a, b in zip(children, self.children, strict=True)):
            return self
        return NavNode(self.node_id, self.url, title, children)


def _parent_url(url: str, urls: set[str]) -> str | None:
    parts = [p for p in url.split("/") if p]
    while parts:
        parts.pop()
        candidate = "/" + "".join(f"{p}/" for p in parts)
        if candidate in urls:
            return candidate
    return None


def build_navigation(entries: Iterable[PageEntry]) -> tuple[NavNode, ...]:
    """Root navigation nodes, children sorted by URL."""
    by_url = {e.url: e for e in entries if e.url.endswith("/")}
    urls = set(by_url)
    children: dict[str | None, list[str]] = {}
    for url in sorted(urls):
        children.setdefault(_parent_url(url, urls), []).append(url)

    def _node(url: str) -> NavNode:
        entry = by_url[url]
        kids = tuple(_node(child) for child in children.get(url, ()))
        return NavNode(entry.node_id, url, entry.title, kids)

    return tuple(_node(url) for url in children.get(None, ()))


def breadcrumbs(navigation: tuple[NavNode, ...], url: str) -> list[dict[str, str]]:
    """Trail of ``{url, title}`` from the root to *url* (inclusive)."""
    trail: list[dict[str, str]] = []
    level = navigation
    while True:
        match = next((n for n in level if url.startswith(n.url)), None)
        if match is None:
            return trail
        trail.append({"url": match.url, "title": match.title})
        if match.url == url:
            return trail
        level = match.children
