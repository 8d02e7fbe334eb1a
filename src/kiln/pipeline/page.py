"""Page chains.

``markup`` handles HTML content pages before rendering (front matter
only).  ``page`` finalizes every rendered page: asset URLs are swapped
for their fingerprinted names, links to source files become page URLs
and root-relative links gain the base URL path, then the HTML is
minified.
"""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from kiln.pipeline.base import Step
from kiln.pipeline.markdown import front_matter

if TYPE_CHECKING:
    from collections.abc import Callable

    from kiln.pipeline.base import Content, StepContext

_ATTR_RE = re.compile(r"""(?P<attr>\b(?:href|src))=(?P<q>["'])(?P<url>[^"']*)(?P=q)""")
_SOURCE_SUFFIXES = (".md", ".markdown", ".html", ".htm")


def _is_external(url: str) -> bool:
    return (
        not url
        or url.startswith(("#", "//", "mailto:", "tel:", "data:", "javascript:"))
        or "://" in url
    )


def _rewrite_attrs(html: str, rewrite: Callable[[str], str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        url = match["url"]
        if _is_external(url):
            return match.group(0)
        new = rewrite(url)
        if new == url:
            return match.group(0)
        return f"{match['attr']}={match['q']}{new}{match['q']}"

    return _ATTR_RE.sub(_replace, html)


def _split_suffix(url: str) -> tuple[str, str]:
    """Split ``/a/b.css?v=1#x`` into ``("/a/b.css", "?v=1#x")``."""
    cut = min((i for i in (url.find("?"), url.find("#")) if i >= 0), default=len(url))
    return url[:cut], url[cut:]


def fingerprint(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    if not ctx.manifest:
        return content, metadata

    def _swap(url: str) -> str:
        path, rest = _split_suffix(url)
        if not path.startswith("/"):
            page_dir = ctx.url if ctx.url.endswith("/") else posixpath.dirname(ctx.url) + "/"
            path = posixpath.normpath(posixpath.join(page_dir, path))
        mapped = ctx.manifest.get(path)
        return mapped + rest if mapped else url

    return _rewrite_attrs(str(content), _swap), metadata


def rewrite_links(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    base_path = urlsplit(ctx.config.base_url).path.rstrip("/")
    source_dir = posixpath.dirname(ctx.item.relative)

    def _rewrite(url: str) -> str:
        path, rest = _split_suffix(url)
        if path.lower().endswith(_SOURCE_SUFFIXES):
            if path.startswith("/"):
                target = path.lstrip("/")
            else:
                target = posixpath.normpath(posixpath.join(source_dir, path))
            if target in ctx.links:
                path = ctx.links[target]
        if base_path and path.startswith("/") and not (
            path == base_path or path.startswith(base_path + "/")
        ):
            path = base_path + path
        return path + rest

    return _rewrite_attrs(str(content), _rewrite), metadata


def minify(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    if not ctx.config.minify:
        return content, metadata

    import minify_html

    return minify_html.minify(str(content), minify_css=True, minify_js=True), metadata


MARKUP_STEPS = (Step("front_matter", front_matter),)

PAGE_STEPS = (
    Step("fingerprint", fingerprint),
    Step("rewrite_links", rewrite_links),
    Step("minify", minify),
)
