"""Content classifier — maps a source path to its transformation chain.

Classification depends only on the file name and the tree the file was
found in, so it is stable for the life of a node.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import TYPE_CHECKING

from kiln.scripting.backend import SCRIPT_EXTENSIONS

if TYPE_CHECKING:
    from kiln._types import ContentKind, SourceRole

MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown"})
MARKUP_EXTENSIONS = frozenset({".html", ".htm"})
STYLESHEET_EXTENSIONS = frozenset({".scss", ".sass", ".css"})
SCRIPT_SOURCE_EXTENSIONS = frozenset({".ts", ".mts", ".js", ".mjs"})
DATA_EXTENSIONS = frozenset({".json", ".yaml", ".yml", ".toml"})

# JavaScript files are page scripts unless they carry this suffix
JS_DATA_SUFFIX = ".data.js"

PAGE_KINDS: frozenset[ContentKind] = frozenset({"markdown", "markup"})

# Kinds whose pipeline output is written to the output tree as-is
ASSET_KINDS: frozenset[ContentKind] = frozenset({"stylesheet", "script", "asset"})


def classify(path: PurePath | str, role: SourceRole = "content") -> ContentKind:
    """Return the content kind of *path* found in the *role* tree."""
    path = PurePath(path)
    if role == "layout":
        return "template"

    name = path.name.lower()
    suffix = path.suffix.lower()

    if role == "data":
        if suffix in DATA_EXTENSIONS:
            return "data"
        if suffix in SCRIPT_EXTENSIONS:
            return "script_data"
        return "asset"

    if suffix in MARKDOWN_EXTENSIONS:
        return "markdown"
    if suffix in MARKUP_EXTENSIONS:
        return "markup"
    if suffix in STYLESHEET_EXTENSIONS:
        return "stylesheet"
    if name.endswith(JS_DATA_SUFFIX) or (suffix in SCRIPT_EXTENSIONS and suffix != ".js"):
        return "script_data"
    if suffix in SCRIPT_SOURCE_EXTENSIONS:
        return "script"
    if suffix in DATA_EXTENSIONS:
        return "data"
    return "asset"


def is_partial(path: PurePath | str) -> bool:
    """Stylesheet partials (``_name.scss``) are imported, never emitted."""
    return PurePath(path).name.startswith("_")


def companion_stem(path: PurePath | str) -> str:
    """Stem used to pair a page with its data file.

    ``about.md``, ``about.yaml``, ``about.lua`` and ``about.data.js`` all
    share the stem ``about``.
    """
    name = PurePath(path).name
    if name.lower().endswith(JS_DATA_SUFFIX):
        return name[: -len(JS_DATA_SUFFIX)]
    return PurePath(name).stem
