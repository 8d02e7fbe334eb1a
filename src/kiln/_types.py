"""Shared type definitions for kiln."""

from typing import Literal

# Mode of operation
type KilnMode = Literal["build", "watch", "serve"]

# Root-relative POSIX path of a source file, e.g. "content/blog/post.md"
type NodeId = str

# Hex sha256 digest
type Digest = str

# Which tree a source file was discovered in
type SourceRole = Literal["content", "layout", "data"]

# Transformation chain identity of a source file
type ContentKind = Literal[
    "markdown",
    "markup",
    "stylesheet",
    "script",
    "script_data",
    "data",
    "template",
    "asset",
]

# Site URL path, e.g. "/", "/blog/post/", "/css/main.css"
type URLPath = str
