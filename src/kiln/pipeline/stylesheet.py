"""Stylesheet chain: compile -> minify.

Partials (``_name.scss``) only load: they are hashed and tracked as
dependencies, and compile as part of every stylesheet that imports them.

``.scss`` and ``.sass`` compile through libsass; plain ``.css`` passes
through.  ``@import`` / ``@use`` / ``@forward`` targets are found by
``scan_imports`` + ``resolve_import`` so the scheduler can record them as
graph edges before anything compiles.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kiln.pipeline.base import Step

if TYPE_CHECKING:
    from kiln.pipeline.base import Content, StepContext

_IMPORT_RE = re.compile(r"@(?:import|use|forward)\s+([^;\n]+)")
_QUOTED_RE = re.compile(r"""["']([^"']+)["']""")
_EXTENSIONS = (".scss", ".sass", ".css")


def scan_imports(source: str) -> list[str]:
    """Return the import targets named in *source*, in order.

    Remote imports and ``url(...)`` imports are left to the browser.
    """
    targets: list[str] = []
    for statement in _IMPORT_RE.finditer(source):
        clause = statement.group(1)
        if "url(" in clause:
            continue
        for name in _QUOTED_RE.findall(clause):
            if "://" in name or name.startswith("//") or name.startswith("sass:"):
                continue
            targets.append(name)
    return targets


def _candidates(base: Path) -> list[Path]:
    parent, name = base.parent, base.name
    if base.suffix in _EXTENSIONS:
        return [base, parent / f"_{name}"]
    found: list[Path] = []
    for ext in _EXTENSIONS:
        found.append(parent / f"{name}{ext}")
        found.append(parent / f"_{name}{ext}")
    for ext in _EXTENSIONS:
        found.append(base / f"_index{ext}")
        found.append(base / f"index{ext}")
    return found


def resolve_import(name: str, importer: Path, search_dirs: list[Path]) -> Path | None:
    """Find the file an import refers to.

    Looks next to the importer first, then in each of *search_dirs*.
    Partials (``_name.scss``), implicit extensions and ``_index`` files are
    tried in the order Sass uses.
    """
    for directory in (importer.parent, *search_dirs):
        for candidate in _candidates(directory / name):
            if candidate.is_file():
                return candidate
    return None


def load_partial(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    # Partials compile inside their importers; errors surface there.
    return content, metadata


def compile_stylesheet(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    suffix = ctx.item.path.suffix.lower()
    if suffix == ".css":
        return content, metadata

    import sass

    css = sass.compile(
        string=str(content),
        include_paths=[str(ctx.item.path.parent), str(ctx.config.content_path)],
        output_style="expanded",
        indented=suffix == ".sass",
    )
    return css, metadata


def minify_stylesheet(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    if not ctx.config.minify:
        return content, metadata

    import rcssmin

    return rcssmin.cssmin(str(content)), metadata


STYLESHEET_STEPS = (
    Step("compile", compile_stylesheet),
    Step("minify", minify_stylesheet),
)
PARTIAL_STEPS = (Step("load", load_partial),)
