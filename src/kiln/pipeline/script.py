"""Script chain: transpile -> minify.

TypeScript is lowered to plain JavaScript with the TypeScript compiler
bundled in dukpy; ``.js`` passes through.  Minification uses rjsmin.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.pipeline.base import Step

if TYPE_CHECKING:
    from kiln.pipeline.base import Content, StepContext

TYPED_EXTENSIONS = frozenset({".ts", ".mts"})


def transpile(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    if ctx.item.path.suffix.lower() not in TYPED_EXTENSIONS:
        return content, metadata

    import dukpy

    return dukpy.typescript_compile(str(content)), metadata


def minify_script(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    if not ctx.config.minify:
        return content, metadata

    import rjsmin

    return rjsmin.jsmin(str(content)), metadata


SCRIPT_STEPS = (
    Step("transpile", transpile),
    Step("minify", minify_script),
)
