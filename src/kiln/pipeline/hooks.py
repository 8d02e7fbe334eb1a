"""Script hooks — user scripts inserted into a pipeline as ordinary steps.

A hook script sees four globals::

    content    the artifact's current content (text)
    metadata   its current metadata
    path       its node id
    site       global site data

and returns a mapping with any of ``content``, ``metadata`` and ``data``.
Returning nothing leaves the artifact unchanged.  For example, in Lua::

    return { content = content:gsub("TODO", "<mark>TODO</mark>") }

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from kiln._hashing import digest_bytes
from kiln.pipeline.base import INJECTED_KEY, Step
from kiln.scripting import Absent, backend_name_for, decode, from_python

if TYPE_CHECKING:
    from kiln.config import HookSpec
    from kiln.pipeline.base import Content, StepContext


@dataclass(frozen=True, slots=True)
class HookResult:
    """What a hook script may hand back."""

    content: str | None = None
    metadata: dict[str, Any] | None = None
    data: dict[str, Any] | None = None


def apply_hook_result(
    result: HookResult,
    content: Content,
    metadata: dict[str, Any],
) -> tuple[Content, dict[str, Any]]:
    if result.content is not None:
        content = result.content
    if result.metadata:
        metadata = {**metadata, **result.metadata}
    if result.data:
        injected = {**metadata.get(INJECTED_KEY, {}), **result.data}
        metadata = {**metadata, INJECTED_KEY: injected}
    return content, metadata


def hook_step(spec: HookSpec, source: str) -> Step:
    """Build a pipeline step that evaluates *source* with the hook bindings."""
    backend = backend_name_for(spec.script)

    def run(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
        if isinstance(content, bytes):
            msg = "hooks cannot run on binary content"
            raise TypeError(msg)
        bindings = from_python({
            "content": content,
            "metadata": metadata,
            "path": ctx.item.node_id,
            "site": dict(ctx.global_data),
        })
        value = ctx.engines.evaluate(source, bindings, backend=backend, origin=spec.script)
        if isinstance(value, Absent):
            return content, metadata
        return apply_hook_result(decode(value, HookResult), content, metadata)

    return Step(
        name=f"hook:{spec.script}",
        func=run,
        version=digest_bytes(source.encode("utf-8"))[:16],
    )
