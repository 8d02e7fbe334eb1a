"""Data chains: structured data files and script data files.

Both keep the file's text as content and put the decoded value in
``metadata["value"]``.  Script data is evaluated with two globals,
``site`` (global data) and ``path`` (the node id).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.content.data import parse_data
from kiln.pipeline.base import Step
from kiln.scripting import backend_name_for, from_python, to_python

if TYPE_CHECKING:
    from kiln.pipeline.base import Content, StepContext

VALUE_KEY = "value"


def parse(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    value = parse_data(str(content), ctx.item.path.suffix)
    # Normalized through the script value model: dates become ISO text
    return content, {**metadata, VALUE_KEY: to_python(from_python(value))}


def evaluate(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    bindings = from_python({"site": dict(ctx.global_data), "path": ctx.item.node_id})
    backend = backend_name_for(ctx.item.path)
    value = ctx.engines.evaluate(str(content), bindings, backend=backend, origin=ctx.item.node_id)
    return content, {**metadata, VALUE_KEY: to_python(value)}


DATA_STEPS = (Step("parse", parse),)
SCRIPT_DATA_STEPS = (Step("evaluate", evaluate),)
