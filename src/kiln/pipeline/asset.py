"""Pass-through chains for opaque assets and layout templates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.pipeline.base import Step

if TYPE_CHECKING:
    from kiln.pipeline.base import Content, StepContext


def copy(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    return content, metadata


def load_template(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    # The renderer reads templates itself; this node only tracks the hash.
    return content, metadata


ASSET_STEPS = (Step("copy", copy),)
TEMPLATE_STEPS = (Step("load", load_template),)
