"""Pipeline registry — one chain per content kind, plus configured hooks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._errors import ConfigError
from kiln.pipeline.asset import ASSET_STEPS, TEMPLATE_STEPS
from kiln.pipeline.base import Pipeline
from kiln.pipeline.data import DATA_STEPS, SCRIPT_DATA_STEPS
from kiln.pipeline.hooks import hook_step
from kiln.pipeline.markdown import MARKDOWN_STEPS
from kiln.pipeline.page import MARKUP_STEPS, PAGE_STEPS
from kiln.pipeline.script import SCRIPT_STEPS
from kiln.content.classifier import is_partial
from kiln.pipeline.stylesheet import PARTIAL_STEPS, STYLESHEET_STEPS

if TYPE_CHECKING:
    from kiln.config import KilnConfig
    from kiln.content.source import SourceItem

# Finalizes rendered pages; not a content kind
PAGE_PIPELINE = "page"

# Stylesheet partials; loaded and hashed, never compiled on their own
PARTIAL_PIPELINE = "partial"


def pipeline_key(item: SourceItem) -> str:
    """Name of the pipeline that transforms *item*."""
    if item.kind == "stylesheet" and is_partial(item.relative):
        return PARTIAL_PIPELINE
    return item.kind


def default_pipelines() -> dict[str, Pipeline]:
    """Pipelines keyed by content kind, plus ``page``."""
    return {
        "markdown": Pipeline("markdown", MARKDOWN_STEPS),
        "markup": Pipeline("markup", MARKUP_STEPS),
        "stylesheet": Pipeline("stylesheet", STYLESHEET_STEPS),
        PARTIAL_PIPELINE: Pipeline(PARTIAL_PIPELINE, PARTIAL_STEPS),
        "script": Pipeline("script", SCRIPT_STEPS),
        "data": Pipeline("data", DATA_STEPS),
        "script_data": Pipeline("script_data", SCRIPT_DATA_STEPS),
        "template": Pipeline("template", TEMPLATE_STEPS),
        "asset": Pipeline("asset", ASSET_STEPS, binary=True),
        PAGE_PIPELINE: Pipeline(PAGE_PIPELINE, PAGE_STEPS),
    }


def build_pipelines(config: KilnConfig, hook_sources: dict[str, str]) -> dict[str, Pipeline]:
    """Default pipelines with every configured hook inserted.

    Args:
        config: Generation config; ``config.hooks`` lists the hooks.
        hook_sources: Hook script path -> script text.

    Raises:
        ConfigError: For an unknown pipeline or step, a hook on binary
            content, or a hook script that was not loaded.

    """
    pipelines = default_pipelines()
    for spec in config.hooks:
        pipeline = pipelines.get(spec.pipeline)
        if pipeline is None:
            msg = f"hook {spec.script}: unknown pipeline {spec.pipeline!r}"
            raise ConfigError(msg)
        if pipeline.binary:
            msg = f"hook {spec.script}: pipeline {spec.pipeline!r} carries binary content"
            raise ConfigError(msg)
        if spec.script not in hook_sources:
            msg = f"hook script not found: {spec.script}"
            raise ConfigError(msg)
        pipelines[spec.pipeline] = pipeline.insert(
            spec.step, spec.position, hook_step(spec, hook_sources[spec.script]),
        )
    return pipelines
