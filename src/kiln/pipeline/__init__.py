"""Transformation pipelines — per-kind chains of pure steps."""

from kiln.pipeline.base import INJECTED_KEY, Pipeline, Step, StepContext
from kiln.pipeline.hooks import HookResult, hook_step
from kiln.pipeline.registry import (
    PAGE_PIPELINE,
    PARTIAL_PIPELINE,
    build_pipelines,
    default_pipelines,
    pipeline_key,
)

__all__ = [
    "INJECTED_KEY",
    "PAGE_PIPELINE",
    "PARTIAL_PIPELINE",
    "HookResult",
    "Pipeline",
    "Step",
    "StepContext",
    "build_pipelines",
    "default_pipelines",
    "hook_step",
    "pipeline_key",
]
