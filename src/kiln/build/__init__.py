"""Build core — graph, cache, dependency scanning, output tree, scheduler."""

from kiln.build.cache import BuildCache, CacheEntry, CacheKey
from kiln.build.graph import BuildGraph
from kiln.build.output import Artifact, OutputWriter
from kiln.build.scheduler import Diagnostic, GenerationResult, Scheduler

__all__ = [
    "Artifact",
    "BuildCache",
    "BuildGraph",
    "CacheEntry",
    "CacheKey",
    "Diagnostic",
    "GenerationResult",
    "OutputWriter",
    "Scheduler",
]
