"""Pipeline machinery — ordered chains of named transform steps.

A step is a pure function ``(content, metadata, ctx) -> (content, metadata)``.
Pipelines are values: inserting a hook returns a new pipeline, and the
pipeline identity (a digest of its step names and versions) is part of
every cache key, so changing a chain invalidates exactly what it built.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from kiln._errors import FATAL_ERRORS, ConfigError, TransformError
from kiln._hashing import combine

if TYPE_CHECKING:
    from kiln.config import KilnConfig
    from kiln.content.source import SourceItem
    from kiln.scripting import ScriptEngines

type Content = str | bytes
type StepFunc = Callable[[Content, dict[str, Any], StepContext], tuple[Content, dict[str, Any]]]

# Metadata key holding data injected by script hooks (highest render precedence)
INJECTED_KEY = "_injected"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class StepContext:
    """Read-only view a step may consult besides its own input.

    Attributes:
        item: Source item being transformed.
        config: Configuration of the running generation.
        engines: Script engine arena of the current worker.
        global_data: Global site data (data directory + config ``site``).
        url: Output URL of the artifact, when known.
        links: Content-relative source path -> page URL.
        manifest: Original asset URL -> fingerprinted URL.

    """

    item: SourceItem
    config: KilnConfig
    engines: ScriptEngines
    global_data: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    url: str = ""
    links: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    manifest: Mapping[str, str] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True, slots=True)
class Step:
    """A named transform.

    Attributes:
        name: Step name, unique within its pipeline; hooks anchor to it.
        func: The transform.
        version: Bumped when the step's behaviour changes.

    """

    name: str
    func: StepFunc
    version: str = "1"


class Pipeline:
    """An ordered chain of steps for one content kind."""

    __slots__ = ("binary", "name", "steps")

    def __init__(self, name: str, steps: tuple[Step, ...] | list[Step], *, binary: bool = False) -> None:
        self.name = name
        self.steps = tuple(steps)
        self.binary = binary

    def __repr__(self) -> str:
        return f"Pipeline({self.name!r}, {list(self.step_names)})"

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps)

    @property
    def identity(self) -> str:
        return combine(self.name, *(f"{s.name}@{s.version}" for s in self.steps))

    def insert(self, anchor: str, position: Literal["before", "after"], step: Step) -> Pipeline:
        """Return a copy with *step* placed before or after *anchor*.

        Raises:
            ConfigError: If *anchor* is not a step of this pipeline.

        """
        names = self.step_names
        if anchor not in names:
            msg = f"pipeline {self.name!r} has no step {anchor!r} (steps: {', '.join(names)})"
            raise ConfigError(msg)
        index = names.index(anchor) + (1 if position == "after" else 0)
        steps = (*self.steps[:index], step, *self.steps[index:])
        return Pipeline(self.name, steps, binary=self.binary)

    def process(self, ctx: StepContext) -> tuple[Content, dict[str, Any]]:
        """Run the chain over the raw bytes of ``ctx.item``."""
        content: Content = ctx.item.raw
        if not self.binary:
            try:
                content = ctx.item.raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise TransformError("decode", ctx.item.node_id, exc) from exc
        return self.run(content, {}, ctx)

    def run(
        self,
        content: Content,
        metadata: dict[str, Any],
        ctx: StepContext,
    ) -> tuple[Content, dict[str, Any]]:
        """Run every step in order.

        Raises:
            TransformError: If a step raises; names the step and the artifact.

        """
        for step in self.steps:
            try:
                content, metadata = step.func(content, metadata, ctx)
            except TransformError:
                raise
            except FATAL_ERRORS:
                raise
            except Exception as exc:
                raise TransformError(step.name, ctx.item.node_id, exc) from exc
        return content, metadata
