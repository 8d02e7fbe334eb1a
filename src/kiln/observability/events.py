"""Build event model.

Every event is a frozen dataclass carrying a monotonic ``timestamp_ns``
plus the fields of that event type.  Events are produced on the scheduler
thread and may be read from any thread.
"""

import time
from dataclasses import dataclass
from typing import Literal

# ---------------------------------------------------------------------------
# Generation lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GenerationStarted:
    """A build generation began.

    Attributes:
        generation: Generation number (1 for the first build).
        full: True for a full build.
        changed: Number of changed paths that triggered it.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    generation: int
    full: bool
    changed: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class GenerationCompleted:
    """A build generation finished, successfully or not.

    Attributes:
        generation: Generation number.
        ok: False if the generation was aborted or any artifact failed.
        dirty: Size of the dirty set.
        processed: Nodes that ran their pipeline.
        cache_hits: Dirty nodes answered from the cache.
        written: Files written to the output tree.
        removed: Files removed from the output tree.
        artifacts: Public URLs of the generation's output.
        duration_ms: Wall time of the generation.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    generation: int
    ok: bool
    dirty: int
    processed: int
    cache_hits: int
    written: int
    removed: int
    artifacts: tuple[str, ...]
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Per-node events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NodeProcessed:
    """A dirty node went through its pipeline or came from the cache.

    Attributes:
        path: Node id.
        kind: Content kind.
        cache_hit: True if the pipeline did not run.
        duration_ms: Pipeline time (0 for a cache hit).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    kind: str
    cache_hit: bool
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class NodeFailed:
    """A node failed; its previous output, if any, is kept."""

    path: str
    stage: Literal["transform", "render", "skipped", "output"]
    message: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class PageRendered:
    """A page went through its layout and the ``page`` chain.

    Attributes:
        path: Node id of the page.
        url: Public URL.
        layout: Layout template name, or empty for none.
        duration_ms: Render plus finalize time.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    path: str
    url: str
    layout: str
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class OutputWritten:
    """A file of the output tree was written."""

    url: str
    source: str
    size_bytes: int
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type BuildEvent = (
    GenerationStarted
    | GenerationCompleted
    | NodeProcessed
    | NodeFailed
    | PageRendered
    | OutputWritten
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
