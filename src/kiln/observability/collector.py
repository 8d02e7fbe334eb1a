"""Build collector — the scheduler's single entry point for events.

Thread Safety:
    Delegates to ``EventLog``, which is internally locked.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.observability.events import (
    GenerationCompleted,
    GenerationStarted,
    NodeFailed,
    NodeProcessed,
    OutputWritten,
    PageRendered,
    now_ns,
)
from kiln.observability.log import EventLog

if TYPE_CHECKING:
    from kiln.build.output import ExportedFile


class BuildCollector:
    """Records build events into an ``EventLog``.

    Also satisfies Pounce's ``LifecycleCollector`` protocol (``record``),
    so the preview server's connection events land in the same log.

    Args:
        log: Event log to append to; a fresh one by default.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        return self._log

    def record(self, event: Any) -> None:
        """Store a foreign frozen event as-is."""
        self._log.append(event)

    def record_generation_started(self, generation: int, *, full: bool, changed: int = 0) -> None:
        self._log.append(GenerationStarted(
            generation=generation, full=full, changed=changed, timestamp_ns=now_ns(),
        ))

    def record_generation_completed(
        self,
        generation: int,
        *,
        ok: bool,
        dirty: int = 0,
        processed: int = 0,
        cache_hits: int = 0,
        written: int = 0,
        removed: int = 0,
        artifacts: tuple[str, ...] = (),
        duration_ms: float = 0.0,
    ) -> None:
        self._log.append(GenerationCompleted(
            generation=generation,
            ok=ok,
            dirty=dirty,
            processed=processed,
            cache_hits=cache_hits,
            written=written,
            removed=removed,
            artifacts=artifacts,
            duration_ms=duration_ms,
            timestamp_ns=now_ns(),
        ))

    def record_node(self, path: str, kind: str, *, cache_hit: bool, duration_ms: float = 0.0) -> None:
        """Record a processed node (pipeline run or cache hit)."""
        self._log.append(NodeProcessed(
            path=path, kind=kind, cache_hit=cache_hit, duration_ms=duration_ms, timestamp_ns=now_ns(),
        ))

    def record_failure(self, path: str, stage: str, message: str) -> None:
        self._log.append(NodeFailed(
            path=path,
            stage=stage,  # type: ignore[arg-type]
            message=message,
            timestamp_ns=now_ns(),
        ))

    def record_render(self, path: str, url: str, *, layout: str = "", duration_ms: float = 0.0) -> None:
        self._log.append(PageRendered(
            path=path, url=url, layout=layout, duration_ms=duration_ms, timestamp_ns=now_ns(),
        ))

    def record_written(self, exported: ExportedFile, source: str = "") -> None:
        self._log.append(OutputWritten(
            url=exported.url,
            source=source,
            size_bytes=exported.size_bytes,
            duration_ms=exported.duration_ms,
            timestamp_ns=now_ns(),
        ))
