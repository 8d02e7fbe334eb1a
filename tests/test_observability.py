"""Tests for kiln.observability — build events, the event log and the collector."""

import threading
from pathlib import Path

from kiln.build.output import ExportedFile
from kiln.observability import (
    BuildCollector,
    EventLog,
    GenerationCompleted,
    GenerationStarted,
    NodeFailed,
    NodeProcessed,
    OutputWritten,
    now_ns,
)

# ---------------------------------------------------------------------------
# EventLog
# ---------------------------------------------------------------------------


def _node(path: str, *, cache_hit: bool = False, ts: int | None = None) -> NodeProcessed:
    return NodeProcessed(
        path=path, kind="markdown", cache_hit=cache_hit, duration_ms=0.1,
        timestamp_ns=now_ns() if ts is None else ts,
    )


class TestEventLog:
    """Tests for the event log store."""

    def test_append_and_len(self) -> None:
        log = EventLog()
        assert len(log) == 0
        log.append(_node("content/a.md"))
        assert len(log) == 1

    def test_max_events_enforced(self) -> None:
        log = EventLog(max_events=5)
        log.extend(_node(f"content/{i}.md") for i in range(10))
        assert len(log) == 5
        assert log.recent(1)[0].path == "content/9.md"

    def test_recent(self) -> None:
        log = EventLog()
        for i in range(5):
            log.append(_node(f"content/{i}.md"))
        recent = log.recent(3)
        assert [e.path for e in recent] == ["content/2.md", "content/3.md", "content/4.md"]

    def test_query_by_type(self) -> None:
        log = EventLog()
        log.append(_node("content/a.md"))
        log.append(GenerationStarted(generation=1, full=True, changed=0, timestamp_ns=now_ns()))
        assert len(log.query(event_type=GenerationStarted)) == 1
        assert len(log.query(event_type=NodeProcessed)) == 1

    def test_query_most_recent_first_with_limit(self) -> None:
        log = EventLog()
        for i in range(5):
            log.append(_node(f"content/{i}.md"))
        assert [e.path for e in log.query(limit=2)] == ["content/4.md", "content/3.md"]

    def test_query_by_path(self) -> None:
        log = EventLog()
        log.append(_node("content/blog/a.md"))
        log.append(_node("content/about.md"))
        log.append(OutputWritten(url="/blog/a/", source="", size_bytes=1, duration_ms=0, timestamp_ns=now_ns()))
        assert len(log.query(path="blog")) == 2

    def test_query_since(self) -> None:
        log = EventLog()
        log.append(_node("old", ts=100))
        log.append(_node("new", ts=200))
        assert [e.path for e in log.query(since_ns=150)] == ["new"]

    def test_clear(self) -> None:
        log = EventLog()
        log.append(_node("a"))
        assert log.clear() == 1
        assert len(log) == 0

    def test_stats(self) -> None:
        log = EventLog(max_events=50)
        log.append(_node("a"))
        log.append(_node("b"))
        log.append(NodeFailed(path="c", stage="transform", message="x", timestamp_ns=now_ns()))
        assert log.stats() == {
            "total": 3,
            "max_events": 50,
            "by_type": {"NodeProcessed": 2, "NodeFailed": 1},
        }

    def test_concurrent_appends(self) -> None:
        log = EventLog()

        def writer(prefix: str) -> None:
            for i in range(200):
                log.append(_node(f"{prefix}/{i}"))

        threads = [threading.Thread(target=writer, args=(str(t),)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(log) == 800


# ---------------------------------------------------------------------------
# BuildCollector
# ---------------------------------------------------------------------------


class TestBuildCollector:
    def test_generation_events(self) -> None:
        collector = BuildCollector()
        collector.record_generation_started(1, full=True, changed=0)
        collector.record_generation_completed(1, ok=True, processed=3, written=2, artifacts=("/",))
        (completed,) = collector.log.query(event_type=GenerationCompleted)
        assert completed.processed == 3
        assert completed.artifacts == ("/",)

    def test_node_failure_render(self) -> None:
        collector = BuildCollector()
        collector.record_node("content/a.md", "markdown", cache_hit=True)
        collector.record_failure("content/b.md", "render", "template not found")
        collector.record_render("content/a.md", "/a/", layout="base.html", duration_ms=1.5)
        assert collector.log.stats()["by_type"] == {"NodeProcessed": 1, "NodeFailed": 1, "PageRendered": 1}

    def test_written(self) -> None:
        collector = BuildCollector()
        collector.record_written(ExportedFile(
            url="/a/", output_path=Path("/out/a/index.html"), source_type="page", size_bytes=42, duration_ms=0.2,
        ))
        (event,) = collector.log.query(event_type=OutputWritten)
        assert event.size_bytes == 42

    def test_foreign_events_recorded(self) -> None:
        shared = EventLog()
        collector = BuildCollector(shared)
        marker = object()
        collector.record(marker)
        assert shared.recent(1) == [marker]
