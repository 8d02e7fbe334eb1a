"""Event log — a bounded, queryable record of build events.

Thread Safety:
    All methods are protected by a ``threading.Lock``.  The scheduler
    thread appends while the CLI or preview server reads.

"""

import threading
from collections import deque
from collections.abc import Iterable
from typing import Any

from kiln.observability.events import BuildEvent


def _event_path(event: object) -> str:
    for attr in ("path", "source", "url"):
        value = getattr(event, attr, None)
        if value:
            return str(value)
    return ""


class EventLog:
    """Ring buffer of build events; the oldest are dropped when full.

    Args:
        max_events: Maximum number of events to retain.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[BuildEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(self, event: BuildEvent) -> None:
        with self._lock:
            self._events.append(event)

    def extend(self, events: Iterable[BuildEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        path: str | None = None,
        limit: int = 100,
    ) -> list[BuildEvent]:
        """Matching events, most recent first.

        Args:
            event_type: Only events of this type.
            since_ns: Only events at or after this timestamp.
            path: Only events whose path, source or URL contains this text.
            limit: Maximum number of events to return.

        """
        with self._lock:
            snapshot = list(self._events)

        results: list[BuildEvent] = []
        for event in reversed(snapshot):
            if len(results) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and event.timestamp_ns < since_ns:
                continue
            if path is not None and path not in _event_path(event):
                continue
            results.append(event)
        return results

    def recent(self, n: int = 20) -> list[BuildEvent]:
        """The *n* most recent events, oldest first."""
        with self._lock:
            items = list(self._events)
        return items[-n:]

    def clear(self) -> int:
        """Drop every event and return how many there were."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            return count

    def stats(self) -> dict[str, Any]:
        with self._lock:
            events = list(self._events)
        by_type: dict[str, int] = {}
        for event in events:
            name = type(event).__name__
            by_type[name] = by_type.get(name, 0) + 1
        return {"total": len(events), "max_events": self._max_events, "by_type": by_type}
