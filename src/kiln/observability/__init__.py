"""Build observability — structured events for every generation.

Quick Start:
    >>> from kiln.observability import BuildCollector, NodeProcessed
    >>> collector = BuildCollector()
    >>> # Pass collector to the Scheduler, then query its log:
    >>> collector.log.query(event_type=NodeProcessed)

"""

from kiln.observability.collector import BuildCollector
from kiln.observability.events import (
    BuildEvent,
    GenerationCompleted,
    GenerationStarted,
    NodeFailed,
    NodeProcessed,
    OutputWritten,
    PageRendered,
    now_ns,
)
from kiln.observability.log import EventLog

__all__ = [
    "BuildCollector",
    "BuildEvent",
    "EventLog",
    "GenerationCompleted",
    "GenerationStarted",
    "NodeFailed",
    "NodeProcessed",
    "OutputWritten",
    "PageRendered",
    "now_ns",
]
