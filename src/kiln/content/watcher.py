"""File watcher and debounce channel.

The watcher thread produces ``ChangeEvent`` objects; ``ChangeDebouncer``
buffers them and hands the build loop one ``ChangeBatch`` per quiet
period.  Events pushed while a generation is running simply accumulate
into the next batch, so generations never overlap and none is cancelled.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchfiles import Change

from kiln.config_loader import CONFIG_FILE_NAMES
from kiln.content.source import is_ignored

if TYPE_CHECKING:
    from collections.abc import Callable

    from kiln.config import KilnConfig

type ChangeKind = Literal["created", "modified", "deleted"]
type ChangeCategory = Literal["content", "layout", "data", "config", "hook"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A file change detected by the watcher.

    Attributes:
        path: Absolute path to the changed file.
        kind: Type of filesystem change.
        category: Which part of the site the file belongs to.

    """

    path: Path
    kind: ChangeKind
    category: ChangeCategory


@dataclass(frozen=True, slots=True)
class ChangeBatch:
    """Changes coalesced over one debounce window.

    Only the latest event per path is kept; every path in the batch is
    treated as changed at the same time.
    """

    events: tuple[ChangeEvent, ...]

    @property
    def paths(self) -> frozenset[Path]:
        return frozenset(e.path for e in self.events)

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(e.category for e in self.events)

    def __len__(self) -> int:
        return len(self.events)


# Mapping from watchfiles Change enum to our kind literals.
_CHANGE_KIND_MAP: dict[Change, ChangeKind] = {
    Change.added: "created",
    Change.modified: "modified",
    Change.deleted: "deleted",
}


def categorize_change(path: Path, config: KilnConfig) -> ChangeCategory | None:
    """Category of a changed file, or None if no generation depends on it.

    The output directory, hidden files, files outside the site's trees
    and files matching a config ``ignore`` glob are dropped.  Feed filter
    scripts count as hooks.
    """
    path = Path(path)
    try:
        rel = path.relative_to(config.root)
    except ValueError:
        return None
    if not rel.parts or any(part.startswith(".") for part in rel.parts):
        return None
    if path.is_relative_to(config.output_path):
        return None

    posix = rel.as_posix()
    if len(rel.parts) == 1 and rel.name in CONFIG_FILE_NAMES:
        return "config"
    scripts = {h.script for h in config.hooks} | set(config.layout_filters.values())
    scripts.update(f.filter for f in config.feeds if f.filter)
    if posix in scripts:
        return "hook"
    for tree, category in (
        (config.content_path, "content"),
        (config.layouts_path, "layout"),
        (config.data_path, "data"),
    ):
        if path.is_relative_to(tree):
            if config.ignore and is_ignored(posix, path.relative_to(tree).as_posix(), config.ignore):
                return None
            return category
    return None


class ChangeDebouncer:
    """Producer/consumer channel that coalesces bursts of changes.

    Args:
        window_ms: Quiet period that closes a batch.
        clock: Monotonic clock in seconds (injectable for tests).

    Thread Safety:
        ``push`` may be called from any thread; ``next_batch`` is meant for
        one consumer.

    """

    __slots__ = ("_clock", "_closed", "_cond", "_last_push", "_pending", "_window")

    def __init__(self, window_ms: int = 100, clock: Callable[[], float] = time.monotonic) -> None:
        self._window = max(window_ms, 0) / 1000
        self._clock = clock
        self._cond = threading.Condition()
        self._pending: dict[Path, ChangeEvent] = {}
        self._last_push = 0.0
        self._closed = False

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._pending)

    def push(self, event: ChangeEvent) -> None:
        with self._cond:
            self._pending[event.path] = event
            self._last_push = self._clock()
            self._cond.notify_all()

    def close(self) -> None:
        """Wake the consumer; ``next_batch`` returns None once drained."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def next_batch(self, timeout: float | None = None) -> ChangeBatch | None:
        """Block for the first event, then until a full window passes quietly.

        Args:
            timeout: Maximum seconds to wait for the *first* event.

        Returns:
            The batch, or None on timeout or after ``close``.

        """
        with self._cond:
            deadline = None if timeout is None else self._clock() + timeout
            while not self._pending and not self._closed:
                remaining = None if deadline is None else deadline - self._clock()
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(remaining)
            if not self._pending:
                return None

            while not self._closed:
                quiet = self._last_push + self._window - self._clock()
                if quiet <= 0:
                    break
                self._cond.wait(quiet)

            events = tuple(sorted(self._pending.values(), key=lambda e: e.path))
            self._pending.clear()
            return ChangeBatch(events)


class ContentWatcher:
    """Runs watchfiles over the site root in a background thread.

    Every relevant change is pushed into the debouncer; irrelevant ones
    (output directory, editor temp files) are dropped here.
    """

    def __init__(self, config: KilnConfig, debouncer: ChangeDebouncer) -> None:
        self._config = config
        self._debouncer = debouncer
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def update_config(self, config: KilnConfig) -> None:
        """Categorize later changes against a newly loaded config."""
        self._config = config

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._watch_loop, name="kiln-watcher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def handle(self, change: Change, path_str: str) -> ChangeEvent | None:
        """Turn one raw watchfiles change into a pushed event."""
        path = Path(path_str)
        category = categorize_change(path, self._config)
        if category is None:
            return None
        event = ChangeEvent(path=path, kind=_CHANGE_KIND_MAP.get(change, "modified"), category=category)
        self._debouncer.push(event)
        return event

    def _watch_loop(self) -> None:
        from watchfiles import watch

        for raw_changes in watch(
            self._config.root,
            stop_event=self._stop_event,
            debounce=50,
            step=25,
        ):
            for change, path_str in sorted(raw_changes, key=lambda c: c[1]):
                self.handle(change, path_str)
