"""Kiln entry points — build, watch and serve.

All three drive one ``Scheduler``:

- ``build`` runs a single full generation and returns its result,
- ``watch`` runs a full generation, then one incremental generation per
  debounced batch of file changes, until stopped,
- ``serve`` runs ``watch`` on a background thread and serves the output
  tree with live reload.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING

from kiln._errors import ConfigError
from kiln.config import KilnConfig
from kiln.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from kiln._types import KilnMode
    from kiln.build.scheduler import GenerationResult
    from kiln.observability.collector import BuildCollector

# How long the watch loop waits for a batch before re-checking its stop event.
_POLL_SECONDS = 0.25


def _banner_config(root: Path, overrides: dict[str, object]) -> KilnConfig | None:
    try:
        return load_config(root, **overrides)
    except ConfigError:
        return None


def build(
    root: str | Path = ".",
    *,
    quiet: bool = False,
    collector: BuildCollector | None = None,
    **overrides: object,
) -> GenerationResult:
    """Build the site once into its output directory.

    Never raises for content problems: fatal errors and per-artifact
    diagnostics are both reported in the returned result, whose
    ``exit_code`` is non-zero if anything failed.

    Args:
        root: Path to the site root directory.
        quiet: Only print failed generations.
        collector: Event collector; a fresh one by default.
        **overrides: Override KilnConfig fields (``None`` values ignored).

    """
    from kiln.banner import print_banner, print_generation
    from kiln.build.scheduler import Scheduler

    root = Path(root)
    workers = overrides.pop("workers", None)
    if not quiet:
        print_banner(root, _banner_config(root, overrides), mode="build")

    with Scheduler(root, overrides=overrides, collector=collector, workers=workers) as scheduler:
        result = scheduler.full_build()

    if not quiet or not result.ok:
        print_generation(result)
    return result


def watch(
    root: str | Path = ".",
    *,
    stop_event: threading.Event | None = None,
    on_generation: Callable[[GenerationResult], object] | None = None,
    quiet: bool = False,
    collector: BuildCollector | None = None,
    mode: KilnMode = "watch",
    **overrides: object,
) -> GenerationResult | None:
    """Build the site, then rebuild incrementally on every change.

    Failures never end the loop: a broken page or a broken config is
    reported and the next change gets a fresh generation.

    Args:
        root: Path to the site root directory.
        stop_event: Set it to end the loop; runs until interrupted otherwise.
        on_generation: Called with every result, on the watch thread.
        quiet: Only print failed generations.
        collector: Event collector; a fresh one by default.
        mode: Banner label.
        **overrides: Override KilnConfig fields.

    Returns:
        The result of the last generation.

    """
    from kiln.banner import print_banner, print_generation
    from kiln.build.scheduler import Scheduler
    from kiln.content.watcher import ChangeDebouncer, ContentWatcher

    root = Path(root)
    stop = stop_event if stop_event is not None else threading.Event()
    workers = overrides.pop("workers", None)
    if not quiet:
        print_banner(root, _banner_config(root, overrides), mode=mode)

    def report(result: GenerationResult) -> None:
        if not quiet or not result.ok:
            print_generation(result)
        if on_generation is not None:
            on_generation(result)

    with Scheduler(root, overrides=overrides, collector=collector, workers=workers) as scheduler:
        report(scheduler.full_build())

        # Without a loaded config the watcher still needs a root to observe.
        config = scheduler.config or KilnConfig(root=root)
        debouncer = ChangeDebouncer(window_ms=config.debounce_ms)
        watcher = ContentWatcher(config, debouncer)
        watcher.start()
        try:
            while not stop.is_set():
                batch = debouncer.next_batch(timeout=_POLL_SECONDS)
                if batch is None:
                    continue
                report(scheduler.rebuild(batch.paths))
                if scheduler.config is not None:
                    watcher.update_config(scheduler.config)
        except KeyboardInterrupt:
            pass
        finally:
            watcher.stop()
            debouncer.close()
        return scheduler.last_result


def serve(root: str | Path = ".", *, quiet: bool = False, **overrides: object) -> None:
    """Watch the site and serve its output tree with live reload.

    Args:
        root: Path to the site root directory.
        quiet: Only print failed generations.
        **overrides: Override KilnConfig fields.

    """
    from kiln.observability import BuildCollector
    from kiln.preview.broadcaster import ReloadBroadcaster
    from kiln.preview.server import create_preview_app, run_preview

    root = Path(root)
    config = load_config(root, **{k: v for k, v in overrides.items() if k != "workers"})
    collector = BuildCollector()
    broadcaster = ReloadBroadcaster()
    stop = threading.Event()

    builder = threading.Thread(
        target=watch,
        kwargs={
            "root": root,
            "stop_event": stop,
            "on_generation": broadcaster.publish_threadsafe,
            "quiet": quiet,
            "collector": collector,
            "mode": "serve",
            **overrides,
        },
        name="kiln-builder",
        daemon=True,
    )
    builder.start()

    app = create_preview_app(config, broadcaster, collector)
    try:
        run_preview(app, config, collector)
    finally:
        stop.set()
        builder.join(timeout=5.0)
