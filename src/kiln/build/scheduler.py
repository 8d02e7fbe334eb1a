"""Incremental scheduler — runs build generations.

The scheduler owns every piece of state that survives between
generations: the build graph, the cache, the last source item and input
hash of each node, the render memo, the output writer, the script engines
and the worker pool.  Everything else lives in a ``GenerationContext``
that is created when a generation starts and dropped when it ends.

A generation runs these phases, in order:

1. Load the config and hooks; a new pipeline version drops the cache and
   forces a full pass.
2. Discover sources and re-read the changed ones.
3. Update graph nodes and dependency edges.
4. Check for cycles.
5. Compute the dirty set.
6. Build global data from the data directory.
7. Transform dirty nodes on the worker pool, dependencies first.
8. Snapshot the site model.
9. Render pages whose render inputs changed.
10. Sync the output tree and publish the result.

Any fatal error (``FATAL_ERRORS``) aborts the generation before the output
tree is touched; the next generation is then a full pass.  Per-artifact
errors become diagnostics and the artifact keeps its previous output.

Thread Safety:
    ``full_build`` and ``rebuild`` serialize on an internal lock, so
    generations never overlap.  Graph, cache and per-node state are only
    touched by the thread running the generation; workers receive
    immutable inputs and return plain values.

"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kiln._errors import FATAL_ERRORS, ConfigError, KilnError
from kiln._hashing import combine, digest_bytes, digest_value
from kiln.build.cache import BuildCache, input_hash
from kiln.build.dependencies import DATA_KINDS, layout_name, scan_dependencies
from kiln.build.graph import BuildGraph
from kiln.build.output import (
    Artifact,
    OutputWriter,
    asset_url,
    fingerprint_url,
    manifest_artifact,
    normalize_url,
    page_url,
)
from kiln.config_loader import load_config
from kiln.content.classifier import ASSET_KINDS, PAGE_KINDS, is_partial
from kiln.content.data import build_global_data
from kiln.content.source import discover_sources, read_source, tree_root
from kiln.observability import BuildCollector
from kiln.pipeline import INJECTED_KEY, PAGE_PIPELINE, StepContext, build_pipelines, pipeline_key
from kiln.pipeline.data import VALUE_KEY
from kiln.scripting import ScriptEngines, backend_name_for, decode, from_python
from kiln.site.model import SiteModelBuilder
from kiln.site.render import TemplateRenderer
from kiln.site.feed import generate_feed
from kiln.site.sitemap import SITEMAP_URL, generate_sitemap

if TYPE_CHECKING:
    from kiln._types import NodeId, URLPath
    from kiln.build.cache import CacheEntry
    from kiln.build.output import ExportedFile
    from kiln.config import KilnConfig
    from kiln.content.source import SourceItem
    from kiln.pipeline import Pipeline
    from kiln.site.model import PageEntry, SiteData


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A problem reported by a generation.

    Attributes:
        path: Node id, URL or file the problem belongs to.
        stage: ``config``, ``transform``, ``render``, ``skipped`` or ``output``.
        message: Human-readable description.
        fatal: True if the generation was aborted.

    """

    path: str
    stage: str
    message: str
    fatal: bool = False

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of one generation.

    Attributes:
        generation: Generation number (1 for the first).
        full: True if every node was treated as dirty.
        dirty: Nodes that needed recomputation.
        processed: Dirty nodes whose pipeline ran.
        cache_hits: Dirty nodes answered from the cache.
        rendered: Pages that went through their layout.
        written: Files written to the output tree.
        removed: Files removed from the output tree.
        artifacts: Public URLs of every file of the output tree.
        diagnostics: Per-artifact problems, sorted by path.
        fatal: The error that aborted the generation, if any.
        duration_ms: Wall time.

    """

    generation: int
    full: bool
    dirty: frozenset[NodeId] = frozenset()
    processed: frozenset[NodeId] = frozenset()
    cache_hits: frozenset[NodeId] = frozenset()
    rendered: frozenset[NodeId] = frozenset()
    written: tuple[ExportedFile, ...] = ()
    removed: tuple[Path, ...] = ()
    artifacts: tuple[URLPath, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    fatal: Diagnostic | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.fatal is None and not self.diagnostics

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


@dataclass(slots=True)
class GenerationContext:
    """Per-generation state; discarded when the generation ends."""

    generation: int
    config: KilnConfig
    pipelines: dict[str, Pipeline]
    version: str
    filter_sources: dict[str, tuple[str, str]]
    feed_filters: dict[str, str] = field(default_factory=dict)
    full: bool = False
    global_data: dict[str, Any] = field(default_factory=dict)
    global_digest: str = ""
    site: SiteData | None = None
    links: dict[str, str] = field(default_factory=dict)
    manifest: dict[str, str] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    dirty: set[NodeId] = field(default_factory=set)
    processed: set[NodeId] = field(default_factory=set)
    cache_hits: set[NodeId] = field(default_factory=set)
    failed: set[NodeId] = field(default_factory=set)
    rendered: set[NodeId] = field(default_factory=set)
    written: tuple[ExportedFile, ...] = ()
    removed: tuple[Path, ...] = ()
    artifacts: tuple[URLPath, ...] = ()


@dataclass(frozen=True, slots=True)
class _RenderJob:
    item: SourceItem
    url: str
    content: str
    data: dict[str, Any]
    injected: dict[str, Any]
    layout: str | None


def _uses_global_data(item: SourceItem, pipeline: Pipeline) -> bool:
    """Whether a content node's output can depend on global data."""
    if item.role == "data":
        return False
    return item.kind == "script_data" or any(s.name.startswith("hook:") for s in pipeline.steps)


def _read_script(config: KilnConfig, script: str) -> str:
    path = config.root / script
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"cannot read script {script}: {exc}"
        raise ConfigError(msg) from exc


class Scheduler:
    """Runs full and incremental build generations for one site.

    Args:
        root: Site root.
        overrides: Config overrides (CLI flags); ``None`` values are ignored.
        collector: Event collector; a fresh one by default.
        workers: Worker threads; overrides ``config.workers``.

    """

    def __init__(
        self,
        root: str | Path = ".",
        *,
        overrides: Mapping[str, Any] | None = None,
        collector: BuildCollector | None = None,
        workers: int | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._overrides = dict(overrides or {})
        self._collector = collector if collector is not None else BuildCollector()
        self._workers = workers
        self._lock = threading.Lock()

        self._graph = BuildGraph()
        self._cache = BuildCache()
        self._engines = ScriptEngines()
        self._site_builder = SiteModelBuilder()
        self._items: dict[NodeId, SourceItem] = {}
        self._input_hashes: dict[NodeId, str] = {}
        self._failed: set[NodeId] = set()
        self._rendered: dict[NodeId, tuple[str, Artifact]] = {}

        self._writer: OutputWriter | None = None
        self._needs_clean = True
        self._executor: ThreadPoolExecutor | None = None
        self._executor_size = 0
        self._generation = 0
        self._force_full = True
        self._config: KilnConfig | None = None
        self._last_result: GenerationResult | None = None
        self._global_digest: str | None = None

    # ----- accessors -----

    @property
    def root(self) -> Path:
        return self._root

    @property
    def graph(self) -> BuildGraph:
        return self._graph

    @property
    def cache(self) -> BuildCache:
        return self._cache

    @property
    def engines(self) -> ScriptEngines:
        return self._engines

    @property
    def collector(self) -> BuildCollector:
        return self._collector

    @property
    def config(self) -> KilnConfig | None:
        """Config of the last generation that loaded one."""
        return self._config

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def site_builder(self) -> SiteModelBuilder:
        return self._site_builder

    @property
    def last_result(self) -> GenerationResult | None:
        return self._last_result

    # ----- lifecycle -----

    def close(self) -> None:
        """Shut the worker pool down."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> Scheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ----- public API -----

    def full_build(self) -> GenerationResult:
        """Run a generation with every node dirty."""
        return self._run(None)

    def rebuild(self, changed_paths: Iterable[str | Path]) -> GenerationResult:
        """Run a generation for a batch of changed paths.

        Paths may be absolute or relative to the site root; the whole batch
        is treated as changed at once.
        """
        return self._run(set(changed_paths))

    # ----- generation -----

    def _run(self, changed: set[str | Path] | None) -> GenerationResult:
        with self._lock:
            self._generation += 1
            generation = self._generation
            full = changed is None or self._force_full
            t0 = time.perf_counter()
            self._collector.record_generation_started(
                generation, full=full, changed=len(changed or ()),
            )
            try:
                gctx = self._generate(generation, full, changed or set())
            except FATAL_ERRORS as exc:
                self._force_full = True
                result = GenerationResult(
                    generation=generation,
                    full=full,
                    fatal=Diagnostic(_fatal_path(exc), "fatal", str(exc), fatal=True),
                    duration_ms=(time.perf_counter() - t0) * 1000,
                )
            else:
                self._force_full = False
                result = self._finish(gctx, t0)

            self._collector.record_generation_completed(
                generation,
                ok=result.ok,
                dirty=len(result.dirty),
                processed=len(result.processed),
                cache_hits=len(result.cache_hits),
                written=len(result.written),
                removed=len(result.removed),
                artifacts=result.artifacts,
                duration_ms=result.duration_ms,
            )
            self._last_result = result
            return result

    def _generate(self, generation: int, full: bool, changed: set[str | Path]) -> GenerationContext:
        gctx = self._load_generation_config(generation, full)
        config = gctx.config

        # Phase 2: discovery
        listing = discover_sources(config)
        known = set(listing)
        previous = set(self._items)
        added = known - previous
        removed = previous - known
        changed_ids = {n for n in (self._node_id(p, config) for p in changed) if n is not None}
        to_read = known if gctx.full else (added | (changed_ids & known))

        fresh: dict[NodeId, SourceItem] = {}
        for node_id in sorted(to_read):
            path, role = listing[node_id]
            relative = path.relative_to(tree_root(config, role)).as_posix()
            try:
                fresh[node_id] = read_source(path, node_id, role, relative)
            except OSError:
                # Vanished between listing and reading: treat as removed
                known.discard(node_id)
                added.discard(node_id)
                if node_id in previous:
                    removed.add(node_id)
        modified = {
            n for n, item in fresh.items()
            if n in previous and self._items[n].content_hash != item.content_hash
        }

        # Phase 3: nodes and edges
        orphaned = self._graph.descendants(removed) - removed
        for node_id in removed:
            self._forget(node_id)
        for node_id, item in fresh.items():
            self._graph.add_node(node_id, item.kind)
            self._items[node_id] = item
        rescan = known if (gctx.full or added or removed) else modified
        for node_id in sorted(rescan):
            self._graph.set_dependencies(node_id, scan_dependencies(self._items[node_id], config, known))

        # Phase 4: cycles
        self._graph.check_acyclic()

        # Phase 5: dirty set
        if gctx.full:
            dirty = set(known)
        else:
            seeds = modified | added | (orphaned & known) | (self._failed & known)
            dirty = self._graph.dirty_closure(seeds)
        self._failed &= known

        # Phase 6: global data
        previous_digest = self._global_digest
        self._global_phase(gctx, dirty)
        if previous_digest is not None and previous_digest != gctx.global_digest:
            dirty |= self._graph.dirty_closure(
                n for n, item in self._items.items()
                if _uses_global_data(item, gctx.pipelines[pipeline_key(item)])
            )
        self._global_digest = gctx.global_digest
        gctx.dirty = dirty

        for node_id in self._graph.topological_order(dirty):
            self._input_hashes[node_id] = input_hash(
                self._items[node_id].content_hash,
                {d: self._input_hashes[d] for d in self._graph.dependencies(node_id)},
            )

        # Phase 7: transforms
        self._transform_phase(gctx, {n for n in dirty if self._items[n].role != "data"})

        # Phases 8-10
        self._output_phase(gctx)
        self._failed = (self._failed - dirty) | gctx.failed
        return gctx

    def _load_generation_config(self, generation: int, full: bool) -> GenerationContext:
        config = load_config(self._root, self._engines, **self._overrides)
        hook_sources = {h.script: _read_script(config, h.script) for h in config.hooks}
        filter_sources = {
            name: (script, _read_script(config, script))
            for name, script in sorted(config.layout_filters.items())
        }
        feed_filters = {f.filter: _read_script(config, f.filter) for f in config.feeds if f.filter}
        pipelines = build_pipelines(config, hook_sources)

        from kiln import __version__

        version = combine(
            __version__,
            config.digest(),
            *(pipelines[name].identity for name in sorted(pipelines)),
            *(combine(name, script, digest_bytes(text.encode("utf-8"))) for name, (script, text) in filter_sources.items()),
        )
        if self._cache.set_version(version):
            full = True
            self._rendered.clear()

        if self._writer is None or self._writer.output_dir != config.output_path:
            self._writer = OutputWriter(config.output_path)
            self._needs_clean = True
            full = True

        self._config = config
        return GenerationContext(
            generation=generation,
            config=config,
            pipelines=pipelines,
            version=version,
            filter_sources=filter_sources,
            feed_filters=feed_filters,
            full=full,
        )

    def _node_id(self, path: str | Path, config: KilnConfig) -> NodeId | None:
        path = Path(path)
        if not path.is_absolute():
            path = config.root / path
        try:
            return path.relative_to(config.root).as_posix()
        except ValueError:
            try:
                return path.resolve().relative_to(config.root).as_posix()
            except ValueError:
                return None

    def _forget(self, node_id: NodeId) -> None:
        self._graph.remove_node(node_id)
        self._items.pop(node_id, None)
        self._input_hashes.pop(node_id, None)
        self._cache.invalidate(node_id)
        self._failed.discard(node_id)
        self._rendered.pop(node_id, None)

    def _node_version(self, gctx: GenerationContext, item: SourceItem) -> str:
        pipeline = gctx.pipelines[pipeline_key(item)]
        if _uses_global_data(item, pipeline):
            return combine(gctx.version, pipeline.identity, gctx.global_digest)
        return combine(gctx.version, pipeline.identity)

    # ----- global data -----

    def _global_phase(self, gctx: GenerationContext, dirty: set[NodeId]) -> None:
        """Evaluate the data directory into the global data tree.

        Any failure here is fatal: every page would see broken data.
        """
        config = gctx.config
        entries: list[tuple[str, Any]] = []
        for node_id in sorted(n for n, item in self._items.items() if item.role == "data"):
            item = self._items[node_id]
            if item.kind not in DATA_KINDS:
                continue
            entry = None if node_id in dirty else self._cache.latest(node_id)
            if entry is None:
                entry = self._transform_inline(gctx, item, config.site)
            entries.append((item.relative, entry.metadata.get(VALUE_KEY)))

        gctx.global_data = build_global_data(entries, config.site)
        gctx.global_digest = digest_value(gctx.global_data)

    def _transform_inline(self, gctx: GenerationContext, item: SourceItem, global_data: Mapping[str, Any]) -> CacheEntry:
        pipeline = gctx.pipelines[pipeline_key(item)]
        version = self._node_version(gctx, item)
        ihash = input_hash(item.content_hash, {})
        self._input_hashes[item.node_id] = ihash
        entry = self._cache.lookup(item.node_id, ihash, version)
        if entry is not None:
            gctx.cache_hits.add(item.node_id)
            self._collector.record_node(item.node_id, item.kind, cache_hit=True)
            return entry

        ctx = StepContext(item=item, config=gctx.config, engines=self._engines, global_data=global_data)
        t0 = time.perf_counter()
        try:
            content, metadata = pipeline.process(ctx)
        except FATAL_ERRORS:
            raise
        except KilnError as exc:
            msg = f"global data {item.node_id}: {exc}"
            raise ConfigError(msg) from exc
        gctx.processed.add(item.node_id)
        self._collector.record_node(
            item.node_id, item.kind, cache_hit=False, duration_ms=(time.perf_counter() - t0) * 1000,
        )
        return self._cache.store(item.node_id, ihash, version, content, metadata)

    # ----- transforms -----

    def _pool(self, config: KilnConfig) -> ThreadPoolExecutor:
        size = self._workers or config.workers or (os.cpu_count() or 1)
        if self._executor is None or size != self._executor_size:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
            self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="kiln-worker")
            self._executor_size = size
        return self._executor

    def _transform_phase(self, gctx: GenerationContext, dirty: set[NodeId]) -> None:
        """Run dirty nodes through their pipelines, dependencies first.

        A node is submitted once every dirty dependency has completed.
        Cache hits and all cache writes happen on this thread.
        """
        if not dirty:
            return
        pool = self._pool(gctx.config)
        order = self._graph.topological_order(dirty)
        waiting = {n: set(self._graph.predecessors_within(n, dirty)) for n in order}
        ready = [n for n in order if not waiting[n]]
        in_flight: dict[Future[tuple[Any, dict[str, Any], float]], NodeId] = {}
        fatal: BaseException | None = None

        def complete(node_id: NodeId) -> None:
            for dependent in sorted(self._graph.dependents(node_id)):
                pending = waiting.get(dependent)
                if pending is not None and node_id in pending:
                    pending.discard(node_id)
                    if not pending:
                        ready.append(dependent)

        while ready or in_flight:
            while ready and fatal is None:
                node_id = ready.pop(0)
                item = self._items[node_id]
                broken = sorted(self._graph.dependencies(node_id) & gctx.failed)
                if broken:
                    self._fail(gctx, node_id, "skipped", f"dependency failed: {', '.join(broken)}")
                    complete(node_id)
                    continue
                version = self._node_version(gctx, item)
                entry = self._cache.lookup(node_id, self._input_hashes[node_id], version)
                if entry is not None:
                    gctx.cache_hits.add(node_id)
                    self._collector.record_node(node_id, item.kind, cache_hit=True)
                    complete(node_id)
                    continue
                ctx = StepContext(
                    item=item,
                    config=gctx.config,
                    engines=self._engines,
                    global_data=gctx.global_data,
                )
                future = pool.submit(_run_pipeline, gctx.pipelines[pipeline_key(item)], ctx)
                in_flight[future] = node_id

            if fatal is not None:
                ready.clear()
            if not in_flight:
                continue

            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in sorted(done, key=lambda f: in_flight[f]):
                node_id = in_flight.pop(future)
                item = self._items[node_id]
                gctx.processed.add(node_id)
                try:
                    content, metadata, elapsed = future.result()
                except FATAL_ERRORS as exc:
                    fatal = fatal or exc
                    continue
                except KilnError as exc:
                    self._fail(gctx, node_id, "transform", str(exc))
                    complete(node_id)
                    continue
                self._cache.store(
                    node_id,
                    self._input_hashes[node_id],
                    self._node_version(gctx, item),
                    content,
                    metadata,
                )
                self._collector.record_node(node_id, item.kind, cache_hit=False, duration_ms=elapsed)
                complete(node_id)

        if fatal is not None:
            raise fatal

    def _fail(self, gctx: GenerationContext, node_id: NodeId, stage: str, message: str) -> None:
        gctx.failed.add(node_id)
        gctx.diagnostics.append(Diagnostic(node_id, stage, message))
        self._collector.record_failure(node_id, stage, message)

    # ----- site, render, output -----

    def _output_phase(self, gctx: GenerationContext) -> None:
        config = gctx.config
        pages: dict[NodeId, tuple[str, str, dict[str, Any]]] = {}
        for node_id in sorted(self._items):
            item = self._items[node_id]
            if item.role != "content" or item.kind not in PAGE_KINDS:
                continue
            entry = self._cache.latest(node_id)
            if entry is None:
                continue
            metadata = {**self._companion_data(node_id), **entry.metadata}
            url = page_url(item.relative, metadata)
            pages[node_id] = (item.relative, url, metadata)
            gctx.links[item.relative] = url

        candidates: list[Artifact] = []
        asset_artifacts = self._asset_artifacts(gctx)

        site = self._site_builder.build(gctx.generation, config, gctx.global_data, pages)
        gctx.site = site
        candidates.extend(self._render_phase(gctx, pages))
        candidates.extend(asset_artifacts)

        if config.fingerprint and gctx.manifest:
            candidates.append(manifest_artifact(gctx.manifest))
        built = {a.node_id for a in candidates if a.source_type == "page"}
        if config.sitemap and config.base_url:
            entries = [site.pages[n] for n in sorted(built) if n in site.pages]
            candidates.append(Artifact.build("", SITEMAP_URL, generate_sitemap(entries, config.base_url), "sitemap"))
        if config.feeds and config.base_url:
            candidates.extend(self._feed_artifacts(gctx, site, built))

        artifacts = self._resolve_collisions(gctx, candidates)
        assert self._writer is not None
        if self._needs_clean:
            self._writer.clean()
            self._needs_clean = False
        sync = self._writer.sync(artifacts)
        for exported in sync.written:
            self._collector.record_written(exported)
        for path, message in sync.failed:
            gctx.diagnostics.append(Diagnostic(path, "output", message))
            self._collector.record_failure(path, "output", message)

        gctx.written = sync.written
        gctx.removed = sync.removed
        gctx.artifacts = tuple(sorted(a.url for a in artifacts))

    def _feed_artifacts(self, gctx: GenerationContext, site: SiteData, built: set[NodeId]) -> list[Artifact]:
        """One Atom document per configured feed, over pages built this generation."""
        config = gctx.config
        artifacts: list[Artifact] = []
        for spec in config.feeds:
            members = [e for e in site.collections.get(spec.collection, ()) if e.node_id in built]
            if spec.filter:
                try:
                    members = [e for e in members if self._feed_accepts(gctx, spec.filter, e)]
                except FATAL_ERRORS:
                    raise
                except KilnError as exc:
                    message = f"feed {spec.url}: {exc}"
                    gctx.diagnostics.append(Diagnostic(spec.filter, "render", message))
                    self._collector.record_failure(spec.filter, "render", message)
                    continue
            xml = generate_feed(spec, members, config.base_url)
            artifacts.append(Artifact.build("", normalize_url(spec.url), xml, "feed"))
        return artifacts

    def _feed_accepts(self, gctx: GenerationContext, script: str, entry: PageEntry) -> bool:
        bindings = from_python({"page": entry.as_dict()})
        result = self._engines.evaluate(
            gctx.feed_filters[script],
            bindings,
            backend=backend_name_for(script),
            origin=script,
        )
        return decode(result, bool)

    def _companion_data(self, node_id: NodeId) -> dict[str, Any]:
        """Values of a page's companion data files; mappings merge, others go under ``data``."""
        merged: dict[str, Any] = {}
        for dep in sorted(self._graph.dependencies(node_id)):
            if self._graph.kind(dep) not in DATA_KINDS:
                continue
            entry = self._cache.latest(dep)
            value = entry.metadata.get(VALUE_KEY) if entry is not None else None
            if isinstance(value, dict):
                merged.update(value)
            elif value is not None:
                merged["data"] = value
        return merged

    def _is_companion(self, node_id: NodeId) -> bool:
        return any(self._graph.kind(d) in PAGE_KINDS for d in self._graph.dependents(node_id))

    def _asset_artifacts(self, gctx: GenerationContext) -> list[Artifact]:
        """Stylesheets, scripts, opaque assets and standalone data files."""
        config = gctx.config
        artifacts: list[Artifact] = []
        for node_id in sorted(self._items):
            item = self._items[node_id]
            if item.role != "content":
                continue
            if item.kind in ASSET_KINDS:
                if item.kind == "stylesheet" and is_partial(item.relative):
                    continue
                url = asset_url(item.relative, item.kind)
            elif item.kind == "data" and not self._is_companion(node_id):
                url = "/" + item.relative
            else:
                continue
            entry = self._cache.latest(node_id)
            if entry is None:
                continue
            data = entry.output.encode("utf-8") if isinstance(entry.output, str) else entry.output
            if config.fingerprint and item.kind in ASSET_KINDS:
                fingerprinted = fingerprint_url(url, digest_bytes(data))
                gctx.manifest[url] = fingerprinted
                url = fingerprinted
            artifacts.append(Artifact.build(node_id, url, data, "asset"))
        return artifacts

    def _render_phase(self, gctx: GenerationContext, pages: dict[NodeId, tuple[str, str, dict[str, Any]]]) -> list[Artifact]:
        config = gctx.config
        assert gctx.site is not None
        shared = combine(
            gctx.version,
            gctx.site.digest,
            digest_value(gctx.links),
            digest_value(gctx.manifest),
        )
        jobs: dict[NodeId, tuple[str, _RenderJob]] = {}
        artifacts: dict[NodeId, Artifact] = {}

        for node_id, (_, url, metadata) in pages.items():
            if node_id in gctx.failed:
                previous = self._rendered.get(node_id)
                if previous is not None:
                    artifacts[node_id] = previous[1]
                continue
            key = combine(shared, self._input_hashes[node_id], url)
            previous = self._rendered.get(node_id)
            if previous is not None and previous[0] == key:
                artifacts[node_id] = previous[1]
                continue
            entry = self._cache.latest(node_id)
            assert entry is not None
            page_data = {k: v for k, v in metadata.items() if k != INJECTED_KEY}
            layout = layout_name(page_data, config)
            jobs[node_id] = (key, _RenderJob(
                item=self._items[node_id],
                url=url,
                content=str(entry.output),
                data=page_data,
                injected=dict(metadata.get(INJECTED_KEY) or {}),
                layout=layout,
            ))

        if jobs:
            renderer = TemplateRenderer(config, gctx.site, self._engines, gctx.filter_sources)
            pool = self._pool(config)
            ctx_args = {
                "config": config,
                "engines": self._engines,
                "global_data": gctx.global_data,
                "links": gctx.links,
                "manifest": gctx.manifest,
            }
            futures = {
                pool.submit(_render_page, renderer, gctx.pipelines[PAGE_PIPELINE], job, ctx_args): node_id
                for node_id, (_, job) in sorted(jobs.items())
            }
            fatal: BaseException | None = None
            for future in sorted(futures, key=lambda f: futures[f]):
                node_id = futures[future]
                key, job = jobs[node_id]
                try:
                    html, elapsed = future.result()
                except FATAL_ERRORS as exc:
                    fatal = fatal or exc
                    continue
                except KilnError as exc:
                    self._fail(gctx, node_id, "render", str(exc))
                    previous = self._rendered.get(node_id)
                    if previous is not None:
                        artifacts[node_id] = previous[1]
                    continue
                artifact = Artifact.build(node_id, job.url, html, "page")
                self._rendered[node_id] = (key, artifact)
                artifacts[node_id] = artifact
                gctx.rendered.add(node_id)
                self._collector.record_render(node_id, job.url, layout=job.layout or "", duration_ms=elapsed)
            if fatal is not None:
                raise fatal

        return [artifacts[n] for n in sorted(artifacts)]

    def _resolve_collisions(self, gctx: GenerationContext, candidates: list[Artifact]) -> list[Artifact]:
        """First claimant of an output path wins; later ones are reported."""
        chosen: dict[str, Artifact] = {}
        for artifact in candidates:
            other = chosen.get(artifact.output_path)
            if other is None:
                chosen[artifact.output_path] = artifact
                continue
            gctx.diagnostics.append(Diagnostic(
                artifact.node_id or artifact.url,
                "output",
                f"output path collision: {artifact.output_path} is already produced by "
                f"{other.node_id or other.url}",
            ))
        return list(chosen.values())

    def _finish(self, gctx: GenerationContext, t0: float) -> GenerationResult:
        return GenerationResult(
            generation=gctx.generation,
            full=gctx.full,
            dirty=frozenset(gctx.dirty),
            processed=frozenset(gctx.processed),
            cache_hits=frozenset(gctx.cache_hits),
            rendered=frozenset(gctx.rendered),
            written=gctx.written,
            removed=gctx.removed,
            artifacts=gctx.artifacts,
            diagnostics=tuple(sorted(gctx.diagnostics, key=lambda d: (d.path, d.stage, d.message))),
            duration_ms=(time.perf_counter() - t0) * 1000,
        )


# ---------------------------------------------------------------------------
# Worker functions (run on pool threads)
# ---------------------------------------------------------------------------


def _run_pipeline(pipeline: Pipeline, ctx: StepContext) -> tuple[Any, dict[str, Any], float]:
    t0 = time.perf_counter()
    content, metadata = pipeline.process(ctx)
    return content, metadata, (time.perf_counter() - t0) * 1000


def _render_page(
    renderer: TemplateRenderer,
    pipeline: Pipeline,
    job: _RenderJob,
    ctx_args: dict[str, Any],
) -> tuple[str, float]:
    t0 = time.perf_counter()
    html = renderer.render(job.item.node_id, job.url, job.content, job.data, job.injected, job.layout)
    ctx = StepContext(item=job.item, url=job.url, **ctx_args)
    content, _ = pipeline.run(html, dict(job.data), ctx)
    return str(content), (time.perf_counter() - t0) * 1000


def _fatal_path(exc: BaseException) -> str:
    members = getattr(exc, "members", None)
    if members:
        return str(members[0])
    return str(getattr(exc, "path", ""))
