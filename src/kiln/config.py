"""Kiln configuration.

KilnConfig is the central configuration object, frozen after creation.
A fresh instance is loaded at the start of every build generation.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal

from kiln._hashing import digest_value


@dataclass(frozen=True, slots=True)
class HookSpec:
    """A script inserted into a pipeline.

    Attributes:
        pipeline: Pipeline name (``markdown``, ``stylesheet``, ``page``...).
        step: Name of the step the hook is anchored to.
        script: Path to the hook script, relative to the site root.
        position: Run ``before`` or ``after`` the anchor step.

    """

    pipeline: str
    step: str
    script: str
    position: Literal["before", "after"] = "after"


@dataclass(frozen=True, slots=True)
class FeedPerson:
    """An Atom author or contributor."""

    name: str
    uri: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class FeedSpec:
    """An Atom feed over one collection of dated pages.

    Attributes:
        url: Feed URL, e.g. ``/blog/atom.xml``.
        title: Feed title.
        collection: Collection the entries come from (``all`` or a section).
        filter: Optional script deciding per page (bound as ``page``)
            whether it belongs in the feed.
        id: Feed id; defaults to the feed's absolute URL.
        subtitle: Feed subtitle.
        updated: Feed timestamp; defaults to the newest entry's.
        authors: Feed authors.
        contributors: Feed contributors.
        categories: Category terms.
        generator: Generator text.
        icon: Icon URL.
        logo: Logo URL.
        rights: Rights statement.

    """

    url: str
    title: str
    collection: str = "all"
    filter: str | None = None
    id: str | None = None
    subtitle: str | None = None
    updated: str | None = None
    authors: tuple[FeedPerson, ...] = ()
    contributors: tuple[FeedPerson, ...] = ()
    categories: tuple[str, ...] = ()
    generator: str | None = None
    icon: str | None = None
    logo: str | None = None
    rights: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class KilnConfig:
    """Configuration for one kiln site.

    Attributes:
        root: Site root (contains content/, layouts/, data/).  Always
              resolved to an absolute path on construction.
        output: Output directory for generated files.
        content_dir: Directory of pages, stylesheets, scripts and assets.
        layouts_dir: Directory of layout templates and partials.
        data_dir: Directory of global data files.
        base_url: Prefix for root-relative links and sitemap URLs.
        default_layout: Layout used by pages that do not name one.
        taxonomies: Front-matter keys grouped into taxonomies.
        markdown_plugins: Markdown extensions to enable.
        highlight: Syntax-highlight fenced code blocks.
        highlight_class: CSS class wrapping highlighted blocks.
        minify: Minify HTML, CSS and JavaScript output.
        fingerprint: Add content hashes to stylesheet, script and asset URLs.
        sitemap: Write sitemap.xml when ``base_url`` is set.
        feeds: Atom feeds written when ``base_url`` is set.
        ignore: Glob patterns of source files left out of the build.
        hooks: Script hooks inserted into pipelines.
        layout_filters: Template filter name -> script path.
        site: Extra global data exposed to templates as ``site.data``.
        workers: Worker threads per generation (0 = auto-detect).
        debounce_ms: Quiet window before a batch of file changes is built.
        host: Bind address for the preview server.
        port: Bind port for the preview server.
        config_file: The configuration file this config was read from.

    """

    root: Path = field(default_factory=Path.cwd)
    output: Path = field(default_factory=lambda: Path("dist"))
    content_dir: str = "content"
    layouts_dir: str = "layouts"
    data_dir: str = "data"
    base_url: str = ""
    default_layout: str | None = None
    taxonomies: tuple[str, ...] = ("tags",)
    markdown_plugins: tuple[str, ...] = ("table", "footnotes", "math")
    highlight: bool = True
    highlight_class: str = "highlight"
    minify: bool = True
    fingerprint: bool = False
    sitemap: bool = True
    feeds: tuple[FeedSpec, ...] = ()
    ignore: tuple[str, ...] = ()
    hooks: tuple[HookSpec, ...] = ()
    layout_filters: dict[str, str] = field(default_factory=dict)
    site: dict[str, Any] = field(default_factory=dict)
    workers: int = 0
    debounce_ms: int = 100
    host: str = "127.0.0.1"
    port: int = 3000
    config_file: Path | None = None

    def __post_init__(self) -> None:
        # Resolve root to absolute so that watchfiles (which returns
        # absolute paths) can be compared via Path.relative_to().
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())

    @property
    def content_path(self) -> Path:
        """Absolute path to content directory."""
        return self.root / self.content_dir

    @property
    def layouts_path(self) -> Path:
        """Absolute path to layouts directory."""
        return self.root / self.layouts_dir

    @property
    def data_path(self) -> Path:
        """Absolute path to global data directory."""
        return self.root / self.data_dir

    @property
    def output_path(self) -> Path:
        """Absolute path to output directory."""
        if self.output.is_absolute():
            return self.output
        return self.root / self.output

    def digest(self) -> str:
        """Digest of every field that affects generated output.

        Server and scheduling settings are excluded: changing the port
        must not invalidate the build cache.
        """
        return digest_value({
            "content_dir": self.content_dir,
            "layouts_dir": self.layouts_dir,
            "data_dir": self.data_dir,
            "base_url": self.base_url,
            "default_layout": self.default_layout,
            "taxonomies": list(self.taxonomies),
            "markdown_plugins": list(self.markdown_plugins),
            "highlight": self.highlight,
            "highlight_class": self.highlight_class,
            "minify": self.minify,
            "fingerprint": self.fingerprint,
            "sitemap": self.sitemap,
            "feeds": [f.as_dict() for f in self.feeds],
            "ignore": list(self.ignore),
            "hooks": [[h.pipeline, h.step, h.script, h.position] for h in self.hooks],
            "layout_filters": self.layout_filters,
            "site": self.site,
        })

    def public_values(self) -> dict[str, Any]:
        """Config values exposed to templates as ``site.config``."""
        return {
            "base_url": self.base_url,
            "taxonomies": list(self.taxonomies),
            "minify": self.minify,
            "fingerprint": self.fingerprint,
        }
