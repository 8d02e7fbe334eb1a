"""Load KilnConfig from kiln.yaml / kiln.toml / kiln.json or a config script.

Merges file config with CLI kwargs. CLI overrides file.

Structured files and script files go through the same typed decode
contract, so ``kiln.lua`` and ``kiln.yaml`` are interchangeable.  Unlike
per-page errors, a malformed configuration is fatal: every failure here
raises ``ConfigError``.
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import yaml

from kiln._errors import ConfigError, KilnError
from kiln.config import FeedPerson, FeedSpec, HookSpec, KilnConfig
from kiln.scripting import Mapping, ScriptEngines, decode, from_python, to_python
from kiln.scripting.backend import SCRIPT_EXTENSIONS

if TYPE_CHECKING:
    from kiln.scripting import ScriptValue

CONFIG_FILE_NAMES = (
    "kiln.yaml",
    "kiln.yml",
    "kiln.toml",
    "kiln.json",
    "kiln.lua",
    "kiln.js",
    "kiln.py",
)


@dataclass(frozen=True, slots=True)
class _HookEntry:
    pipeline: str
    step: str
    script: str
    position: Literal["before", "after"] = "after"


@dataclass(frozen=True, slots=True)
class _FeedPersonEntry:
    name: str
    uri: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class _FeedEntry:
    url: str
    title: str
    collection: str = "all"
    filter: str | None = None
    id: str | None = None
    subtitle: str | None = None
    updated: str | None = None
    authors: list[_FeedPersonEntry] | None = None
    contributors: list[_FeedPersonEntry] | None = None
    categories: list[str] | None = None
    generator: str | None = None
    icon: str | None = None
    logo: str | None = None
    rights: str | None = None


@dataclass(frozen=True, slots=True)
class _FileConfig:
    """Shape of a configuration file; every key is optional."""

    output: str | None = None
    content_dir: str | None = None
    layouts_dir: str | None = None
    data_dir: str | None = None
    base_url: str | None = None
    default_layout: str | None = None
    taxonomies: list[str] | None = None
    markdown_plugins: list[str] | None = None
    highlight: bool | None = None
    highlight_class: str | None = None
    minify: bool | None = None
    fingerprint: bool | None = None
    sitemap: bool | None = None
    feeds: list[_FeedEntry] | None = None
    ignore: list[str] | None = None
    hooks: list[_HookEntry] | None = None
    layout_filters: dict[str, str] | None = None
    site: dict[str, Any] | None = None
    workers: int | None = None
    debounce_ms: int | None = None
    host: str | None = None
    port: int | None = None


def find_config_file(root: Path) -> Path | None:
    """Return the first configuration file present in *root*."""
    for name in CONFIG_FILE_NAMES:
        path = root / name
        if path.is_file():
            return path
    return None


def load_config(
    root: Path,
    engines: ScriptEngines | None = None,
    **overrides: object,
) -> KilnConfig:
    """Load KilnConfig from root, merging the config file if one exists.

    Overrides take precedence over file values.  ``None`` overrides are
    ignored so CLI flags left unset do not mask the file.

    Raises:
        ConfigError: If the file cannot be parsed or decoded, or the
            resulting directories are inconsistent.

    """
    root = Path(root).resolve()
    path = find_config_file(root)
    file_values = _read_config_file(path, engines) if path is not None else {}

    merged: dict[str, Any] = {**file_values}
    merged.update({k: v for k, v in overrides.items() if v is not None})
    if "output" in merged and not isinstance(merged["output"], Path):
        merged["output"] = Path(str(merged["output"]))
    for key in ("taxonomies", "markdown_plugins", "hooks", "feeds", "ignore"):
        if key in merged:
            merged[key] = tuple(merged[key])

    try:
        config = KilnConfig(root=root, config_file=path, **merged)
    except TypeError as exc:
        msg = f"Invalid configuration: {exc}"
        raise ConfigError(msg) from exc
    validate_config(config)
    return config


def validate_config(config: KilnConfig) -> None:
    """Reject overlapping directories and malformed feed or ignore entries.

    Raises:
        ConfigError: On an overlapping directory, an empty ignore pattern,
            or a feed URL that is not a file or appears twice.

    """
    output = config.output_path.resolve()
    if output == config.root:
        msg = "output directory must not be the site root"
        raise ConfigError(msg)
    for label, path in (
        ("content", config.content_path),
        ("layouts", config.layouts_path),
        ("data", config.data_path),
    ):
        resolved = path.resolve()
        if resolved == output or resolved.is_relative_to(output):
            msg = f"{label} directory {path} is inside the output directory {output}"
            raise ConfigError(msg)
    if config.debounce_ms < 0:
        msg = f"debounce_ms must be >= 0, got {config.debounce_ms}"
        raise ConfigError(msg)
    for pattern in config.ignore:
        if not pattern.strip():
            msg = "ignore patterns must not be empty"
            raise ConfigError(msg)
    feed_urls = [f.url for f in config.feeds]
    for url in feed_urls:
        if not url.strip("/ ") or url.endswith("/"):
            msg = f"feed url must name a file, got {url!r}"
            raise ConfigError(msg)
        if feed_urls.count(url) > 1:
            msg = f"feed url {url!r} is configured twice"
            raise ConfigError(msg)


def _read_config_file(path: Path, engines: ScriptEngines | None) -> dict[str, Any]:
    try:
        value = _evaluate_config_file(path, engines)
        decoded = decode(value, _FileConfig)
    except KilnError as exc:
        msg = f"Invalid configuration {path.name}: {exc}"
        raise ConfigError(msg) from exc
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        msg = f"Cannot read configuration {path.name}: {exc}"
        raise ConfigError(msg) from exc

    values: dict[str, Any] = {}
    for name in _FileConfig.__dataclass_fields__:
        item = getattr(decoded, name)
        if item is None:
            continue
        if name == "hooks":
            item = [HookSpec(h.pipeline, h.step, h.script, h.position) for h in item]
        elif name == "feeds":
            item = [_feed_spec(f) for f in item]
        values[name] = item
    return values


def _feed_spec(entry: _FeedEntry) -> FeedSpec:
    def people(items: list[_FeedPersonEntry] | None) -> tuple[FeedPerson, ...]:
        return tuple(FeedPerson(p.name, p.uri, p.email) for p in items or ())

    return FeedSpec(
        url=entry.url,
        title=entry.title,
        collection=entry.collection,
        filter=entry.filter,
        id=entry.id,
        subtitle=entry.subtitle,
        updated=entry.updated,
        authors=people(entry.authors),
        contributors=people(entry.contributors),
        categories=tuple(entry.categories or ()),
        generator=entry.generator,
        icon=entry.icon,
        logo=entry.logo,
        rights=entry.rights,
    )


def _evaluate_config_file(path: Path, engines: ScriptEngines | None) -> ScriptValue:
    suffix = path.suffix.lower()
    if suffix in SCRIPT_EXTENSIONS:
        engines = engines if engines is not None else ScriptEngines()
        value = engines.evaluate_file(path)
        return from_python(_flatten_kiln_section(_as_dict(value)))

    text = path.read_text(encoding="utf-8")
    if suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    elif suffix == ".toml":
        data = tomllib.loads(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        msg = f"top level must be a mapping, got {type(data).__name__}"
        raise ValueError(msg)
    return from_python(_flatten_kiln_section(data))


def _as_dict(value: ScriptValue) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return to_python(value)
    msg = "configuration script must return a table/object/dict"
    raise ValueError(msg)


def _flatten_kiln_section(data: dict[str, Any]) -> dict[str, Any]:
    """Lift keys of a ``kiln:`` section to the top level."""
    section = data.get("kiln")
    if not isinstance(section, dict):
        return data
    result = {k: v for k, v in data.items() if k != "kiln"}
    result.update(section)
    return result
