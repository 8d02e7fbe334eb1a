"""Structured data files and the global data tree.

Files in the data directory become nested keys named after their
directory path and file stem::

    data/authors.yaml        -> site.data.authors
    data/nav/main.toml       -> site.data.nav.main
    data/stats.lua           -> site.data.stats

Two files claiming the same key (``authors.yaml`` and ``authors.json``)
are a configuration error.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import PurePosixPath
from typing import Any

import yaml

from kiln._errors import ConfigError
from kiln.content.classifier import companion_stem


def parse_data(text: str, suffix: str) -> Any:
    """Parse a structured data file by extension.

    Raises:
        ValueError: On malformed input or an unknown extension.

    """
    suffix = suffix.lower()
    if suffix == ".json":
        return json.loads(text)
    if suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            msg = f"invalid YAML: {exc}"
            raise ValueError(msg) from exc
    if suffix == ".toml":
        return tomllib.loads(text)
    msg = f"not a structured data file: {suffix!r}"
    raise ValueError(msg)


def data_key(relative: str) -> tuple[str, ...]:
    """Key path of a data file relative to the data directory."""
    path = PurePosixPath(relative)
    return (*path.parent.parts, companion_stem(path))


def build_global_data(
    entries: list[tuple[str, Any]],
    site: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Nest data-file values into one tree.

    Args:
        entries: ``(relative path, value)`` pairs, relative to the data
            directory.
        site: Config-provided data, shallow-merged on top.

    Raises:
        ConfigError: If two files claim the same key, or a file and a
            directory collide.

    """
    tree: dict[str, Any] = {}
    owners: dict[tuple[str, ...], str] = {}
    for relative, value in sorted(entries, key=lambda e: e[0]):
        key = data_key(relative)
        if key in owners:
            msg = f"duplicate data key {'.'.join(key)!r}: {owners[key]} and {relative}"
            raise ConfigError(msg)
        owners[key] = relative

        node = tree
        for depth, part in enumerate(key[:-1]):
            if key[: depth + 1] in owners:
                msg = f"data key {'.'.join(key)!r} from {relative} collides with a data file"
                raise ConfigError(msg)
            node = node.setdefault(part, {})
        if key[-1] in node:
            msg = f"data file {relative} collides with data directory {'.'.join(key)!r}"
            raise ConfigError(msg)
        node[key[-1]] = value

    if site:
        tree = {**tree, **site}
    return tree
