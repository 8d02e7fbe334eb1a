"""Front matter — the optional metadata header at the top of a page.

``---`` fences a YAML block, ``+++`` fences a TOML block.  The opening
fence must be the very first line of the file; anything else is body.
"""

from __future__ import annotations

import tomllib
from typing import Any

import yaml

_FENCES = {"---": "yaml", "+++": "toml"}


class FrontMatterError(ValueError):
    """The header exists but cannot be parsed into a mapping."""


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split *text* into ``(metadata, body)``.

    Returns an empty mapping and the text unchanged when there is no
    header.

    Raises:
        FrontMatterError: If the header is unterminated, malformed, or not
            a mapping.

    """
    first_line, sep, rest = text.partition("\n")
    fence = first_line.rstrip("\r")
    fmt = _FENCES.get(fence)
    if fmt is None or not sep:
        return {}, text

    lines = rest.split("\n")
    for index, line in enumerate(lines):
        if line.rstrip("\r") == fence:
            header = "\n".join(lines[:index])
            body = "\n".join(lines[index + 1 :])
            return _parse(header, fmt), body

    msg = f"unterminated front matter: missing closing {fence!r}"
    raise FrontMatterError(msg)


def _parse(header: str, fmt: str) -> dict[str, Any]:
    try:
        if fmt == "yaml":
            data = yaml.safe_load(header)
        else:
            data = tomllib.loads(header)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        msg = f"invalid {fmt} front matter: {exc}"
        raise FrontMatterError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"front matter must be a mapping, got {type(data).__name__}"
        raise FrontMatterError(msg)
    return data
