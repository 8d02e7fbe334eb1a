"""Shared test fixtures for kiln."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from kiln.config import KilnConfig
from kiln.scripting import ScriptEngines

BASE_LAYOUT = (
    "<!DOCTYPE html>\n"
    "<html>\n"
    "<head><title>{{ title }}</title>"
    '<link rel="stylesheet" href="/css/main.css"></head>\n'
    "<body>{{ content }}</body>\n"
    "</html>\n"
)


@pytest.fixture
def tmp_site(tmp_path: Path) -> Path:
    """Create a minimal site structure for testing.

    Returns the site root with content/, layouts/ and data/ dirs::

        kiln.yaml                  default_layout: base
        content/index.md           title: Home, "# Hello"
        content/about.md           title: About
        content/about.yaml         companion data
        content/css/main.scss      imports _variables.scss
        content/css/_variables.scss
        content/js/app.js
        layouts/base.html
        data/author.yaml           "Ada"

    """
    root = tmp_path / "site"
    content = root / "content"
    (content / "css").mkdir(parents=True)
    (content / "js").mkdir()

    (root / "kiln.yaml").write_text("default_layout: base\n")

    (content / "index.md").write_text("---\ntitle: Home\n---\n\n# Hello\n\nWelcome home.\n")
    (content / "about.md").write_text(
        "---\ntitle: About\n---\n\n# About us\n\nSee the [home page](index.md).\n"
    )
    (content / "about.yaml").write_text("subtitle: Who we are\n")
    (content / "css" / "main.scss").write_text(
        '@import "variables";\n\nbody {\n  color: $ink;\n}\n'
    )
    (content / "css" / "_variables.scss").write_text("$ink: #111111;\n")
    (content / "js" / "app.js").write_text("function greet(name) {\n  return 'hi ' + name;\n}\n")

    layouts = root / "layouts"
    layouts.mkdir()
    (layouts / "base.html").write_text(BASE_LAYOUT)

    data = root / "data"
    data.mkdir()
    (data / "author.yaml").write_text("Ada\n")

    return root


@pytest.fixture
def site_config(tmp_site: Path) -> KilnConfig:
    """A KilnConfig for tmp_site (the file config is not read)."""
    return KilnConfig(root=tmp_site, default_layout="base")


@pytest.fixture
def engines() -> ScriptEngines:
    return ScriptEngines()


def _output_tree(root: Path) -> dict[str, bytes]:
    """Every file below *root* as relative path -> bytes."""
    if not root.is_dir():
        return {}
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def read_tree() -> Callable[[Path], dict[str, bytes]]:
    """Snapshot a directory as relative path -> bytes."""
    return _output_tree


@pytest.fixture
def scheduler(tmp_site: Path) -> Iterator[object]:
    """A Scheduler over tmp_site with two workers, closed after the test."""
    from kiln.build.scheduler import Scheduler

    with Scheduler(tmp_site, workers=2) as sched:
        yield sched
