"""Tests for kiln.content — classification, front matter, data files and discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiln._errors import ConfigError, ContentError
from kiln.config import KilnConfig
from kiln.content import FrontMatterError, classify, discover_sources, is_ignored, read_source, split_front_matter
from kiln.content.classifier import companion_stem, is_partial
from kiln.content.data import build_global_data, data_key, parse_data

# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class TestClassify:
    """classify — path and tree to content kind."""

    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("post.md", "markdown"),
            ("post.markdown", "markdown"),
            ("page.html", "markup"),
            ("style.scss", "stylesheet"),
            ("style.sass", "stylesheet"),
            ("style.css", "stylesheet"),
            ("app.ts", "script"),
            ("app.js", "script"),
            ("app.mjs", "script"),
            ("menu.data.js", "script_data"),
            ("menu.lua", "script_data"),
            ("menu.py", "script_data"),
            ("menu.yaml", "data"),
            ("menu.toml", "data"),
            ("menu.json", "data"),
            ("logo.png", "asset"),
        ],
    )
    def test_content_role(self, name: str, kind: str) -> None:
        assert classify(name, "content") == kind

    def test_layout_role_is_template(self) -> None:
        assert classify("base.html", "layout") == "template"
        assert classify("partials/nav.txt", "layout") == "template"

    def test_data_role(self) -> None:
        assert classify("authors.yaml", "data") == "data"
        assert classify("stats.js", "data") == "script_data"
        assert classify("notes.txt", "data") == "asset"

    def test_partial(self) -> None:
        assert is_partial("css/_variables.scss")
        assert not is_partial("css/main.scss")

    def test_companion_stem(self) -> None:
        assert companion_stem("about.md") == "about"
        assert companion_stem("about.data.js") == "about"
        assert companion_stem("about.lua") == "about"


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------


class TestFrontMatter:
    """split_front_matter — YAML and TOML headers."""

    def test_yaml(self) -> None:
        meta, body = split_front_matter("---\ntitle: Home\ntags: [a, b]\n---\n# Hi\n")
        assert meta == {"title": "Home", "tags": ["a", "b"]}
        assert body == "# Hi\n"

    def test_toml(self) -> None:
        meta, body = split_front_matter('+++\ntitle = "Home"\n+++\nbody')
        assert meta == {"title": "Home"}
        assert body == "body"

    def test_no_header(self) -> None:
        assert split_front_matter("# Just text\n") == ({}, "# Just text\n")

    def test_fence_must_open_the_file(self) -> None:
        text = "\n---\ntitle: x\n---\n"
        assert split_front_matter(text) == ({}, text)

    def test_empty_header(self) -> None:
        assert split_front_matter("---\n---\nbody") == ({}, "body")

    def test_crlf(self) -> None:
        meta, _ = split_front_matter("---\r\ntitle: Home\r\n---\r\nbody")
        assert meta == {"title": "Home"}

    def test_unterminated(self) -> None:
        with pytest.raises(FrontMatterError, match="unterminated"):
            split_front_matter("---\ntitle: x\n")

    def test_non_mapping(self) -> None:
        with pytest.raises(FrontMatterError, match="mapping"):
            split_front_matter("---\n- a\n- b\n---\n")

    def test_malformed(self) -> None:
        with pytest.raises(FrontMatterError, match="invalid yaml"):
            split_front_matter("---\ntitle: [unclosed\n---\n")


# ---------------------------------------------------------------------------
# Data files
# ---------------------------------------------------------------------------


class TestParseData:
    def test_formats(self) -> None:
        assert parse_data('{"a": 1}', ".json") == {"a": 1}
        assert parse_data("a: 1\n", ".yml") == {"a": 1}
        assert parse_data("a = 1\n", ".toml") == {"a": 1}

    def test_malformed_yaml(self) -> None:
        with pytest.raises(ValueError, match="invalid YAML"):
            parse_data("a: [1\n", ".yaml")

    def test_unknown_suffix(self) -> None:
        with pytest.raises(ValueError):
            parse_data("x", ".ini")


class TestGlobalData:
    """build_global_data — nesting data files into one tree."""

    def test_nesting(self) -> None:
        tree = build_global_data([
            ("authors.yaml", ["ada"]),
            ("nav/main.toml", {"home": "/"}),
            ("stats.lua", 3),
        ])
        assert tree == {"authors": ["ada"], "nav": {"main": {"home": "/"}}, "stats": 3}

    def test_data_key(self) -> None:
        assert data_key("nav/main.data.js") == ("nav", "main")

    def test_duplicate_key(self) -> None:
        with pytest.raises(ConfigError, match="duplicate data key 'authors'"):
            build_global_data([("authors.yaml", 1), ("authors.json", 2)])

    def test_file_directory_collision(self) -> None:
        with pytest.raises(ConfigError):
            build_global_data([("nav.yaml", 1), ("nav/main.yaml", 2)])

    def test_site_merged_on_top(self) -> None:
        tree = build_global_data([("title.yaml", "from file")], {"title": "from config"})
        assert tree == {"title": "from config"}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscoverSources:
    """discover_sources — walking the three trees."""

    def test_finds_all_trees(self, site_config: KilnConfig) -> None:
        found = discover_sources(site_config)
        assert found["content/index.md"][1] == "content"
        assert found["layouts/base.html"][1] == "layout"
        assert found["data/author.yaml"][1] == "data"
        assert list(found) == sorted(found)

    def test_keeps_stylesheet_partials(self, site_config: KilnConfig) -> None:
        assert "content/css/_variables.scss" in discover_sources(site_config)

    def test_skips_hidden_and_underscored(self, tmp_site: Path, site_config: KilnConfig) -> None:
        (tmp_site / "content" / ".draft.md").write_text("x")
        (tmp_site / "content" / "_notes.md").write_text("x")
        drafts = tmp_site / "content" / "_drafts"
        drafts.mkdir()
        (drafts / "wip.md").write_text("x")
        found = discover_sources(site_config)
        assert not any("draft" in n or "notes" in n or "wip" in n for n in found)

    def test_skips_output_directory(self, tmp_site: Path) -> None:
        config = KilnConfig(root=tmp_site, output=Path("content/public"))
        public = tmp_site / "content" / "public"
        public.mkdir()
        (public / "index.html").write_text("old")
        assert "content/public/index.html" not in discover_sources(config)

    def test_missing_content_root(self, tmp_path: Path) -> None:
        with pytest.raises(ContentError, match="content directory not found"):
            discover_sources(KilnConfig(root=tmp_path))

    def test_optional_trees(self, tmp_path: Path) -> None:
        (tmp_path / "content").mkdir()
        (tmp_path / "content" / "a.md").write_text("a")
        assert list(discover_sources(KilnConfig(root=tmp_path))) == ["content/a.md"]

    def test_ignore_globs(self, tmp_site: Path) -> None:
        drafts = tmp_site / "content" / "drafts"
        drafts.mkdir()
        (drafts / "wip.md").write_text("x")
        (tmp_site / "content" / "notes.bak").write_text("x")
        (tmp_site / "layouts" / "old.html.bak").write_text("x")
        config = KilnConfig(root=tmp_site, ignore=("drafts/**", "**/*.bak"))
        found = discover_sources(config)
        assert "content/drafts/wip.md" not in found
        assert "content/notes.bak" not in found
        assert "layouts/old.html.bak" not in found
        assert "content/index.md" in found


class TestIsIgnored:
    @pytest.mark.parametrize(
        ("node_id", "relative", "pattern", "ignored"),
        [
            ("content/drafts/a.md", "drafts/a.md", "drafts/**", True),
            ("content/drafts/a.md", "drafts/a.md", "content/drafts/*", True),
            ("content/blog/drafts/a.md", "blog/drafts/a.md", "drafts/**", False),
            ("content/blog/drafts/a.md", "blog/drafts/a.md", "**/drafts/*", True),
            ("content/a.bak", "a.bak", "*.bak", True),
            ("content/x/a.bak", "x/a.bak", "*.bak", False),
            ("data/site.yaml", "site.yaml", "content/**", False),
        ],
    )
    def test_patterns(self, node_id: str, relative: str, pattern: str, ignored: bool) -> None:
        assert is_ignored(node_id, relative, [pattern]) is ignored

    def test_no_patterns(self) -> None:
        assert is_ignored("content/a.md", "a.md", ()) is False


class TestReadSource:
    def test_hash_covers_front_matter(self, tmp_path: Path) -> None:
        path = tmp_path / "a.md"
        path.write_text("---\ntitle: A\n---\nbody")
        first = read_source(path, "content/a.md", "content")
        path.write_text("---\ntitle: B\n---\nbody")
        second = read_source(path, "content/a.md", "content")
        assert first.content_hash != second.content_hash
        assert first.relative == "a.md"
        assert first.kind == "markdown"

    def test_identical_bytes_identical_hash(self, tmp_path: Path) -> None:
        path = tmp_path / "a.md"
        path.write_text("same")
        assert (
            read_source(path, "content/a.md", "content").content_hash
            == read_source(path, "content/a.md", "content").content_hash
        )
