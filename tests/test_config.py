"""Tests for kiln.config and kiln.config_loader."""

from pathlib import Path

import pytest

from kiln._errors import ConfigError
from kiln.config import FeedPerson, FeedSpec, HookSpec, KilnConfig
from kiln.config_loader import find_config_file, load_config, validate_config


class TestKilnConfig:
    """KilnConfig — frozen dataclass with sensible defaults."""

    def test_defaults(self) -> None:
        config = KilnConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 3000
        assert config.workers == 0
        assert config.debounce_ms == 100
        assert config.content_dir == "content"
        assert config.layouts_dir == "layouts"
        assert config.data_dir == "data"
        assert config.base_url == ""
        assert config.fingerprint is False
        assert config.minify is True

    def test_frozen(self) -> None:
        config = KilnConfig()
        with pytest.raises(AttributeError):
            config.port = 8000  # type: ignore[misc]

    def test_paths_resolve_from_root(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path)
        assert config.content_path == tmp_path / "content"
        assert config.layouts_path == tmp_path / "layouts"
        assert config.data_path == tmp_path / "data"
        assert config.output_path == tmp_path / "dist"

    def test_absolute_output_preserved(self, tmp_path: Path) -> None:
        output = tmp_path / "elsewhere"
        config = KilnConfig(root=tmp_path / "site", output=output)
        assert config.output_path == output

    def test_relative_root_resolved(self) -> None:
        assert KilnConfig(root=Path("site")).root.is_absolute()


class TestDigest:
    """digest — only output-affecting fields count."""

    def test_server_settings_excluded(self, tmp_path: Path) -> None:
        a = KilnConfig(root=tmp_path)
        b = KilnConfig(root=tmp_path, port=9000, host="0.0.0.0", workers=8, debounce_ms=5)
        assert a.digest() == b.digest()

    def test_output_settings_included(self, tmp_path: Path) -> None:
        a = KilnConfig(root=tmp_path)
        assert a.digest() != KilnConfig(root=tmp_path, minify=False).digest()
        assert a.digest() != KilnConfig(root=tmp_path, base_url="https://x.dev").digest()
        assert a.digest() != KilnConfig(root=tmp_path, site={"title": "x"}).digest()


class TestLoadConfig:
    """load_config — file discovery, decoding and overrides."""

    def test_no_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config.root == tmp_path.resolve()
        assert config.config_file is None
        assert config.base_url == ""

    def test_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text(
            "base_url: https://example.com\n"
            "fingerprint: true\n"
            "taxonomies: [tags, series]\n"
            "site:\n  title: Example\n"
        )
        config = load_config(tmp_path)
        assert config.base_url == "https://example.com"
        assert config.fingerprint is True
        assert config.taxonomies == ("tags", "series")
        assert config.site == {"title": "Example"}
        assert config.config_file == tmp_path.resolve() / "kiln.yaml"

    def test_toml(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.toml").write_text('output = "public"\nport = 4000\n')
        config = load_config(tmp_path)
        assert config.output == Path("public")
        assert config.port == 4000

    def test_json(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.json").write_text('{"minify": false}')
        assert load_config(tmp_path).minify is False

    def test_kiln_section_flattened(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("kiln:\n  default_layout: post\n")
        assert load_config(tmp_path).default_layout == "post"

    def test_hooks(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text(
            "hooks:\n"
            "  - pipeline: markdown\n"
            "    step: parse\n"
            "    script: hooks/toc.lua\n"
            "    position: before\n"
        )
        config = load_config(tmp_path)
        assert config.hooks == (HookSpec("markdown", "parse", "hooks/toc.lua", "before"),)

    def test_feeds(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text(
            "feeds:\n"
            "  - url: /blog/atom.xml\n"
            "    title: Blog\n"
            "    collection: blog\n"
            "    updated: 2024-01-02\n"
            "    authors:\n"
            "      - name: Ada\n"
            "        email: ada@example.com\n"
            "    categories: [python]\n"
        )
        (feed,) = load_config(tmp_path).feeds
        assert feed == FeedSpec(
            url="/blog/atom.xml",
            title="Blog",
            collection="blog",
            updated="2024-01-02",
            authors=(FeedPerson("Ada", email="ada@example.com"),),
            categories=("python",),
        )

    def test_ignore(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("ignore:\n  - 'drafts/**'\n  - '**/*.bak'\n")
        assert load_config(tmp_path).ignore == ("drafts/**", "**/*.bak")

    def test_feeds_and_ignore_in_digest(self, tmp_path: Path) -> None:
        base = KilnConfig(root=tmp_path)
        assert base.digest() != KilnConfig(root=tmp_path, ignore=("*.bak",)).digest()
        assert base.digest() != KilnConfig(root=tmp_path, feeds=(FeedSpec("/atom.xml", "Site"),)).digest()

    def test_lua_config(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.lua").write_text(
            "return {\n"
            "  kiln = { base_url = 'https://lua.dev', markdown_plugins = { 'table' } },\n"
            "  site = { title = 'From Lua' },\n"
            "}\n"
        )
        config = load_config(tmp_path)
        assert config.base_url == "https://lua.dev"
        assert config.markdown_plugins == ("table",)
        assert config.site == {"title": "From Lua"}

    def test_python_config(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.py").write_text("{'sitemap': False, 'debounce_ms': 50}\n")
        config = load_config(tmp_path)
        assert config.sitemap is False
        assert config.debounce_ms == 50

    def test_overrides_win(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("base_url: https://file.dev\nport: 4000\n")
        config = load_config(tmp_path, base_url="https://cli.dev", port=None)
        assert config.base_url == "https://cli.dev"
        assert config.port == 4000

    def test_first_config_file_wins(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.toml").write_text("port = 1\n")
        (tmp_path / "kiln.yaml").write_text("port: 2\n")
        assert find_config_file(tmp_path) == tmp_path / "kiln.yaml"


class TestConfigErrors:
    """Every configuration failure is a ConfigError."""

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("base_url: [unclosed\n")
        with pytest.raises(ConfigError, match="kiln.yaml"):
            load_config(tmp_path)

    def test_wrong_type(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("port: not-a-number\n")
        with pytest.raises(ConfigError, match="port"):
            load_config(tmp_path)

    def test_top_level_not_mapping(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_script_error(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.lua").write_text("error('bad config')\n")
        with pytest.raises(ConfigError, match="kiln.lua"):
            load_config(tmp_path)

    def test_unknown_override(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path, colour="blue")


class TestValidateConfig:
    def test_output_is_root(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="site root"):
            validate_config(KilnConfig(root=tmp_path, output=Path(".")))

    def test_content_inside_output(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, output=Path("."), content_dir="content")
        with pytest.raises(ConfigError):
            validate_config(config)
        nested = KilnConfig(root=tmp_path, output=Path("out"), content_dir="out/content")
        with pytest.raises(ConfigError, match="inside the output"):
            validate_config(nested)

    def test_negative_debounce(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="debounce_ms"):
            validate_config(KilnConfig(root=tmp_path, debounce_ms=-1))

    def test_valid(self, tmp_path: Path) -> None:
        validate_config(KilnConfig(root=tmp_path))

    def test_feed_missing_title(self, tmp_path: Path) -> None:
        (tmp_path / "kiln.yaml").write_text("feeds:\n  - url: /atom.xml\n")
        with pytest.raises(ConfigError, match="title"):
            load_config(tmp_path)

    def test_feed_url_must_be_file(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, feeds=(FeedSpec("/blog/", "Blog"),))
        with pytest.raises(ConfigError, match="must name a file"):
            validate_config(config)

    def test_duplicate_feed_url(self, tmp_path: Path) -> None:
        feeds = (FeedSpec("/atom.xml", "A"), FeedSpec("/atom.xml", "B"))
        with pytest.raises(ConfigError, match="configured twice"):
            validate_config(KilnConfig(root=tmp_path, feeds=feeds))

    def test_empty_ignore_pattern(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="ignore"):
            validate_config(KilnConfig(root=tmp_path, ignore=(" ",)))
