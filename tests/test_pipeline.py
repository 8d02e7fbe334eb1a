"""Tests for kiln.pipeline — step chains, hooks and the per-kind transforms."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from kiln._errors import ConfigError, ScriptBackendError, TransformError
from kiln.config import HookSpec, KilnConfig
from kiln.content.source import read_source
from kiln.pipeline import (
    INJECTED_KEY,
    PAGE_PIPELINE,
    PARTIAL_PIPELINE,
    Pipeline,
    Step,
    StepContext,
    build_pipelines,
    default_pipelines,
    pipeline_key,
)
from kiln.pipeline.markdown import PygmentsHighlighter, render_markdown
from kiln.pipeline.stylesheet import resolve_import, scan_imports
from kiln.scripting import ScriptEngines

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ctx(
    path: Path,
    config: KilnConfig,
    engines: ScriptEngines,
    node_id: str | None = None,
    **kwargs: Any,
) -> StepContext:
    node_id = node_id or path.relative_to(config.root).as_posix()
    item = read_source(path, node_id, "content")
    return StepContext(item=item, config=config, engines=engines, **kwargs)


def _upper(content: Any, metadata: dict[str, Any], ctx: StepContext) -> tuple[Any, dict[str, Any]]:
    return str(content).upper(), metadata


def _tag(content: Any, metadata: dict[str, Any], ctx: StepContext) -> tuple[Any, dict[str, Any]]:
    return content, {**metadata, "seen": [*metadata.get("seen", []), "tag"]}


def _explode(content: Any, metadata: dict[str, Any], ctx: StepContext) -> tuple[Any, dict[str, Any]]:
    msg = "kaboom"
    raise RuntimeError(msg)


def _fatal(content: Any, metadata: dict[str, Any], ctx: StepContext) -> tuple[Any, dict[str, Any]]:
    msg = "no lua"
    raise ScriptBackendError(msg)


# ---------------------------------------------------------------------------
# Pipeline machinery
# ---------------------------------------------------------------------------


class TestPipeline:
    """Pipeline — ordering, insertion and identity."""

    def test_insert_after(self) -> None:
        pipeline = Pipeline("p", [Step("a", _upper), Step("b", _tag)])
        inserted = pipeline.insert("a", "after", Step("x", _tag))
        assert inserted.step_names == ("a", "x", "b")
        assert pipeline.step_names == ("a", "b")

    def test_insert_before(self) -> None:
        pipeline = Pipeline("p", [Step("a", _upper)])
        assert pipeline.insert("a", "before", Step("x", _tag)).step_names == ("x", "a")

    def test_insert_unknown_anchor(self) -> None:
        with pytest.raises(ConfigError, match="no step 'missing'"):
            Pipeline("p", [Step("a", _upper)]).insert("missing", "after", Step("x", _tag))

    def test_identity_tracks_steps_and_versions(self) -> None:
        a = Pipeline("p", [Step("a", _upper)])
        assert a.identity == Pipeline("p", [Step("a", _tag)]).identity
        assert a.identity != Pipeline("p", [Step("a", _upper, version="2")]).identity
        assert a.identity != a.insert("a", "after", Step("x", _tag)).identity

    def test_run_in_order(self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines) -> None:
        ctx = _ctx(tmp_site / "content" / "index.md", site_config, engines)
        pipeline = Pipeline("p", [Step("tag", _tag), Step("upper", _upper), Step("again", _tag)])
        content, metadata = pipeline.run("x", {}, ctx)
        assert content == "X"
        assert metadata["seen"] == ["tag", "tag"]

    def test_step_failure_names_step_and_artifact(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        ctx = _ctx(tmp_site / "content" / "index.md", site_config, engines)
        with pytest.raises(TransformError) as exc_info:
            Pipeline("p", [Step("explode", _explode)]).run("x", {}, ctx)
        assert exc_info.value.stage == "explode"
        assert exc_info.value.path == "content/index.md"
        assert "kaboom" in str(exc_info.value)

    def test_fatal_errors_pass_through(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        ctx = _ctx(tmp_site / "content" / "index.md", site_config, engines)
        with pytest.raises(ScriptBackendError):
            Pipeline("p", [Step("fatal", _fatal)]).run("x", {}, ctx)

    def test_process_rejects_invalid_utf8(
        self, tmp_path: Path, engines: ScriptEngines,
    ) -> None:
        path = tmp_path / "content" / "bad.md"
        path.parent.mkdir()
        path.write_bytes(b"\xff\xfe\x00bad")
        config = KilnConfig(root=tmp_path)
        with pytest.raises(TransformError) as exc_info:
            default_pipelines()["markdown"].process(_ctx(path, config, engines))
        assert exc_info.value.stage == "decode"

    def test_binary_pipeline_keeps_bytes(self, tmp_path: Path, engines: ScriptEngines) -> None:
        path = tmp_path / "content" / "logo.png"
        path.parent.mkdir()
        path.write_bytes(b"\x89PNG\xff")
        content, _ = default_pipelines()["asset"].process(_ctx(path, KilnConfig(root=tmp_path), engines))
        assert content == b"\x89PNG\xff"


class TestRegistry:
    """default_pipelines / build_pipelines."""

    def test_every_kind_has_a_pipeline(self) -> None:
        names = set(default_pipelines())
        assert names == {
            "markdown", "markup", "stylesheet", "script", "data",
            "script_data", "template", "asset", PAGE_PIPELINE, PARTIAL_PIPELINE,
        }

    def test_markdown_steps(self) -> None:
        assert default_pipelines()["markdown"].step_names == ("front_matter", "parse")

    def test_hook_inserted(self, tmp_path: Path) -> None:
        spec = HookSpec("markdown", "parse", "hooks/h.lua", "before")
        config = KilnConfig(root=tmp_path, hooks=(spec,))
        pipelines = build_pipelines(config, {"hooks/h.lua": "return nil"})
        assert pipelines["markdown"].step_names == ("front_matter", "hook:hooks/h.lua", "parse")

    def test_unknown_pipeline(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, hooks=(HookSpec("video", "encode", "h.lua"),))
        with pytest.raises(ConfigError, match="unknown pipeline"):
            build_pipelines(config, {"h.lua": ""})

    def test_unknown_step(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, hooks=(HookSpec("markdown", "render", "h.lua"),))
        with pytest.raises(ConfigError, match="no step 'render'"):
            build_pipelines(config, {"h.lua": ""})

    def test_binary_pipeline_rejects_hooks(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, hooks=(HookSpec("asset", "copy", "h.lua"),))
        with pytest.raises(ConfigError, match="binary"):
            build_pipelines(config, {"h.lua": ""})

    def test_missing_hook_script(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, hooks=(HookSpec("markdown", "parse", "h.lua"),))
        with pytest.raises(ConfigError, match="not found"):
            build_pipelines(config, {})

    def test_hook_source_changes_identity(self, tmp_path: Path) -> None:
        config = KilnConfig(root=tmp_path, hooks=(HookSpec("markdown", "parse", "h.lua"),))
        a = build_pipelines(config, {"h.lua": "return nil"})["markdown"].identity
        b = build_pipelines(config, {"h.lua": "return {}"})["markdown"].identity
        assert a != b


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


class TestHooks:
    """Script hooks running as pipeline steps."""

    def _run(
        self, source: str, script: str, tmp_site: Path, config: KilnConfig, engines: ScriptEngines,
    ) -> tuple[Any, dict[str, Any]]:
        spec = HookSpec("markdown", "front_matter", script)
        config = KilnConfig(root=config.root, hooks=(spec,), minify=False)
        pipeline = build_pipelines(config, {script: source})["markdown"]
        ctx = _ctx(tmp_site / "content" / "index.md", config, engines, global_data={"owner": "Ada"})
        return pipeline.process(ctx)

    def test_lua_rewrites_content(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        source = 'return { content = (content:gsub("Welcome", "Greetings")) }'
        content, _ = self._run(source, "hooks/greet.lua", tmp_site, site_config, engines)
        assert "Greetings" in content
        assert "Welcome" not in content

    def test_sees_metadata_and_site(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        source = "{'metadata': {'shout': metadata['title'].upper() + '/' + site['owner']}}"
        _, metadata = self._run(source, "hooks/shout.py", tmp_site, site_config, engines)
        assert metadata["shout"] == "HOME/Ada"
        assert metadata["title"] == "Home"

    def test_data_is_injected(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        source = "({ data: { reading_minutes: 1 } })"
        _, metadata = self._run(source, "hooks/inject.js", tmp_site, site_config, engines)
        assert metadata[INJECTED_KEY] == {"reading_minutes": 1}

    def test_nil_leaves_artifact_unchanged(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        plain, plain_meta = default_pipelines()["markdown"].process(
            _ctx(tmp_site / "content" / "index.md", site_config, engines),
        )
        content, metadata = self._run("return nil", "hooks/noop.lua", tmp_site, site_config, engines)
        assert content == plain
        assert metadata == plain_meta

    def test_failing_hook_is_transform_error(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        with pytest.raises(TransformError) as exc_info:
            self._run('error("nope")', "hooks/bad.lua", tmp_site, site_config, engines)
        assert exc_info.value.stage == "hook:hooks/bad.lua"

    def test_wrong_result_shape(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        with pytest.raises(TransformError, match="content"):
            self._run("return { content = 42 }", "hooks/shape.lua", tmp_site, site_config, engines)


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


class TestMarkdown:
    def test_front_matter_and_html(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        content, metadata = default_pipelines()["markdown"].process(
            _ctx(tmp_site / "content" / "index.md", site_config, engines),
        )
        assert metadata == {"title": "Home"}
        assert "<h1>Hello</h1>" in content
        assert "Hello" in content
        assert "title: Home" not in content

    def test_front_matter_error(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        path = tmp_site / "content" / "broken.md"
        path.write_text("---\ntitle: [oops\n---\nbody")
        with pytest.raises(TransformError) as exc_info:
            default_pipelines()["markdown"].process(_ctx(path, site_config, engines))
        assert exc_info.value.stage == "front_matter"

    def test_headings_have_no_generated_id(self) -> None:
        assert render_markdown("# Hello\n").strip() == "<h1>Hello</h1>"

    def test_explicit_heading_id_kept(self) -> None:
        assert '<h2 id="intro">Intro</h2>' in render_markdown("## Intro {#intro}\n")

    def test_fenced_code_highlighted(self) -> None:
        result = render_markdown('```python\nx = "a"\n```\n', css_class="hl")
        assert 'class="hl"' in result
        assert "language-python" not in result
        assert "&quot;" in result

    def test_unknown_language_plain_block(self) -> None:
        result = render_markdown("```nosuchlang\n<x>\n```\n")
        assert '<pre><code class="language-nosuchlang">&lt;x&gt;' in result

    def test_highlighting_disabled(self) -> None:
        result = render_markdown("```python\nx = 1\n```\n", highlight=False)
        assert '<pre><code class="language-python">x = 1' in result

    def test_code_outside_fences_untouched(self) -> None:
        fragment = '<pre><code class="language-python">x</code></pre>'
        result = render_markdown(f"Literal: `{fragment}`\n")
        assert "&lt;pre&gt;" in result
        assert 'class="highlight"' not in result

    def test_highlighter_protocol(self) -> None:
        highlighter = PygmentsHighlighter("code")
        assert highlighter.supports_language("python")
        assert not highlighter.supports_language("nosuchlang")
        assert highlighter.highlight("x = 1", "python").startswith('<div class="code">')


# ---------------------------------------------------------------------------
# Page finalization
# ---------------------------------------------------------------------------


class TestPagePipeline:
    """The page chain: fingerprint -> rewrite_links -> minify."""

    def _finalize(
        self, html: str, tmp_site: Path, engines: ScriptEngines, **kwargs: Any,
    ) -> str:
        config = KilnConfig(
            root=tmp_site,
            base_url=kwargs.pop("base_url", ""),
            minify=kwargs.pop("minify", False),
        )
        ctx = _ctx(tmp_site / "content" / "about.md", config, engines, **kwargs)
        content, _ = default_pipelines()[PAGE_PIPELINE].run(html, {}, ctx)
        return str(content)

    def test_source_links_become_urls(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = '<a href="index.md#top">home</a>'
        result = self._finalize(html, tmp_site, engines, links={"index.md": "/"})
        assert result == '<a href="/#top">home</a>'

    def test_unknown_source_link_kept(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = '<a href="missing.md">x</a>'
        assert self._finalize(html, tmp_site, engines, links={}) == html

    def test_external_links_untouched(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = '<a href="https://example.com/a.md">x</a><a href="mailto:a@b">m</a>'
        assert self._finalize(html, tmp_site, engines, base_url="https://site.dev/docs") == html

    def test_base_url_path_prefixed(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = '<link href="/css/main.css"><a href="/docs/x/">x</a>'
        result = self._finalize(html, tmp_site, engines, base_url="https://site.dev/docs/")
        assert '<link href="/docs/css/main.css">' in result
        assert '<a href="/docs/x/">' in result

    def test_fingerprinted_asset_urls(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = '<link href="/css/main.css?v=1"><script src="../js/app.js"></script>'
        result = self._finalize(
            html,
            tmp_site,
            engines,
            url="/about/",
            manifest={"/css/main.css": "/css/main.abc123.css", "/js/app.js": "/js/app.def456.js"},
        )
        assert 'href="/css/main.abc123.css?v=1"' in result
        assert 'src="/js/app.def456.js"' in result

    def test_minify(self, tmp_site: Path, engines: ScriptEngines) -> None:
        html = "<html>\n  <body>\n    <p>  hi  </p>\n  </body>\n</html>\n"
        result = self._finalize(html, tmp_site, engines, minify=True)
        assert len(result) < len(html)
        assert "hi" in result


# ---------------------------------------------------------------------------
# Stylesheets, scripts and data
# ---------------------------------------------------------------------------


class TestStylesheet:
    def test_scan_imports(self) -> None:
        source = (
            '@import "variables", "mixins";\n'
            "@use 'sass:math';\n"
            '@import url("https://fonts.example/x.css");\n'
            '@forward "theme";\n'
        )
        assert scan_imports(source) == ["variables", "mixins", "theme"]

    def test_resolve_partial(self, tmp_site: Path) -> None:
        importer = tmp_site / "content" / "css" / "main.scss"
        found = resolve_import("variables", importer, [])
        assert found == tmp_site / "content" / "css" / "_variables.scss"

    def test_resolve_missing(self, tmp_site: Path) -> None:
        importer = tmp_site / "content" / "css" / "main.scss"
        assert resolve_import("nowhere", importer, [tmp_site / "content"]) is None

    def test_compile_with_partial(
        self, tmp_site: Path, engines: ScriptEngines,
    ) -> None:
        config = KilnConfig(root=tmp_site, minify=False)
        css, _ = default_pipelines()["stylesheet"].process(
            _ctx(tmp_site / "content" / "css" / "main.scss", config, engines),
        )
        assert "#111111" in css
        assert "$ink" not in css

    def test_partials_only_load(self, tmp_site: Path) -> None:
        path = tmp_site / "content" / "css" / "_variables.scss"
        item = read_source(path, "content/css/_variables.scss", "content")
        assert pipeline_key(item) == PARTIAL_PIPELINE
        assert default_pipelines()[PARTIAL_PIPELINE].step_names == ("load",)

    def test_partial_using_sibling_variable_loads(self, tmp_site: Path, engines: ScriptEngines) -> None:
        path = tmp_site / "content" / "css" / "_buttons.scss"
        path.write_text(".btn { color: $ink; }\n")
        content, _ = default_pipelines()[PARTIAL_PIPELINE].process(
            _ctx(path, KilnConfig(root=tmp_site), engines),
        )
        assert content == ".btn { color: $ink; }\n"

    def test_full_stylesheets_compile(self, tmp_site: Path) -> None:
        item = read_source(tmp_site / "content" / "css" / "main.scss", "content/css/main.scss", "content")
        assert pipeline_key(item) == "stylesheet"

    def test_scss_error_is_transform_error(self, tmp_site: Path, engines: ScriptEngines) -> None:
        path = tmp_site / "content" / "css" / "broken.scss"
        path.write_text("body { color: $undefined; }\n")
        with pytest.raises(TransformError) as exc_info:
            default_pipelines()["stylesheet"].process(_ctx(path, KilnConfig(root=tmp_site), engines))
        assert exc_info.value.stage == "compile"


class TestScript:
    def test_minify(self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines) -> None:
        path = tmp_site / "content" / "js" / "app.js"
        js, _ = default_pipelines()["script"].process(_ctx(path, site_config, engines))
        assert "greet" in js
        assert len(js) < len(path.read_text())

    def test_plain_js_passthrough_without_minify(self, tmp_site: Path, engines: ScriptEngines) -> None:
        path = tmp_site / "content" / "js" / "app.js"
        config = KilnConfig(root=tmp_site, minify=False)
        js, _ = default_pipelines()["script"].process(_ctx(path, config, engines))
        assert js == path.read_text()


class TestDataPipelines:
    def test_structured(self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines) -> None:
        _, metadata = default_pipelines()["data"].process(
            _ctx(tmp_site / "content" / "about.yaml", site_config, engines),
        )
        assert metadata["value"] == {"subtitle": "Who we are"}

    def test_script_data_sees_site_and_path(
        self, tmp_site: Path, site_config: KilnConfig, engines: ScriptEngines,
    ) -> None:
        path = tmp_site / "content" / "stats.lua"
        path.write_text("return { owner = site.owner, from = path }\n")
        _, metadata = default_pipelines()["script_data"].process(
            _ctx(path, site_config, engines, global_data={"owner": "Ada"}),
        )
        assert metadata["value"] == {"from": "content/stats.lua", "owner": "Ada"}
