"""Markdown chain: front matter -> parse.

Parsing uses Patitas with the extensions named in the config (tables,
footnotes, inline math...).  Fenced code blocks tagged with a language are
highlighted during rendering by ``PygmentsHighlighter``, registered through
``patitas.highlighting.set_highlighter``.

Headings render as plain ``<hN>`` elements; an id appears only when the
source gives one explicitly (``# Title {#anchor}``).
"""

from __future__ import annotations

import html
import threading
from typing import TYPE_CHECKING, Any

from patitas import HtmlRenderer, Markdown
from patitas.highlighting import get_highlighter, set_highlighter

from kiln.content.front_matter import split_front_matter
from kiln.pipeline.base import Step

if TYPE_CHECKING:
    from kiln.pipeline.base import Content, StepContext

# One Markdown renderer per thread and option set
_local = threading.local()

_highlighters: dict[str, PygmentsHighlighter] = {}
_highlighters_lock = threading.Lock()


class PygmentsHighlighter:
    """Pygments behind Patitas' ``Highlighter`` protocol.

    Languages Pygments does not know render as a plain
    ``<pre><code class="language-*">`` block.
    """

    __slots__ = ("css_class",)

    def __init__(self, css_class: str = "highlight") -> None:
        self.css_class = css_class

    def supports_language(self, language: str) -> bool:
        return _lexer(language) is not None

    def highlight(
        self,
        code: str,
        language: str,
        *,
        hl_lines: list[int] | None = None,
        show_linenos: bool = False,
    ) -> str:
        lexer = _lexer(language)
        if lexer is None:
            return f'<pre><code class="language-{html.escape(language)}">{html.escape(code)}</code></pre>'

        from pygments import highlight as pygments_highlight
        from pygments.formatters import HtmlFormatter

        formatter = HtmlFormatter(
            cssclass=self.css_class,
            hl_lines=hl_lines or [],
            linenos="table" if show_linenos else False,
        )
        return pygments_highlight(code, lexer, formatter).rstrip("\n")


def _lexer(language: str) -> Any:
    from pygments.lexers import get_lexer_by_name
    from pygments.util import ClassNotFound

    try:
        return get_lexer_by_name(language)
    except ClassNotFound:
        return None


def use_highlighter(css_class: str) -> PygmentsHighlighter:
    """Make the Pygments highlighter for *css_class* the active one.

    Patitas keeps a single process-wide highlighter; it is only swapped
    when the class changes.
    """
    with _highlighters_lock:
        highlighter = _highlighters.get(css_class)
        if highlighter is None:
            highlighter = _highlighters[css_class] = PygmentsHighlighter(css_class)
        if get_highlighter() is not highlighter:
            set_highlighter(highlighter)
    return highlighter


class _HeadingRenderer(HtmlRenderer):
    __slots__ = ()

    def _render_heading(self, heading: Any, sb: Any, ctx: Any) -> None:
        anchor = f' id="{html.escape(heading.explicit_id)}"' if heading.explicit_id else ""
        sb.append(f"<h{heading.level}{anchor}>")
        self._render_inlines(heading.children, sb, ctx)
        sb.append(f"</h{heading.level}>\n")


class _Markdown(Markdown):
    __slots__ = ()

    def __call__(self, source: str) -> str:
        return self.render(self.parse(source), source=source)

    def render(self, doc: Any, *, source: str = "") -> str:
        renderer = _HeadingRenderer(
            source=source,
            highlight=self._highlight,
            directive_registry=self._directive_registry,
            role_registry=self._role_registry,
        )
        return renderer.render(doc)


def front_matter(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    """Strip the header and merge it into the metadata."""
    header, body = split_front_matter(str(content))
    return body, {**metadata, **header}


def _renderer(plugins: tuple[str, ...], highlight: bool) -> Markdown:
    cache: dict[tuple[tuple[str, ...], bool], Markdown] | None = getattr(_local, "renderers", None)
    if cache is None:
        cache = {}
        _local.renderers = cache
    md = cache.get((plugins, highlight))
    if md is None:
        md = cache[(plugins, highlight)] = _Markdown(plugins=list(plugins), highlight=highlight)
    return md


def render_markdown(text: str, plugins: tuple[str, ...] = (), *, highlight: bool = True, css_class: str = "highlight") -> str:
    """Render Markdown *text* to an HTML fragment."""
    if highlight:
        use_highlighter(css_class)
    return _renderer(plugins, highlight)(text)


def parse(content: Content, metadata: dict[str, Any], ctx: StepContext) -> tuple[Content, dict[str, Any]]:
    html_fragment = render_markdown(
        str(content),
        tuple(ctx.config.markdown_plugins),
        highlight=ctx.config.highlight,
        css_class=ctx.config.highlight_class,
    )
    return html_fragment, metadata


MARKDOWN_STEPS = (
    Step("front_matter", front_matter),
    Step("parse", parse),
)
