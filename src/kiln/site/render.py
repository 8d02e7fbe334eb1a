"""Template renderer — pages through their Kida layouts.

Render context, lowest precedence first:

1. global data (data directory + config ``site``),
2. the page's own front matter and computed metadata,
3. data injected by script hooks for this page,

plus three reserved names: ``content`` (the page's HTML fragment),
``page`` (its site entry) and ``site`` (a read-only view of the
generation's ``SiteData``, built once per renderer).

A renderer is created per generation over that generation's snapshot and
discarded afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from kiln._errors import FATAL_ERRORS, RenderError
from kiln.scripting import backend_name_for, from_python, to_python
from kiln.site.model import read_only
from kiln.site.navigation import breadcrumbs

if TYPE_CHECKING:
    from collections.abc import Callable

    from kiln.config import KilnConfig
    from kiln.scripting import ScriptEngines
    from kiln.site.model import SiteData


def merge_data(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Shallow merge; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def script_filter(script: str, source: str, engines: ScriptEngines) -> Callable[..., Any]:
    """A template filter that evaluates *source* with ``value`` and ``args``.

    ``{{ title | shout("!") }}`` with ``shout = "filters/shout.lua"`` runs
    the script with ``value = title`` and ``args = {"!"}``.
    """
    backend = backend_name_for(script)

    def _filter(value: Any, *args: Any) -> Any:
        bindings = from_python({"value": value, "args": list(args)})
        return to_python(engines.evaluate(source, bindings, backend=backend, origin=script))

    _filter.__name__ = f"script_filter_{backend}"
    return _filter


class TemplateRenderer:
    """Renders page fragments through layouts in the layouts directory.

    Args:
        config: Generation config.
        site: Snapshot exposed as ``site``.
        engines: Script engines used by layout filters.
        filter_sources: Filter name -> ``(script path, script text)``.

    """

    __slots__ = ("_config", "_env", "_site", "_site_ctx")

    def __init__(
        self,
        config: KilnConfig,
        site: SiteData,
        engines: ScriptEngines,
        filter_sources: Mapping[str, tuple[str, str]] | None = None,
    ) -> None:
        from kida import Environment, FileSystemLoader

        self._config = config
        self._site = site
        # Built once; every page shares the same read-only view.
        self._site_ctx = read_only(site.as_context())
        self._env = Environment(
            loader=FileSystemLoader([str(config.layouts_path)]),
            autoescape=False,
        )
        if filter_sources:
            self._env.update_filters({
                name: script_filter(script, source, engines)
                for name, (script, source) in filter_sources.items()
            })

    @property
    def site(self) -> SiteData:
        return self._site

    def render(
        self,
        node_id: str,
        url: str,
        content: str,
        page_data: Mapping[str, Any],
        injected: Mapping[str, Any] | None = None,
        layout: str | None = None,
    ) -> str:
        """Render one page.

        Returns the fragment itself when *layout* is None.

        Raises:
            RenderError: The layout is missing or raised while rendering.

        """
        if layout is None:
            return content

        if not (self._config.layouts_path / layout).is_file():
            raise RenderError(node_id, layout, "template not found")

        site_ctx = self._site_ctx
        entry = self._site.page(node_id)
        page = entry.as_dict() if entry is not None else {**page_data, "url": url, "path": node_id}
        page["breadcrumbs"] = breadcrumbs(self._site.navigation, url)

        context = merge_data(site_ctx["data"], page_data, injected)
        context.update(content=content, page=page, site=site_ctx)

        try:
            template = self._env.get_template(layout)
            return template.render(**context)
        except FATAL_ERRORS:
            raise
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            raise RenderError(node_id, layout, reason) from exc
