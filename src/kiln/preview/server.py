"""Preview server — serves the output tree with live reload.

A Chirp app with three pieces:

- ``StaticFiles`` over the output directory, so the preview shows exactly
  what ``kiln build`` would deploy,
- ``/__kiln/events``, an SSE stream fed by ``ReloadBroadcaster``,
- ``/__kiln/stats``, the event log summary as JSON.

The reload script is injected into HTML responses by middleware.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from kiln.preview.reload import EVENTS_ENDPOINT, reload_middleware

if TYPE_CHECKING:
    from chirp import App
    from chirp.http.request import Request

    from kiln.config import KilnConfig
    from kiln.observability.collector import BuildCollector
    from kiln.preview.broadcaster import ReloadBroadcaster

STATS_ENDPOINT = "/__kiln/stats"


def create_preview_app(
    config: KilnConfig,
    broadcaster: ReloadBroadcaster,
    collector: BuildCollector | None = None,
) -> App:
    """Create the Chirp app serving *config*'s output directory."""
    from chirp import App, AppConfig, EventStream
    from chirp.middleware import StaticFiles

    app = App(config=AppConfig(
        template_dir=config.layouts_path,
        debug=True,
        host=config.host,
        port=config.port,
    ))

    async def events_handler(request: Request) -> Any:
        client = broadcaster.subscribe()

        async def generate():  # type: ignore[return]
            async for message in broadcaster.client_generator(client):
                yield message.as_sse()

        return EventStream(generate())

    events_handler.__name__ = "kiln_events"
    app.route(EVENTS_ENDPOINT, name="kiln:events")(events_handler)

    if collector is not None:

        async def stats_handler(request: Request) -> Any:
            from chirp.http.response import Response

            payload = json.dumps({"event_log": collector.log.stats()}, indent=2)
            return Response(body=payload, status=200, content_type="application/json")

        stats_handler.__name__ = "kiln_stats"
        app.route(STATS_ENDPOINT, name="kiln:stats")(stats_handler)

    app.add_middleware(reload_middleware)

    config.output_path.mkdir(parents=True, exist_ok=True)
    app.add_middleware(StaticFiles(directory=config.output_path, prefix="/"))
    return app


def run_preview(app: App, config: KilnConfig, collector: BuildCollector | None = None) -> None:
    """Run *app* on a single Pounce worker until interrupted.

    Live reload needs every SSE client in one process, next to the
    broadcaster, hence one worker.
    """
    from pounce.config import ServerConfig
    from pounce.server import Server

    server_config = ServerConfig(host=config.host, port=config.port, workers=1)
    server = Server(server_config, app, lifecycle_collector=collector)
    server.run()
