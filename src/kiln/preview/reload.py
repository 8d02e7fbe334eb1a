"""Live reload — script injection for preview responses.

The injected script opens an ``EventSource`` on the preview server's event
endpoint, reloads the page on ``kiln:reload`` and shows a toast on
``kiln:error``.  Files on disk are never modified; injection happens on
the way out of the preview server.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chirp.http.request import Request
    from chirp.http.response import Response, SSEResponse, StreamingResponse
    from chirp.middleware.protocol import Next

    type AnyResponse = Response | StreamingResponse | SSEResponse

EVENTS_ENDPOINT = "/__kiln/events"

RELOAD_SCRIPT = """\
<script data-kiln-reload>
(function() {
  var src = new EventSource('%s');
  src.addEventListener('kiln:reload', function() {
    location.reload();
  });
  src.addEventListener('kiln:error', function(e) {
    try { _show(JSON.parse(e.data)); } catch(x) {}
  });
  function _show(d) {
    var old = document.getElementById('kiln-error-toast');
    if (old) old.remove();
    var el = document.createElement('div');
    el.id = 'kiln-error-toast';
    el.style.cssText = 'position:fixed;bottom:1rem;right:1rem;max-width:480px;'
      + 'background:#2d1010;border:1px solid #e74c3c;border-radius:8px;'
      + 'padding:1rem 1.25rem;font-family:ui-monospace,monospace;'
      + 'font-size:0.85rem;color:#f0a0a0;z-index:99999';
    el.textContent = (d.file ? d.file + ': ' : '') + (d.message || 'build failed');
    el.onclick = function() { el.remove(); };
    document.body.appendChild(el);
  }
})();
</script>
""" % EVENTS_ENDPOINT


def inject_reload_script(html: str) -> str:
    """Insert the reload script before ``</body>`` (or ``</html>``, or at the end)."""
    if "data-kiln-reload" in html:
        return html
    for marker in ("</body>", "</html>"):
        index = html.rfind(marker)
        if index != -1:
            return html[:index] + RELOAD_SCRIPT + html[index:]
    return html + RELOAD_SCRIPT


async def reload_middleware(request: Request, next: Next) -> AnyResponse:
    """Chirp middleware that injects the reload script into HTML responses.

    Streaming and SSE responses pass through untouched.
    """
    response = await next(request)

    if not hasattr(response, "body") or not hasattr(response, "content_type"):
        return response
    if "text/html" not in (response.content_type or ""):
        return response

    body = response.body
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return response

    return replace(response, body=inject_reload_script(body))
