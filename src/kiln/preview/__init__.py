"""Local preview: the output tree over HTTP with live reload."""

from kiln.preview.broadcaster import (
    ERROR_EVENT,
    RELOAD_EVENT,
    ReloadBroadcaster,
    ReloadClient,
    ReloadMessage,
    message_for,
)
from kiln.preview.reload import EVENTS_ENDPOINT, RELOAD_SCRIPT, inject_reload_script

__all__ = [
    "ERROR_EVENT",
    "EVENTS_ENDPOINT",
    "RELOAD_EVENT",
    "RELOAD_SCRIPT",
    "ReloadBroadcaster",
    "ReloadClient",
    "ReloadMessage",
    "inject_reload_script",
    "message_for",
]
