"""Event loop and notification dispatchers."""

from pgrelay.core.deferred import DeferredDispatcher, parse_directive
from pgrelay.core.loop import NotificationLoop
from pgrelay.core.relay import RelayDispatcher, format_record

__all__ = [
    "DeferredDispatcher",
    "NotificationLoop",
    "RelayDispatcher",
    "format_record",
    "parse_directive",
]
