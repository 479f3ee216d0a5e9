"""Relay dispatcher: forward notifications to an output stream."""

import sys
from typing import TextIO

from pgrelay.models import DeferredAction, ListenOptions, Notification


def format_record(notification: Notification, options: ListenOptions) -> str:
    """Format one notification as an output record.

    Args:
        notification: Notification to format
        options: Listen options (context prefix, terminator)

    Returns:
        Record text including its terminator
    """
    prefix = ""
    if options.show_context:
        prefix = f"{notification.channel}: ({notification.sender_id}) "
    return f"{prefix}{notification.payload}{options.terminator}"


class RelayDispatcher:
    """Writes each notification to ``out`` and flushes immediately."""

    def __init__(self, options: ListenOptions, out: TextIO | None = None) -> None:
        self.options = options
        self.out = out if out is not None else sys.stdout

    @property
    def pending(self) -> DeferredAction | None:
        return None

    def dispatch(self, notification: Notification, now: float) -> None:
        self.out.write(format_record(notification, self.options))
        # Downstream pipelines must see each record without buffering delay
        self.out.flush()

    def clear(self) -> None:
        pass
