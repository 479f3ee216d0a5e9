"""Deferred-action dispatcher.

Each notification payload is a directive ``<delay> <command>``: run ``command``
once, ``delay`` seconds from now. Only one directive is pending at a time; a
newer notification replaces the pending one before it fires.
"""

import logging
import re

from pgrelay.errors import ProtocolFormatError
from pgrelay.models import DeferredAction, Notification

logger = logging.getLogger(__name__)

# Leading whitespace, signed decimal integer, then any whitespace before the command
DIRECTIVE_RE = re.compile(r"\s*([+-]?\d+)\s*", re.ASCII)

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def parse_directive(payload: str) -> tuple[int, str]:
    """Parse a ``<delay> <command>`` directive.

    Args:
        payload: Notification payload

    Returns:
        Tuple of (delay_seconds, command). The command is the remainder of the
        payload after the delay and the whitespace following it, verbatim.

    Raises:
        ProtocolFormatError: If the payload has no leading integer, or the
            delay does not fit a signed 32-bit integer
    """
    match = DIRECTIVE_RE.match(payload)
    if match is None:
        raise ProtocolFormatError(f"Unable to parse notification '{payload}'")

    delay = int(match.group(1))
    if not INT32_MIN <= delay <= INT32_MAX:
        raise ProtocolFormatError(f"Unable to parse notification '{payload}': delay out of range")

    return delay, payload[match.end():]


class DeferredDispatcher:
    """Schedules the command carried by each notification."""

    def __init__(self) -> None:
        self._pending: DeferredAction | None = None

    @property
    def pending(self) -> DeferredAction | None:
        """Pending deferred action, if any."""
        return self._pending

    def dispatch(self, notification: Notification, now: float) -> None:
        """Replace the pending action with the one carried by ``notification``.

        Raises:
            ProtocolFormatError: If the payload is not a valid directive
        """
        logger.debug(f"Received notification: {notification.payload}")
        delay, command = parse_directive(notification.payload)

        if self._pending is not None:
            logger.debug(f"Discarding pending command: {self._pending.command}")
        self._pending = DeferredAction(due_at=now + delay, command=command)

    def clear(self) -> None:
        """Empty the slot after the action has fired."""
        self._pending = None
