"""Dispatcher protocol interface.

A dispatcher reacts to each notification popped by the event loop. It may own
a single pending deferred action, which the loop reads to compute its wake
deadline and clears once the action has fired.
"""

from typing import Protocol

from pgrelay.models import DeferredAction, Notification


class DispatcherProtocol(Protocol):
    """Protocol for notification dispatchers."""

    @property
    def pending(self) -> DeferredAction | None:
        """Pending deferred action, if any."""
        ...

    def dispatch(self, notification: Notification, now: float) -> None:
        """React to one notification.

        Args:
            notification: Notification popped from the session
            now: Current time on the loop clock
        """
        ...

    def clear(self) -> None:
        """Drop the pending deferred action after it has fired."""
        ...
