"""Session protocol interface.

The event loop only talks to a live subscription through this interface; the
connection bootstrap and teardown stay with the concrete session.
"""

from typing import Protocol

from pgrelay.models import CommandResult, Notification, WaitOutcome


class SessionProtocol(Protocol):
    """Protocol for a live publish/subscribe session."""

    def socket_descriptor(self) -> int:
        """Get the descriptor of the connection socket.

        Returns:
            File descriptor, or -1 if the session has no usable socket
        """
        ...

    async def wait_readable(self, timeout: float) -> WaitOutcome:
        """Block until notifications are buffered or ``timeout`` elapses.

        Args:
            timeout: Maximum wait in seconds (never negative)

        Returns:
            READY if notifications are buffered, TIMEOUT if the deadline was
            reached, ERROR if the connection was lost while waiting
        """
        ...

    def drain_readable(self) -> None:
        """Consume the pending read event so the next wait blocks again."""
        ...

    def pop_notification(self) -> Notification | None:
        """Pop the next buffered notification.

        Returns:
            Oldest buffered notification, or None if none are pending
        """
        ...

    async def execute(self, command: str) -> CommandResult:
        """Execute a command string.

        Args:
            command: SQL text

        Returns:
            CommandResult with ok flag, result kind and driver error message
        """
        ...

    async def is_probe_healthy(self) -> bool:
        """Run the liveness probe.

        Returns:
            True if ``select 1`` produced a row set
        """
        ...

    def probe_error(self) -> str:
        """Get the driver message from the last failed execute or wait."""
        ...
