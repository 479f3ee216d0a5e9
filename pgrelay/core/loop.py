"""Notification-driven event loop.

One bounded wait per iteration multiplexes three wake reasons: notifications
buffered by the session, the keep-alive probe deadline, and the pending
deferred action's due time. The probe doubles as the wait timeout so a
silently dropped connection is detected within one probe interval.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from pgrelay.core.dispatch import DispatcherProtocol
from pgrelay.errors import CommandError, ConnectionBadError, TransportError
from pgrelay.models import DeferredAction, ListenOptions, WaitOutcome
from pgrelay.storage.base import SessionProtocol

logger = logging.getLogger(__name__)


class NotificationLoop:
    """Single-threaded event loop over one live session."""

    def __init__(
        self,
        session: SessionProtocol,
        dispatcher: DispatcherProtocol,
        options: ListenOptions,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize event loop.

        Args:
            session: Live, already subscribed session
            dispatcher: Reaction to each notification
            options: Immutable listen options
            clock: Monotonic clock in seconds
        """
        self.session = session
        self.dispatcher = dispatcher
        self.options = options
        self.clock = clock
        self.last_probe_at = clock()
        self._shutdown = asyncio.Event()

    def stop(self) -> None:
        """Request a graceful shutdown; the current wait returns immediately."""
        self._shutdown.set()

    @property
    def probe_due_at(self) -> float:
        """Absolute time of the next liveness probe."""
        return self.last_probe_at + self.options.probe_interval

    def wake_timeout(self, now: float) -> float:
        """Compute how long the next wait may block.

        Args:
            now: Current time on the loop clock

        Returns:
            Seconds until the earlier of the probe deadline and the pending
            action's due time, never negative
        """
        deadline = self.probe_due_at
        pending = self.dispatcher.pending
        if pending is not None:
            deadline = min(deadline, pending.due_at)
        return max(0.0, deadline - now)

    async def run(self) -> None:
        """Run until shutdown is requested.

        Raises:
            ListenerError: On any fatal session, transport or protocol error
        """
        while True:
            if self.session.socket_descriptor() < 0:
                raise TransportError("Failed to retrieve socket")

            timeout = self.wake_timeout(self.clock())
            logger.debug(f"Waiting for up to {timeout:.0f} seconds")

            outcome = await self._wait(timeout)
            if outcome is None:
                logger.debug("Shutdown requested, leaving event loop")
                return

            if outcome == WaitOutcome.ERROR:
                raise TransportError(f"Waiting for notifications failed: {self.session.probe_error()}")
            if outcome == WaitOutcome.TIMEOUT:
                await self._on_timeout()
            else:
                self._on_ready()

    async def _wait(self, timeout: float) -> WaitOutcome | None:
        """Wait for readiness, timeout or shutdown. Returns None on shutdown."""
        if self._shutdown.is_set():
            return None

        wait_task = asyncio.ensure_future(self.session.wait_readable(timeout))
        stop_task = asyncio.ensure_future(self._shutdown.wait())
        try:
            done, _ = await asyncio.wait({wait_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (wait_task, stop_task):
                if not task.done():
                    task.cancel()

        if stop_task in done:
            return None
        try:
            return wait_task.result()
        except OSError as e:
            raise TransportError(f"Waiting for notifications failed: {e}") from e

    async def _on_timeout(self) -> None:
        now = self.clock()
        pending = self.dispatcher.pending
        if pending is not None and pending.is_due(now):
            await self._fire(pending)
        elif now >= self.probe_due_at:
            await self._probe()
        # Otherwise the wait returned marginally early; the next iteration recomputes

    async def _fire(self, action: DeferredAction) -> None:
        logger.debug(f"Calling {action.command}")
        result = await self.session.execute(action.command)
        if not result.has_tuples:
            reason = result.error_message or "command did not return rows"
            if result.connection_lost or self.session.socket_descriptor() < 0:
                raise ConnectionBadError(f"Callback command failed: {reason}")
            raise CommandError(f"Callback command failed: {reason}", action.command)

        self.dispatcher.clear()
        # A successful round trip proves the connection is alive
        self.last_probe_at = self.clock()

    async def _probe(self) -> None:
        logger.debug("Pinging database")
        if not await self.session.is_probe_healthy():
            raise ConnectionBadError(f"Ping command failed: {self.session.probe_error()}")
        self.last_probe_at = self.clock()

    def _on_ready(self) -> None:
        self.session.drain_readable()
        while True:
            notification = self.session.pop_notification()
            if notification is None:
                break
            self.dispatcher.dispatch(notification, self.clock())
