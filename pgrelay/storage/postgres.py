"""PostgreSQL subscription session over a single asyncpg connection.

asyncpg delivers NOTIFY messages through listener callbacks; the session
buffers them in arrival order and exposes a readiness event that the event
loop waits on together with its own deadline.
"""

import asyncio
import getpass
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

import asyncpg
from asyncpg import Connection

from pgrelay.errors import ConnectionBadError, SetupError
from pgrelay.models import CommandResult, ConnectionOptions, Notification, ResultKind, WaitOutcome

logger = logging.getLogger(__name__)

PROBE_QUERY = "select 1"

# Command tags of statements that return a row set
ROW_TAGS = {"SELECT", "FETCH", "SHOW", "EXPLAIN"}

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def escape_identifier(name: str) -> str:
    """Quote a channel name as a PostgreSQL identifier.

    Args:
        name: Raw channel name

    Returns:
        Double-quoted identifier with embedded quotes doubled

    Raises:
        SetupError: If the name cannot be represented as an identifier
    """
    if not name:
        raise SetupError(f"Failed to escape '{name}': zero-length identifier")
    if "\0" in name:
        raise SetupError(f"Failed to escape '{name}': identifier contains a NUL character")
    try:
        name.encode("utf-8")
    except UnicodeEncodeError as e:
        raise SetupError(f"Failed to escape '{name}': {e}") from e
    return '"' + name.replace('"', '""') + '"'


def _is_multi_statement(error: asyncpg.PostgresSyntaxError) -> bool:
    """Check if the server refused to prepare a string of several statements."""
    message = error.args[0] if error.args else ""
    return "multiple commands" in str(message)


def _needs_password(error: Exception) -> bool:
    """Check if a connect failure means the server wants a password."""
    if isinstance(error, asyncpg.InvalidPasswordError):
        return True
    return isinstance(error, asyncpg.InterfaceError) and "password" in str(error).lower()


class PostgresSession:
    """Live LISTEN session on one asyncpg connection."""

    def __init__(
        self,
        options: ConnectionOptions,
        prompt: Callable[[str], str] = getpass.getpass,
    ) -> None:
        """Initialize session.

        Args:
            options: Connection parameters
            prompt: Password prompt used when the server asks for a password
        """
        self.options = options
        self._prompt = prompt
        self._conn: Connection | None = None
        self._queue: deque[Notification] = deque()
        self._ready = asyncio.Event()
        self._terminated = False
        self._last_error = ""

    @property
    def connection(self) -> Connection:
        """Get the connection. Raises if not connected."""
        if self._conn is None:
            raise RuntimeError("Postgres not connected. Call connect() first.")
        return self._conn

    def _connect_kwargs(self, password: str | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.options.host,
            "port": self.options.port,
            "user": self.options.user,
            "password": password,
            "database": self.options.database,
            "server_settings": {"application_name": self.options.application_name},
        }
        return {key: value for key, value in kwargs.items() if value is not None}

    async def connect(self) -> None:
        """Open the connection, prompting once for a password if needed.

        Raises:
            ConnectionBadError: If the connection cannot be established
        """
        password = self.options.password
        prompted = False
        while True:
            try:
                self._conn = await asyncpg.connect(**self._connect_kwargs(password))
                break
            except _DRIVER_ERRORS as e:
                if (
                    not prompted
                    and password is None
                    and not self.options.no_password
                    and _needs_password(e)
                ):
                    password = self._prompt(self.options.password_prompt)
                    prompted = True
                    continue
                raise ConnectionBadError(str(e)) from e

        self._conn.add_termination_listener(self._on_termination)

    async def disconnect(self) -> None:
        """Close the connection."""
        if self._conn is None or self._conn.is_closed():
            return
        if self._terminated:
            self._conn.terminate()
        else:
            await self._conn.close()

    async def listen(self, channel: str) -> None:
        """Subscribe to a channel.

        Args:
            channel: Channel name (unescaped)

        Raises:
            SetupError: If the name cannot be escaped or LISTEN fails
        """
        # The driver quotes the name itself; escaping here only rejects names it cannot represent
        escape_identifier(channel)
        logger.debug(f"Listening on channel {channel}")
        try:
            await self.connection.add_listener(channel, self._on_notification)
        except _DRIVER_ERRORS as e:
            raise SetupError(f"Listen command failed: {e}") from e

    def _on_notification(self, connection: Connection, pid: int, channel: str, payload: str) -> None:
        self._queue.append(Notification(channel=channel, payload=payload, sender_id=pid))
        self._ready.set()

    def _on_termination(self, connection: Connection) -> None:
        self._terminated = True
        self._last_error = "server closed the connection unexpectedly"
        self._ready.set()

    def socket_descriptor(self) -> int:
        """Get the descriptor of the connection socket, or -1.

        Reads the socket through asyncpg's private ``_transport`` attribute; a
        driver without it reports no socket.
        """
        if self._conn is None or self._conn.is_closed() or self._terminated:
            return -1
        transport = getattr(self._conn, "_transport", None)
        if transport is None or transport.is_closing():
            return -1
        sock = transport.get_extra_info("socket")
        return sock.fileno() if sock is not None else -1

    async def wait_readable(self, timeout: float) -> WaitOutcome:
        """Wait for buffered notifications up to ``timeout`` seconds."""
        if self._terminated:
            return WaitOutcome.ERROR
        if self._queue:
            return WaitOutcome.READY
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=max(0.0, timeout))
        except asyncio.TimeoutError:
            return WaitOutcome.TIMEOUT
        if self._terminated:
            return WaitOutcome.ERROR
        return WaitOutcome.READY

    def drain_readable(self) -> None:
        """Reset the readiness event; buffered notifications stay queued."""
        self._ready.clear()

    def pop_notification(self) -> Notification | None:
        """Pop the oldest buffered notification."""
        if not self._queue:
            return None
        return self._queue.popleft()

    async def execute(self, command: str) -> CommandResult:
        """Execute a command string and classify its result.

        A single statement is prepared first so a row-producing statement can
        be told apart from a bare command by its result attributes. A string
        holding several statements cannot be prepared; it runs through the
        simple query protocol and is classified by the tag of its last
        statement.
        """
        if not command.strip():
            return CommandResult(ok=True, kind=ResultKind.EMPTY)
        try:
            statement = await self.connection.prepare(command)
            await statement.fetch()
        except asyncpg.PostgresSyntaxError as e:
            if _is_multi_statement(e):
                return await self._execute_simple(command)
            return self._failed(e)
        except _DRIVER_ERRORS as e:
            return self._failed(e)
        kind = ResultKind.TUPLES if statement.get_attributes() else ResultKind.COMMAND
        return CommandResult(ok=True, kind=kind)

    async def _execute_simple(self, command: str) -> CommandResult:
        try:
            status = await self.connection.execute(command)
        except _DRIVER_ERRORS as e:
            return self._failed(e)
        tag = status.split()[0].upper() if status else ""
        kind = ResultKind.TUPLES if tag in ROW_TAGS else ResultKind.COMMAND
        return CommandResult(ok=True, kind=kind)

    def _failed(self, error: Exception) -> CommandResult:
        self._last_error = str(error)
        lost = (
            isinstance(error, (asyncpg.InterfaceError, OSError))
            or self._terminated
            or (self._conn is not None and self._conn.is_closed())
        )
        return CommandResult(ok=False, error_message=self._last_error, connection_lost=lost)

    async def is_probe_healthy(self) -> bool:
        """Run ``select 1`` and require a row set."""
        result = await self.execute(PROBE_QUERY)
        if result.ok and not result.has_tuples:
            self._last_error = f"unexpected {result.kind.value} result"
        return result.has_tuples

    def probe_error(self) -> str:
        """Get the last driver error message."""
        return self._last_error
