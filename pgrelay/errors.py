"""Error taxonomy for the listener.

Every error raised inside the event loop is terminal for the process. Each
class carries the exit code the CLI uses when it reports the error.
"""

from pgrelay.models import ExitCode


class ListenerError(Exception):
    """Base class for fatal listener errors."""

    exit_code: ExitCode = ExitCode.FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConnectionBadError(ListenerError):
    """Initial connect failed or the liveness probe found a dead connection."""

    exit_code = ExitCode.BADCONN


class SetupError(ListenerError):
    """Identifier escaping or the subscribe command failed before the loop started."""


class ProtocolFormatError(ListenerError):
    """A notification payload does not match ``<delay> <command>``."""


class TransportError(ListenerError):
    """The readiness wait failed or the connection socket is gone."""


class CommandError(ListenerError):
    """A deferred command failed or did not return rows."""

    def __init__(self, message: str, command: str) -> None:
        super().__init__(f"{message} (command: {command})")
        self.command = command
