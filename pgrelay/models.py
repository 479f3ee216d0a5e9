"""Pydantic v2 models for data boundaries.

Notifications and deferred actions are immutable records; options passed into
the event loop are frozen so the loop never shares mutable state.
"""

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    FAILURE = 1
    BADCONN = 2
    USER = 3


class ResultKind(str, Enum):
    """Kind of result produced by a command."""

    TUPLES = "tuples"
    COMMAND = "command"
    EMPTY = "empty"


class WaitOutcome(str, Enum):
    """Outcome of one bounded readiness wait."""

    ERROR = "error"
    TIMEOUT = "timeout"
    READY = "ready"


class Notification(BaseModel):
    """Inbound notification on a subscribed channel."""

    model_config = ConfigDict(frozen=True)

    channel: str = Field(..., description="Channel the notification was sent on")
    payload: str = Field(default="", description="Free-form payload text")
    sender_id: int = Field(..., description="Backend process id of the sender")


class DeferredAction(BaseModel):
    """Command scheduled to run once at an absolute monotonic time."""

    model_config = ConfigDict(frozen=True)

    due_at: float = Field(..., description="Absolute time on the loop clock")
    command: str = Field(..., description="Command text to execute")

    def is_due(self, now: float) -> bool:
        """Check if the action should fire at ``now``."""
        return self.due_at <= now


class CommandResult(BaseModel):
    """Outcome of executing a command through the session."""

    model_config = ConfigDict(frozen=True)

    ok: bool = Field(..., description="Whether the command succeeded")
    kind: ResultKind | None = Field(default=None, description="Result kind on success")
    error_message: str | None = Field(default=None, description="Driver error message")
    connection_lost: bool = Field(default=False, description="Failure was caused by a dead connection")

    @property
    def has_tuples(self) -> bool:
        """True if the command succeeded and produced a row set."""
        return self.ok and self.kind == ResultKind.TUPLES


class ListenOptions(BaseModel):
    """Immutable configuration for the event loop and dispatchers."""

    model_config = ConfigDict(frozen=True)

    probe_interval: float = Field(default=300.0, description="Keep-alive probe cadence in seconds")
    show_context: bool = Field(default=False, description="Prefix relay output with channel and pid")
    print0: bool = Field(default=False, description="Terminate relay records with NUL")

    @field_validator("probe_interval")
    @classmethod
    def validate_probe_interval(cls, v: float) -> float:
        """Ensure the probe interval is positive."""
        if v <= 0:
            raise ValueError("probe_interval must be positive")
        return v

    @property
    def terminator(self) -> str:
        """Record terminator for relay output."""
        return "\0" if self.print0 else "\n"


class ConnectionOptions(BaseModel):
    """Keyword connection parameters handed to the driver.

    None values fall through to the driver's libpq environment defaults
    (PGHOST, PGPORT, PGUSER, PGDATABASE, PGPASSWORD).
    """

    model_config = ConfigDict(frozen=True)

    host: str | None = None
    port: int | None = None
    user: str | None = None
    database: str | None = None
    password: str | None = None
    no_password: bool = False
    application_name: str = "pglisten"

    @property
    def password_prompt(self) -> str:
        """Prompt shown when the server asks for a password."""
        if self.user is None:
            return "Password: "
        return f"Password for user {self.user}: "
