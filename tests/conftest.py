import asyncio
import logging
import signal
from collections import deque
from typing import Any

import pytest

from pgrelay.config import get_settings
from pgrelay.errors import SetupError
from pgrelay.storage.postgres import escape_identifier
from pgrelay.models import CommandResult, ConnectionOptions, Notification, ResultKind, WaitOutcome


class FakeClock:
    """Monotonic clock advanced only by the fake session."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSession:
    """Scripted session; each wait consumes one step.

    Steps:
        ("timeout",)                  the full timeout elapses
        ("early", seconds)            the wait returns TIMEOUT after ``seconds``
        ("deliver", after, payloads)  notifications arrive ``after`` seconds into the wait
        ("error",)                    the wait fails
        ("oserror",)                  the wait raises a socket error

    When the script runs out the session stops its listener, or raises SIGTERM
    when it was built by the CLI and has no listener reference.
    """

    def __init__(self, clock: FakeClock | None = None, steps: list[tuple] | None = None) -> None:
        self.clock = clock or FakeClock()
        self.steps: deque[tuple] = deque(steps or [])
        self.queue: deque[Notification] = deque()
        self.listener: Any = None
        self.waits: list[float] = []
        self.executed: list[tuple[float, str]] = []
        self.probes: list[float] = []
        self.results: dict[str, CommandResult] = {}
        self.probe_ok = True
        self.fd = 7
        self.drains = 0
        self.channels: list[str] = []
        self.fail_listen: set[str] = set()
        self.connect_error: Exception | None = None
        self.connected = False
        self.disconnected = False
        self.options: ConnectionOptions | None = None

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def listen(self, channel: str) -> None:
        escape_identifier(channel)
        if channel in self.fail_listen:
            raise SetupError(f"Listen command failed: permission denied for {channel}")
        self.channels.append(channel)

    async def disconnect(self) -> None:
        self.disconnected = True

    def socket_descriptor(self) -> int:
        return self.fd

    async def wait_readable(self, timeout: float) -> WaitOutcome:
        self.waits.append(timeout)
        if not self.steps:
            if self.listener is not None:
                self.listener.stop()
            else:
                signal.raise_signal(signal.SIGTERM)
            await asyncio.Event().wait()

        step = self.steps.popleft()
        kind = step[0]
        if kind == "timeout":
            self.clock.advance(timeout)
            return WaitOutcome.TIMEOUT
        if kind == "early":
            self.clock.advance(step[1])
            return WaitOutcome.TIMEOUT
        if kind == "deliver":
            _, after, payloads = step
            assert after <= timeout
            self.clock.advance(after)
            for payload in payloads:
                if isinstance(payload, Notification):
                    self.queue.append(payload)
                else:
                    self.queue.append(Notification(channel="pglater", payload=payload, sender_id=4242))
            return WaitOutcome.READY
        if kind == "oserror":
            raise OSError(9, "Bad file descriptor")
        return WaitOutcome.ERROR

    def drain_readable(self) -> None:
        self.drains += 1

    def pop_notification(self) -> Notification | None:
        if not self.queue:
            return None
        return self.queue.popleft()

    async def execute(self, command: str) -> CommandResult:
        self.executed.append((self.clock(), command))
        return self.results.get(command, CommandResult(ok=True, kind=ResultKind.TUPLES))

    async def is_probe_healthy(self) -> bool:
        self.probes.append(self.clock())
        return self.probe_ok

    def probe_error(self) -> str:
        return "" if self.probe_ok else "server closed the connection unexpectedly"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_session(clock: FakeClock):
    def _make(steps: list[tuple] | None = None) -> FakeSession:
        return FakeSession(clock, steps)

    return _make


@pytest.fixture(autouse=True)
def reset_settings_and_logging():
    # CLI runs reconfigure the package logger and read cached settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    package_logger = logging.getLogger("pgrelay")
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
