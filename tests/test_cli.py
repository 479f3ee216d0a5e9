import io

import pytest

from pgrelay import __version__
from pgrelay.cli import LISTEN_MAX, pglater, pglisten, run
from pgrelay.errors import ConnectionBadError
from pgrelay.models import ExitCode, Notification

from conftest import FakeSession


class _SessionFactory:
    def __init__(self, steps: list[tuple] | None = None) -> None:
        self.steps = steps
        self.sessions: list[FakeSession] = []
        self.connect_error: Exception | None = None
        self.fail_listen: set[str] = set()

    def __call__(self, options) -> FakeSession:  # noqa: ANN001
        session = FakeSession(steps=self.steps)
        session.options = options
        session.connect_error = self.connect_error
        session.fail_listen = self.fail_listen
        self.sessions.append(session)
        return session


def test_pglisten_passes_connection_flags_and_channels():
    factory = _SessionFactory()

    code = run(
        "pglisten",
        ["-h", "db.example", "-p", "5433", "-U", "bob", "-d", "app", "-w", "-l", "a", "-l", "b"],
        relay=True,
        session_factory=factory,
    )

    session = factory.sessions[0]
    assert code == ExitCode.SUCCESS
    assert session.options.host == "db.example"
    assert session.options.port == 5433
    assert session.options.user == "bob"
    assert session.options.database == "app"
    assert session.options.no_password is True
    assert session.options.application_name == "pglisten"
    assert session.channels == ["a", "b"]
    assert session.disconnected


def test_positional_dbname_and_username():
    factory = _SessionFactory()

    run("pglisten", ["-l", "a", "app", "bob"], relay=True, session_factory=factory)

    assert factory.sessions[0].options.database == "app"
    assert factory.sessions[0].options.user == "bob"


def test_pglisten_relays_with_context_and_print0():
    factory = _SessionFactory(
        [("deliver", 0.0, [Notification(channel="b", payload="hello", sender_id=77)])]
    )
    out = io.StringIO()

    code = run("pglisten", ["-l", "a", "-l", "b", "-H", "-0"], relay=True, session_factory=factory, out=out)

    assert code == ExitCode.SUCCESS
    assert out.getvalue() == "b: (77) hello\0"


def test_pglater_defaults_to_pglater_channel():
    factory = _SessionFactory()

    code = run("pglater", [], relay=False, session_factory=factory)

    assert code == ExitCode.SUCCESS
    assert factory.sessions[0].channels == ["pglater"]
    assert factory.sessions[0].options.application_name == "pglater"


def test_pglater_uses_last_listen_flag():
    factory = _SessionFactory()

    run("pglater", ["-l", "first", "--listen=second"], relay=False, session_factory=factory)

    assert factory.sessions[0].channels == ["second"]


def test_pglater_rejects_empty_channel_name(capsys):
    factory = _SessionFactory()

    code = run("pglater", ["-l", ""], relay=False, session_factory=factory)

    assert code == ExitCode.FAILURE
    assert "Failed to escape ''" in capsys.readouterr().err
    assert factory.sessions[0].channels == []


def test_pglisten_rejects_too_many_channels(capsys):
    argv: list[str] = []
    for index in range(LISTEN_MAX + 1):
        argv += ["-l", f"c{index}"]
    factory = _SessionFactory()

    code = run("pglisten", argv, relay=True, session_factory=factory)

    assert code == ExitCode.FAILURE
    assert factory.sessions == []
    assert f"Can't listen to more than {LISTEN_MAX} channels" in capsys.readouterr().err


def test_connect_failure_exits_with_badconn(capsys):
    factory = _SessionFactory()
    factory.connect_error = ConnectionBadError("could not connect to server")

    code = run("pglisten", ["-l", "a"], relay=True, session_factory=factory)

    assert code == ExitCode.BADCONN
    assert "pglisten: could not connect to server" in capsys.readouterr().err


def test_listen_failure_exits_with_failure(capsys):
    factory = _SessionFactory()
    factory.fail_listen = {"secret"}

    code = run("pglater", ["-l", "secret"], relay=False, session_factory=factory)

    assert code == ExitCode.FAILURE
    assert "Listen command failed" in capsys.readouterr().err
    assert factory.sessions[0].disconnected


def test_malformed_directive_exits_with_failure(capsys):
    factory = _SessionFactory([("deliver", 0.0, ["tomorrow select 1"])])

    code = run("pglater", [], relay=False, session_factory=factory)

    assert code == ExitCode.FAILURE
    assert "pglater: Unable to parse notification 'tomorrow select 1'" in capsys.readouterr().err


def test_verbose_logs_activity(capsys):
    factory = _SessionFactory([("deliver", 0.0, ["60 select 1"])])

    run("pglater", ["-v"], relay=False, session_factory=factory)

    err = capsys.readouterr().err
    assert "pglater: Waiting for up to 300 seconds" in err
    assert "pglater: Received notification: 60 select 1" in err


@pytest.mark.parametrize("flag", ["--help", "-?"])
def test_help_exits_successfully(flag, capsys):
    with pytest.raises(SystemExit) as exc_info:
        pglisten([flag])

    assert exc_info.value.code == 0
    out = capsys.readouterr().out
    assert "--listen" in out
    assert "--print0" in out


def test_version_exits_successfully(capsys):
    with pytest.raises(SystemExit) as exc_info:
        pglater(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.parametrize("argv", [["--bogus"], ["-H"], ["-p", "not-a-port"]])
def test_bad_arguments_exit_with_failure(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        pglater(argv)

    assert exc_info.value.code == ExitCode.FAILURE
    assert 'Try "pglater --help" for more information.' in capsys.readouterr().err
