"""Command-line entry points.

- pglisten: relay notifications from one or more channels to stdout
- pglater: run the command carried by the latest notification after its delay
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable, Sequence
from typing import TextIO

from pgrelay import __version__
from pgrelay.config import Settings, get_settings
from pgrelay.core.deferred import DeferredDispatcher
from pgrelay.core.dispatch import DispatcherProtocol
from pgrelay.core.loop import NotificationLoop
from pgrelay.core.relay import RelayDispatcher
from pgrelay.errors import ListenerError
from pgrelay.models import ConnectionOptions, ExitCode, ListenOptions
from pgrelay.storage.postgres import PostgresSession

logger = logging.getLogger(__name__)

LISTEN_MAX = 100

SessionFactory = Callable[[ConnectionOptions], PostgresSession]


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with the generic failure code on bad input."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        sys.stderr.write(f"{self.prog}: {message}\n")
        sys.stderr.write(f'Try "{self.prog} --help" for more information.\n')
        sys.exit(ExitCode.FAILURE)


def _build_parser(prog: str, relay: bool) -> argparse.ArgumentParser:
    # -h is the host flag, as in the PostgreSQL client tools; help is -? / --help
    parser = _ArgumentParser(
        prog=prog,
        usage="%(prog)s [OPTION]... [DBNAME [USERNAME]]",
        add_help=False,
    )
    if relay:
        parser.add_argument(
            "-l", "--listen", action="append", default=[], metavar="CHANNEL",
            help="listen for notifications on this channel",
        )
        parser.add_argument(
            "-H", "--context", action="store_true",
            help="display channel and backend process id",
        )
        parser.add_argument(
            "-0", "--print0", action="store_true",
            help="separate output with an ASCII NUL (character code 0)",
        )
    else:
        parser.add_argument(
            "-l", "--listen", default=None, metavar="CHANNEL",
            help="listen for notifications on this channel (default pglater)",
        )
    parser.add_argument("-?", "--help", action="help", help="show this help, then exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="log activity to stderr")
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}",
        help="output version information, then exit",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="accepted for compatibility, ignored")

    conn = parser.add_argument_group("Connection options")
    conn.add_argument("-h", "--host", metavar="HOSTNAME", help="database server host or socket directory")
    conn.add_argument("-p", "--port", type=int, metavar="PORT", help="database server port")
    conn.add_argument("-U", "--username", metavar="USERNAME", help="database user name")
    conn.add_argument("-d", "--dbname", metavar="DBNAME", help="database name to connect to")
    conn.add_argument("-w", "--no-password", action="store_true", help="never prompt for password")
    conn.add_argument("dbname_arg", nargs="?", metavar="DBNAME", help=argparse.SUPPRESS)
    conn.add_argument("username_arg", nargs="?", metavar="USERNAME", help=argparse.SUPPRESS)
    return parser


def _configure_logging(prog: str, verbose: bool, level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(f"{prog}: %(message)s"))
    package_logger = logging.getLogger("pgrelay")
    package_logger.handlers = [handler]
    package_logger.propagate = False
    package_logger.setLevel(logging.DEBUG if verbose else level.upper())


def _connection_options(prog: str, args: argparse.Namespace, settings: Settings) -> ConnectionOptions:
    return ConnectionOptions(
        host=args.host or settings.postgres_host,
        port=args.port or settings.postgres_port,
        user=args.username or args.username_arg or settings.postgres_user,
        database=args.dbname or args.dbname_arg or settings.postgres_db,
        password=settings.postgres_password,
        no_password=args.no_password,
        application_name=prog,
    )


async def _serve(
    session: PostgresSession,
    channels: list[str],
    dispatcher: DispatcherProtocol,
    options: ListenOptions,
) -> int:
    """Connect, subscribe and run the event loop until shutdown or a fatal error."""
    try:
        await session.connect()
        for channel in channels:
            await session.listen(channel)

        listener = NotificationLoop(session, dispatcher, options)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, listener.stop)

        await listener.run()
        return ExitCode.SUCCESS
    except ListenerError as e:
        logger.error(e.message)
        return e.exit_code
    finally:
        await session.disconnect()


def run(
    prog: str,
    argv: Sequence[str] | None,
    relay: bool,
    session_factory: SessionFactory = PostgresSession,
    out: TextIO | None = None,
) -> int:
    """Parse arguments and run one of the two loop variants.

    Args:
        prog: Program name used in usage, diagnostics and application_name
        argv: Command-line arguments (defaults to sys.argv[1:])
        relay: True for pglisten, False for pglater
        session_factory: Builds the session from connection options
        out: Relay output stream (defaults to stdout)

    Returns:
        Process exit code
    """
    args = _build_parser(prog, relay).parse_args(argv)
    settings = get_settings()
    _configure_logging(prog, args.verbose, settings.log_level)

    options = ListenOptions(
        probe_interval=settings.probe_interval_s,
        show_context=getattr(args, "context", False),
        print0=getattr(args, "print0", False),
    )

    dispatcher: DispatcherProtocol
    if relay:
        channels = list(args.listen)
        if len(channels) > LISTEN_MAX:
            logger.error(f"Can't listen to more than {LISTEN_MAX} channels")
            return ExitCode.FAILURE
        if not channels:
            logger.warning("No channels given, only keeping the connection alive")
        dispatcher = RelayDispatcher(options, out)
    else:
        channels = [args.listen if args.listen is not None else settings.default_channel]
        dispatcher = DeferredDispatcher()

    session = session_factory(_connection_options(prog, args, settings))
    return asyncio.run(_serve(session, channels, dispatcher, options))


def pglisten(argv: Sequence[str] | None = None) -> int:
    """Entry point for the relay variant."""
    return run("pglisten", argv, relay=True)


def pglater(argv: Sequence[str] | None = None) -> int:
    """Entry point for the deferred-action variant."""
    return run("pglater", argv, relay=False)
