"""
mcremote client entry point.

    mcremote-client logs [-f]
    mcremote-client start | stop | restart
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import List, Optional

from ..config import McRemoteConfig
from ..core.exceptions import ConfigError
from ..core.protocol import Command
from ..logging_setup import configure_logging
from .client import McRemoteClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Control the managed service remotely')
    parser.add_argument('--config', type=str, default=None, help='YAML config file')
    parser.add_argument('--host', type=str, default=None, help='Server host')
    parser.add_argument('--port', type=int, default=None, help='Server port')

    sub = parser.add_subparsers(dest='action', required=True)
    logs = sub.add_parser('logs', help='Checks the logs of the service.')
    logs.add_argument('-f', '--follow', action='store_true', default=False,
                      help='Keep streaming new log lines')
    sub.add_parser('start', help='Starts the service.')
    sub.add_parser('stop', help='Stops the service.')
    sub.add_parser('restart', help='Restarts the service.')
    return parser


def command_from_args(args: argparse.Namespace) -> Command:
    if args.action == 'logs':
        return Command.LOGS_FOLLOW if args.follow else Command.LOGS_ONCE
    return {
        'start': Command.START,
        'stop': Command.STOP,
        'restart': Command.RESTART,
    }[args.action]


def _write_line(line: bytes) -> None:
    sys.stdout.buffer.write(line)
    sys.stdout.flush()


async def run(client: McRemoteClient, command: Command) -> None:
    if not command.is_streaming:
        output = await client.run_once(command)
        sys.stdout.buffer.write(output)
        sys.stdout.write("\n")
        sys.stdout.flush()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
    except NotImplementedError:
        # No loop signal handlers on this platform; Ctrl-C raises instead
        pass

    try:
        if await client.follow(_write_line, stop_event):
            sys.stdout.write("\n")
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = McRemoteConfig.load(args.config)
    except ConfigError as e:
        print(f"mcremote-client: {e}", file=sys.stderr)
        return 2
    configure_logging(config.logging)

    host = args.host if args.host is not None else config.network.host
    port = args.port if args.port is not None else config.network.port
    client = McRemoteClient(host, port)

    try:
        asyncio.run(run(client, command_from_args(args)))
    except KeyboardInterrupt:
        return 130
    except OSError as e:
        logger.error(f"Could not reach server at {host}:{port}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
