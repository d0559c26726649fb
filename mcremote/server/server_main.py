"""
mcremote server entry point.

Binds the control channel and serves until interrupted.
"""

import asyncio
import argparse
import logging
import sys
from typing import List, Optional

from ..config import McRemoteConfig, LogLevel
from ..core.exceptions import ConfigError
from ..logging_setup import configure_logging
from .server import McRemoteServer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='mcremote server')
    parser.add_argument('--config', type=str, default=None, help='YAML config file')
    parser.add_argument('--host', type=str, default=None, help='Bind host')
    parser.add_argument('--port', type=int, default=None, help='Bind port')
    parser.add_argument('--log-level', type=str, default=None,
                        choices=[level.value for level in LogLevel], help='Log level')
    return parser


def load_server_config(argv: Optional[List[str]] = None) -> McRemoteConfig:
    """Build the effective config from file, environment and command line."""
    args = build_parser().parse_args(argv)
    config = McRemoteConfig.load(args.config)
    if args.host is not None:
        config.network.host = args.host
    if args.port is not None:
        config.network.port = args.port
    if args.log_level is not None:
        config.logging.level = LogLevel(args.log_level)
    return config


async def run(config: McRemoteConfig) -> None:
    server = await McRemoteServer.bind(config)
    try:
        await server.serve()
    finally:
        await server.stop()


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_server_config(argv)
    except ConfigError as e:
        print(f"mcremote-server: {e}", file=sys.stderr)
        return 2

    configure_logging(config.logging)
    logger.info(f"Starting mcremote server on {config.network.host}:{config.network.port}")
    logger.info(f"   Program: {config.service.program}")
    logger.info(f"   Service: {config.service.service_name}")

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except OSError as e:
        logger.error(f"Failed to start server: {e}")
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
