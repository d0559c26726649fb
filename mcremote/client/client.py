"""
Client side of the mcremote control channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..core.protocol import Command, encode_cancel, encode_command

logger = logging.getLogger(__name__)


class McRemoteClient:
    """Sends one command per connection and collects the reply."""

    def __init__(self, host: str = "127.0.0.1", port: int = 4086):
        self.host = host
        self.port = port

    async def _open(self, command: Command):
        reader, writer = await asyncio.open_connection(self.host, self.port)
        writer.write(encode_command(command))
        await writer.drain()
        logger.debug(f"Sent {command.name} to {self.host}:{self.port}")
        return reader, writer

    async def run_once(self, command: Command) -> bytes:
        """
        Run a non-streaming command and return everything the server sent.

        Raises:
            ValueError: If ``command`` is the follow-mode logs command
        """
        if command.is_streaming:
            raise ValueError("use follow() for streaming logs")
        reader, writer = await self._open(command)
        try:
            return await reader.read()
        finally:
            await self._close(writer)

    async def follow(self, sink: Callable[[bytes], None], stop_event: asyncio.Event) -> bool:
        """
        Stream log lines into ``sink`` until the server closes or ``stop_event`` is set.

        When the stop event fires first the cancel byte is sent so the server
        can tear the session down.

        Returns:
            True if the session was cancelled from this side
        """
        reader, writer = await self._open(Command.LOGS_FOLLOW)
        line_read = asyncio.ensure_future(reader.readline())
        stop_wait = asyncio.ensure_future(stop_event.wait())
        cancelled = False
        try:
            while True:
                done, _ = await asyncio.wait(
                    {line_read, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if stop_wait in done:
                    try:
                        writer.write(encode_cancel())
                        await writer.drain()
                    except OSError as e:
                        logger.debug(f"Could not send cancel: {e}")
                    cancelled = True
                    break

                line = line_read.result()
                if not line:
                    break
                sink(line)
                line_read = asyncio.ensure_future(reader.readline())
        finally:
            for pending in (line_read, stop_wait):
                if not pending.done():
                    pending.cancel()
            await self._close(writer)
        return cancelled

    async def _close(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
