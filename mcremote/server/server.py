"""
mcremote TCP server.

Accepts connections, decodes each connection's command byte and hands the
connection to a registered Task. A single control loop (serve) owns the
task registry and races two event sources:

- a cancellation notification carrying a task id -> registry.delete(id)
- a newly accepted, decoded connection -> register, run, store

The command byte is read in the per-connection callback, so a client that
connects and stays silent never stalls the control loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Set, Tuple

from ..config import McRemoteConfig
from ..core.exceptions import DecodeError
from ..core.protocol import Command, read_command
from ..runtime.process_runner import ProcessRunner
from ..runtime.registry import TaskRegistry

logger = logging.getLogger(__name__)


@dataclass
class ServerStats:
    """Counters exposed for status checks and tests."""
    connections_total: int = 0
    decode_errors: int = 0
    tasks_started: int = 0
    deletions_requested: int = 0
    start_time: float = field(default_factory=time.time)


@dataclass
class AcceptedConnection:
    """A connection whose command byte decoded successfully."""
    command: Command
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    address: str


class McRemoteServer:
    """TCP server dispatching one task per connection."""

    def __init__(self, config: Optional[McRemoteConfig] = None,
                 runner: Optional[ProcessRunner] = None):
        self.config = config or McRemoteConfig()
        self.host = self.config.network.host
        self.port = self.config.network.port

        # Server state
        self.server: Optional[asyncio.Server] = None
        self.tasks = TaskRegistry(runner or ProcessRunner(), self.config.service)
        self.stats = ServerStats()

        # Created in start() so they belong to the running loop
        self._cancel_queue: Optional[asyncio.Queue] = None
        self._accepted: Optional[asyncio.Queue] = None
        self._handshaking: Set[asyncio.StreamWriter] = set()
        self._serve_task: Optional[asyncio.Task] = None

    @classmethod
    async def bind(cls, config: Optional[McRemoteConfig] = None,
                   runner: Optional[ProcessRunner] = None) -> 'McRemoteServer':
        """Create a server and start listening."""
        server = cls(config, runner)
        await server.start()
        return server

    async def start(self):
        """Open the listening socket. Failure here is fatal to the caller."""
        self._cancel_queue = asyncio.Queue(maxsize=self.config.server.cancel_queue_size)
        self._accepted = asyncio.Queue()
        try:
            self.server = await asyncio.start_server(self.handle_client, self.host, self.port)
        except OSError as e:
            logger.error(f"Failed to bind {self.host}:{self.port}: {e}")
            raise

        host, port = self.address
        logger.info(f"mcremote server listening on {host}:{port}")

    @property
    def address(self) -> Tuple[str, int]:
        if self.server is None or not self.server.sockets:
            return self.host, self.port
        sockname = self.server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Read and decode the command byte, then queue the connection for dispatch."""
        peername = writer.get_extra_info('peername')
        address = f"{peername[0]}:{peername[1]}" if peername else "unknown"
        logger.info(f"New connection from {address}")
        self.stats.connections_total += 1

        self._handshaking.add(writer)
        try:
            command = await read_command(reader)
        except DecodeError as e:
            self.stats.decode_errors += 1
            logger.warning(f"Rejected connection from {address}: {e}")
            await self._reject(writer, e)
            return
        except OSError as e:
            logger.error(f"Error reading command from {address}: {e}")
            await self._close(writer)
            return
        finally:
            self._handshaking.discard(writer)

        logger.debug(f"Decoded {command.name} from {address}")
        await self._accepted.put(AcceptedConnection(command, reader, writer, address))

    async def serve(self):
        """Run the control loop until cancelled."""
        if self.server is None:
            await self.start()
        self._serve_task = asyncio.current_task()

        cancel_get = asyncio.ensure_future(self._cancel_queue.get())
        accept_get = asyncio.ensure_future(self._accepted.get())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {cancel_get, accept_get}, return_when=asyncio.FIRST_COMPLETED
                )

                if cancel_get in done:
                    task_id = cancel_get.result()
                    logger.debug(f"Received command to kill task with id: {task_id}")
                    self.stats.deletions_requested += 1
                    self.tasks.delete(task_id)
                    cancel_get = asyncio.ensure_future(self._cancel_queue.get())

                if accept_get in done:
                    self._dispatch(accept_get.result())
                    accept_get = asyncio.ensure_future(self._accepted.get())
        finally:
            cancel_get.cancel()
            accept_get.cancel()

    def _dispatch(self, conn: AcceptedConnection) -> None:
        task = self.tasks.register(self._cancel_queue)
        self.tasks.store(task.run(conn.command, conn.reader, conn.writer))
        self.stats.tasks_started += 1
        logger.info(f"Task {task.id} started {conn.command.name} for {conn.address}")

    async def stop(self):
        """Stop accepting, abort every live task and close the listener."""
        logger.info("Stopping mcremote server...")

        if self.server:
            self.server.close()

        if self._serve_task and self._serve_task is not asyncio.current_task():
            self._serve_task.cancel()
            await asyncio.wait([self._serve_task])
            self._serve_task = None

        self.tasks.delete_all()
        await self.tasks.wait_teardowns()

        # Connections that decoded but were never dispatched
        if self._accepted is not None:
            while not self._accepted.empty():
                conn = self._accepted.get_nowait()
                await self._close(conn.writer)

        for writer in list(self._handshaking):
            await self._close(writer)

        if self.server:
            await self.server.wait_closed()
            self.server = None

        logger.info("mcremote server stopped")

    async def _reject(self, writer: asyncio.StreamWriter, error: DecodeError):
        try:
            writer.write(error.message.encode('utf-8'))
            await writer.drain()
        except OSError as e:
            logger.debug(f"Could not send decode error: {e}")
        await self._close(writer)

    async def _close(self, writer: asyncio.StreamWriter):
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
