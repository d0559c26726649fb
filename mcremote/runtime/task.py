"""
Connection-scoped unit of work.

A Task services exactly one accepted connection: it runs the decoded
command, streams or writes the result back, and finally asks the registry
(through the shared cancellation queue) to tear it down.

State machine:

    DISPATCHING -> RUNNING -> COMPLETED | CANCELLED | FAILED

Follow-mode logs race two event sources inside one loop: the next line of
the child's stdout and one byte from the client. Neither read is ever
dropped when the other one wins, so no output line is lost and a cancel
byte is noticed even while output is flowing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from ..config import ServiceConfig
from ..core.exceptions import ProcessSpawnError
from ..core.protocol import Command, is_cancel
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class TaskState(IntEnum):
    """Task lifecycle states"""
    DISPATCHING = 0
    RUNNING = 1
    COMPLETED = 2
    CANCELLED = 3
    FAILED = 4

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.CANCELLED, TaskState.FAILED)


class ProcessHandoff:
    """
    Single-use channel carrying a child process from a task to the registry.

    The task calls deliver() at most once, or close() if it never spawned
    anything. receive() returns the process, or None when the channel was
    closed without a value.
    """

    def __init__(self):
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    def deliver(self, process: asyncio.subprocess.Process) -> None:
        if self._future.done():
            raise RuntimeError("process handoff already resolved")
        self._future.set_result(process)

    def close(self) -> None:
        if not self._future.done():
            self._future.cancel()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    async def receive(self) -> Optional[asyncio.subprocess.Process]:
        await asyncio.wait([self._future])
        if self._future.cancelled():
            return None
        return self._future.result()


@dataclass
class TaskHandle:
    """What the registry keeps for a running task."""
    id: int
    handle: asyncio.Task
    maybe_proc: ProcessHandoff
    task: 'Task'

    @property
    def state(self) -> TaskState:
        return self.task.state


class Task:
    """Unit of work bound to one client connection."""

    def __init__(self, task_id: int, cancel_notifier: asyncio.Queue,
                 runner: ProcessRunner, service: ServiceConfig):
        self.id = task_id
        self.state = TaskState.DISPATCHING
        self.command: Optional[Command] = None
        self._cancel_notifier = cancel_notifier
        self._runner = runner
        self._service = service

    def run(self, command: Command, reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter) -> TaskHandle:
        """Start servicing the connection in the background and return its handle."""
        self.command = command
        handoff = ProcessHandoff()
        handle = asyncio.create_task(
            self._drive(command, reader, writer, handoff),
            name=f"mcremote-task-{self.id}",
        )
        return TaskHandle(id=self.id, handle=handle, maybe_proc=handoff, task=self)

    async def _drive(self, command: Command, reader: asyncio.StreamReader,
                     writer: asyncio.StreamWriter, handoff: ProcessHandoff) -> None:
        self.state = TaskState.RUNNING
        logger.debug(f"Task {self.id} running {command.name}")
        try:
            if command.is_streaming:
                await self._follow(command, reader, writer, handoff)
            else:
                await self._run_once(command, writer)
        except asyncio.CancelledError:
            self.state = TaskState.CANCELLED
            logger.debug(f"Task {self.id} aborted")
            raise
        except ProcessSpawnError as e:
            self.state = TaskState.FAILED
            logger.error(f"Task {self.id} failed: {e}")
            await self._report(writer, str(e))
        except (OSError, ValueError) as e:
            self.state = TaskState.FAILED
            logger.error(f"Task {self.id} I/O error: {e}")
            await self._report(writer, f"error: {e}")
        finally:
            handoff.close()
            await self._close(writer)

        logger.debug(f"Task {self.id} finished as {self.state.name}")
        await self._cancel_notifier.put(self.id)

    async def _run_once(self, command: Command, writer: asyncio.StreamWriter) -> None:
        output = await self._runner.run_to_completion(
            self._service.program, self._service.argv_for(command)
        )
        writer.write(output.stream(command.reply_stream))
        await writer.drain()
        self.state = TaskState.COMPLETED

    async def _follow(self, command: Command, reader: asyncio.StreamReader,
                      writer: asyncio.StreamWriter, handoff: ProcessHandoff) -> None:
        """
        Stream child stdout lines to the client until one side ends.

        Any EOF from the client ends the session as COMPLETED, including a
        half-close right after the command byte (``nc -N`` style). Clients
        that want to keep reading must leave their write side open.
        """
        stream = await self._runner.spawn_streaming(
            self._service.program, self._service.argv_for(command)
        )
        handoff.deliver(stream.process)

        line_read = asyncio.ensure_future(stream.stdout.readline())
        client_read = asyncio.ensure_future(reader.read(1))
        try:
            while True:
                done, _ = await asyncio.wait(
                    {line_read, client_read}, return_when=asyncio.FIRST_COMPLETED
                )

                if client_read in done:
                    data = client_read.result()
                    if not data:
                        logger.info(f"Client of task {self.id} closed the connection")
                        self.state = TaskState.COMPLETED
                        return
                    if is_cancel(data):
                        logger.info("Client signaled to disconnect")
                        self.state = TaskState.CANCELLED
                        return
                    client_read = asyncio.ensure_future(reader.read(1))

                if line_read in done:
                    line = line_read.result()
                    if not line:
                        logger.info(f"Log stream of task {self.id} ended")
                        self.state = TaskState.COMPLETED
                        return
                    if writer.is_closing():
                        self.state = TaskState.COMPLETED
                        return
                    writer.write(line)
                    await writer.drain()
                    logger.debug(f"Sent {len(line)} bytes to client!")
                    line_read = asyncio.ensure_future(stream.stdout.readline())
        finally:
            for pending in (line_read, client_read):
                if not pending.done():
                    pending.cancel()

    async def _report(self, writer: asyncio.StreamWriter, text: str) -> None:
        """Best-effort error message to the client."""
        if writer.is_closing():
            return
        try:
            writer.write(text.encode('utf-8'))
            await writer.drain()
        except OSError as e:
            logger.debug(f"Could not report error to client of task {self.id}: {e}")

    async def _close(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
