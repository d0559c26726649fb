"""
External program execution for mcremote tasks.

Two modes are supported:
- run_to_completion: start, wait for exit, capture stdout and stderr
- spawn_streaming: start without waiting and expose stdout as a stream

The runner does not know which program it runs; the command table lives in
ServiceConfig.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import psutil

from ..core.exceptions import ProcessSpawnError

logger = logging.getLogger(__name__)


@dataclass
class ProcessOutput:
    """Result of a program run to completion."""
    returncode: int
    stdout: bytes
    stderr: bytes

    def stream(self, name: str) -> bytes:
        """Return the captured ``'stdout'`` or ``'stderr'`` bytes."""
        if name == 'stdout':
            return self.stdout
        if name == 'stderr':
            return self.stderr
        raise ValueError(f"Unknown stream: {name}")


@dataclass
class StreamingProcess:
    """A live child whose standard output can be read line by line."""
    process: asyncio.subprocess.Process
    stdout: asyncio.StreamReader

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessRunner:
    """Starts external programs on the running event loop."""

    async def run_to_completion(self, program: str, args: Sequence[str]) -> ProcessOutput:
        """
        Run ``program`` with ``args`` and collect all of its output.

        If the calling task is cancelled while waiting, the child is killed
        before the cancellation propagates.

        Raises:
            ProcessSpawnError: If the program cannot be started
        """
        logger.info("Spawning child process and collecting output...")
        try:
            process = await asyncio.create_subprocess_exec(
                program, *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(program, list(args), e) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            await self.terminate(process)
            raise

        logger.debug(f"Child process {process.pid} exited with {process.returncode}")
        return ProcessOutput(returncode=process.returncode, stdout=stdout, stderr=stderr)

    async def spawn_streaming(self, program: str, args: Sequence[str]) -> StreamingProcess:
        """
        Start ``program`` without waiting for it.

        Standard error is discarded so an unread pipe can never stall the
        child.

        Raises:
            ProcessSpawnError: If the program cannot be started
        """
        try:
            process = await asyncio.create_subprocess_exec(
                program, *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise ProcessSpawnError(program, list(args), e) from e

        logger.info(f"Spawned child process with id: {process.pid}")
        return StreamingProcess(process=process, stdout=process.stdout)

    async def terminate(self, process: asyncio.subprocess.Process) -> Optional[int]:
        """
        Kill ``process`` and its descendants, then wait for it to exit.

        Returns the exit status. A process that already exited is not an
        error.
        """
        if process.returncode is not None:
            return process.returncode

        descendants: List[psutil.Process] = []
        try:
            descendants = psutil.Process(process.pid).children(recursive=True)
        except psutil.Error:
            # Exited between the returncode check and now
            pass

        logger.debug(f"Killing child process {process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            pass

        for child in descendants:
            try:
                child.kill()
            except psutil.Error:
                pass

        returncode = await process.wait()
        logger.debug(f"Killed child process {process.pid}")
        return returncode
