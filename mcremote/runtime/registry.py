"""
Registry of outstanding connection tasks.

Tasks live in a dense list indexed by their id. Ids come from a counter that
only ever increases, so an id that was deleted is never handed out again and
a late cancellation notification can never hit a different task.

The registry is owned by the dispatcher loop; register, store and delete
are only called from there, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from ..config import ServiceConfig
from .process_runner import ProcessRunner
from .task import Task, TaskHandle

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Arena of live task handles keyed by monotonically increasing ids."""

    def __init__(self, runner: Optional[ProcessRunner] = None,
                 service: Optional[ServiceConfig] = None):
        self.tasks: List[Optional[TaskHandle]] = []
        self.cur_id = 0
        self._runner = runner or ProcessRunner()
        self._service = service or ServiceConfig()
        self._teardowns: Set[asyncio.Task] = set()

    def _next_id(self) -> int:
        next_id = self.cur_id
        self.cur_id += 1
        return next_id

    @property
    def next_id(self) -> int:
        """Id the next register() call will hand out."""
        return self.cur_id

    def register(self, cancel_notifier: asyncio.Queue) -> Task:
        """Allocate an id and build a task that is not yet running."""
        task_id = self._next_id()
        logger.debug(f"Registered task with id: {task_id}")
        return Task(task_id, cancel_notifier, self._runner, self._service)

    def store(self, task_handle: TaskHandle) -> None:
        """Record a running task's handle at its id, growing the table as needed."""
        task_id = task_handle.id
        if task_id >= len(self.tasks):
            self.tasks.extend([None] * (task_id + 1 - len(self.tasks)))
        self.tasks[task_id] = task_handle
        logger.debug(f"Stored task with id: {task_id}")

    def get(self, task_id: int) -> Optional[TaskHandle]:
        if 0 <= task_id < len(self.tasks):
            return self.tasks[task_id]
        return None

    def delete(self, task_id: int) -> None:
        """
        Remove a task and tear it down in the background.

        Deleting an id that is out of range or already empty does nothing.
        The caller never blocks on the teardown.
        """
        if not 0 <= task_id < len(self.tasks):
            return
        task_handle = self.tasks[task_id]
        if task_handle is None:
            return
        self.tasks[task_id] = None
        logger.debug(f"Deleting task with id: {task_id}")

        teardown = asyncio.create_task(
            self._teardown(task_handle), name=f"mcremote-teardown-{task_id}"
        )
        self._teardowns.add(teardown)
        teardown.add_done_callback(self._teardowns.discard)

    def delete_all(self) -> None:
        for task_id in self.live_ids():
            self.delete(task_id)

    async def _teardown(self, task_handle: TaskHandle) -> None:
        """Abort the task, then kill the child process it handed over, if any."""
        try:
            task_handle.handle.cancel()
            await asyncio.wait([task_handle.handle])
            # A finished task can no longer deliver; a never-resolved
            # handoff (aborted before its first step) means no process.
            task_handle.maybe_proc.close()

            process = await task_handle.maybe_proc.receive()
            if process is None:
                return
            await self._runner.terminate(process)
        except Exception as e:
            logger.debug(f"Ignoring teardown error for task {task_handle.id}: {e}")

    async def wait_teardowns(self) -> None:
        """Wait until every scheduled teardown has finished."""
        while self._teardowns:
            await asyncio.wait(set(self._teardowns))

    def live_ids(self) -> List[int]:
        return [handle.id for handle in self.tasks if handle is not None]

    def __len__(self) -> int:
        return sum(1 for handle in self.tasks if handle is not None)

    def __contains__(self, task_id: int) -> bool:
        return self.get(task_id) is not None
