"""Task execution: process runner, per-connection tasks and the task registry."""

from .process_runner import ProcessOutput, ProcessRunner, StreamingProcess
from .registry import TaskRegistry
from .task import ProcessHandoff, Task, TaskHandle, TaskState

__all__ = [
    "ProcessHandoff",
    "ProcessOutput",
    "ProcessRunner",
    "StreamingProcess",
    "Task",
    "TaskHandle",
    "TaskRegistry",
    "TaskState",
]
