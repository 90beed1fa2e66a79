from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from schemas.result_ir import TaskResult


@dataclass(frozen=True)
class TaskStarted:
    task_id: int
    name: str


@dataclass(frozen=True)
class TaskCompleted:
    result: TaskResult


@dataclass(frozen=True)
class AllCompleted:
    results: List[TaskResult]


@dataclass(frozen=True)
class ReportWritten:
    path: str
    token_count: int


Event = Union[TaskStarted, TaskCompleted, AllCompleted, ReportWritten]

_CLOSED = object()


class EventChannel:
    """Queue of lifecycle events between the scheduler and a display.

    A run emits two events per task plus one ``AllCompleted`` and one
    ``ReportWritten``; sizing the buffer from the task count means producers
    never wait on a slow consumer.
    """

    def __init__(self, task_count: int):
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=2 * task_count + 3)

    def publish(self, event: Event) -> None:
        self._queue.put(event)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Return the next event, or None once the channel is closed."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            return None
        return item

    def __iter__(self) -> Iterator[Event]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event
