"""Bounded worker pool for probe tasks.

Two collection modes share the same pool:

* ``run_indexed`` writes each result into the slot of its task, so the
  returned list matches the input order exactly.
* ``run_streaming`` publishes start/completion events while tasks run and
  returns results in arrival order. Consumers correlate events by
  ``task_id``.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, List, Optional, Protocol, Sequence, cast

from orchestrator.events import AllCompleted, EventChannel, TaskCompleted, TaskStarted
from schemas.result_ir import TaskResult, TaskStatus
from schemas.task_ir import Task

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class Runner(Protocol):
    def run(self, task: Task) -> TaskResult: ...


def _pool_size(workers: int, task_count: int) -> int:
    return max(1, min(workers, task_count))


def _safe_run(runner: Runner, task: Task) -> TaskResult:
    try:
        return runner.run(task)
    except Exception as exc:
        logger.exception("runner crashed on %s", task.name)
        return TaskResult(
            task_id=task.task_id,
            name=task.name,
            command=task.command,
            category=task.category,
            status=TaskStatus.FAILED,
            error=f"{type(exc).__name__}: {exc}",
        )


def _notify(callback: Callable[[TaskResult], None], result: TaskResult) -> None:
    # A failing display, such as a closed stdout pipe, leaves the worker running.
    try:
        callback(result)
    except Exception:
        logger.exception("progress callback failed for %s", result.name)


def _start_pool(count: int, target: Callable[[], None]) -> List[threading.Thread]:
    threads = [
        threading.Thread(target=target, name=f"probe-worker-{idx}", daemon=True)
        for idx in range(count)
    ]
    for thread in threads:
        thread.start()
    return threads


def _fill_queue(items: Sequence[object]) -> "queue.Queue[object]":
    work: "queue.Queue[object]" = queue.Queue()
    for item in items:
        work.put(item)
    return work


def run_indexed(
    tasks: Sequence[Task],
    runner: Runner,
    workers: int = DEFAULT_WORKERS,
    on_result: Optional[Callable[[TaskResult], None]] = None,
) -> List[TaskResult]:
    """Run every task and return results in input order.

    ``on_result`` is a progress side channel, called from worker threads as
    each task finishes.
    """
    results: List[Optional[TaskResult]] = [None] * len(tasks)
    if not tasks:
        return []
    work = _fill_queue(range(len(tasks)))

    def worker() -> None:
        while True:
            try:
                idx = work.get_nowait()
            except queue.Empty:
                return
            result = _safe_run(runner, tasks[idx])
            results[idx] = result
            if on_result is not None:
                _notify(on_result, result)

    threads = _start_pool(_pool_size(workers, len(tasks)), worker)
    for thread in threads:
        thread.join()
    unfinished = [tasks[idx].name for idx, result in enumerate(results) if result is None]
    if unfinished:
        raise RuntimeError(f"workers exited before running: {', '.join(unfinished)}")
    return cast(List[TaskResult], results)


def run_streaming(
    tasks: Sequence[Task],
    runner: Runner,
    events: EventChannel,
    workers: int = DEFAULT_WORKERS,
) -> List[TaskResult]:
    """Run every task, publishing lifecycle events as they happen.

    Results are returned in completion order. ``AllCompleted`` is published
    once all workers have drained the queue.
    """
    collected: List[TaskResult] = []
    lock = threading.Lock()
    work = _fill_queue(tasks)

    def worker() -> None:
        while True:
            try:
                task = work.get_nowait()
            except queue.Empty:
                return
            events.publish(TaskStarted(task_id=task.task_id, name=task.name))
            result = _safe_run(runner, task)
            with lock:
                collected.append(result)
            events.publish(TaskCompleted(result=result))

    if tasks:
        threads = _start_pool(_pool_size(workers, len(tasks)), worker)
        for thread in threads:
            thread.join()

    results = list(collected)
    events.publish(AllCompleted(results=results))
    return results
