from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, TextIO, Tuple

from orchestrator.events import (
    AllCompleted,
    EventChannel,
    ReportWritten,
    TaskCompleted,
    TaskStarted,
)
from schemas.capability_ir import CapabilityDescriptor
from schemas.result_ir import TaskResult, TaskStatus


@dataclass(frozen=True)
class Theme:
    glyphs: Tuple[Tuple[TaskStatus, str], ...] = (
        (TaskStatus.PENDING, "○"),
        (TaskStatus.RUNNING, "◐"),
        (TaskStatus.SUCCESS, "✓"),
        (TaskStatus.SKIPPED, "⊘"),
        (TaskStatus.FAILED, "✗"),
    )
    colors: Tuple[Tuple[TaskStatus, str], ...] = (
        (TaskStatus.PENDING, "\033[90m"),
        (TaskStatus.RUNNING, "\033[33m"),
        (TaskStatus.SUCCESS, "\033[32m"),
        (TaskStatus.SKIPPED, "\033[90m"),
        (TaskStatus.FAILED, "\033[31m"),
    )
    spinner_frames: Tuple[str, ...] = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
    use_color: bool = True

    @classmethod
    def plain(cls) -> "Theme":
        return cls(use_color=False)

    def glyph(self, status: TaskStatus) -> str:
        return dict(self.glyphs).get(status, "?")

    def paint(self, status: TaskStatus, text: str) -> str:
        if not self.use_color:
            return text
        color = dict(self.colors).get(status)
        if not color:
            return text
        return f"{color}{text}\033[0m"

    def spinner(self, tick: int) -> str:
        return self.spinner_frames[tick % len(self.spinner_frames)]


@dataclass
class ConsoleUI:
    enabled: bool = True
    stream: TextIO = sys.stdout
    theme: Theme = field(default_factory=Theme)
    verbose: bool = False
    name_width: int = 40
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def header(self, caps: CapabilityDescriptor, task_count: int, workers: int, mode: str) -> None:
        if not self.enabled:
            return
        self._section("SysProbe Diagnostic Scanner")
        self._kv("Platform", caps.platform_label())
        self._kv("Privileges", "root" if caps.is_root else "user")
        self._kv("Display", "wayland" if caps.is_wayland else "x11/none")
        self._kv("Tasks", f"{task_count} (workers={workers}, report={mode})")
        self._print("")

    def task_done(self, result: TaskResult) -> None:
        """Progress line for one finished task; safe to call from workers."""
        if not self.enabled:
            return
        glyph = self.theme.paint(result.status, self.theme.glyph(result.status))
        line = f"  {glyph} {_shorten(result.name, self.name_width)}"
        if self.verbose:
            detail = _detail(result)
            if detail:
                line += f"  ({detail})"
        self._print(line)

    def consume(self, events: EventChannel) -> Optional[ReportWritten]:
        """Render lifecycle events until the channel is closed.

        Rows are keyed by task id, so tasks sharing a name stay distinct.
        Returns the ``ReportWritten`` event if one arrived.
        """
        rows: Dict[int, TaskResult] = {}
        written: Optional[ReportWritten] = None
        tick = 0
        start = time.monotonic()
        for event in events:
            if isinstance(event, TaskStarted):
                if self.verbose:
                    spinner = self.theme.paint(TaskStatus.RUNNING, self.theme.spinner(tick))
                    self._print(f"  {spinner} {_shorten(event.name, self.name_width)}")
                    tick += 1
            elif isinstance(event, TaskCompleted):
                rows[event.result.task_id] = event.result
                self.task_done(event.result)
            elif isinstance(event, AllCompleted):
                for result in event.results:
                    rows.setdefault(result.task_id, result)
                self.summary(list(rows.values()), time.monotonic() - start)
            elif isinstance(event, ReportWritten):
                written = event
                self.report_saved(event.path, event.token_count)
        return written

    def summary(self, results: Sequence[TaskResult], elapsed: float) -> None:
        if not self.enabled:
            return
        counts = _count_statuses(results)
        self._section("Scan complete")
        self._kv(
            "Results",
            ", ".join(f"{status.value.lower()}={counts.get(status, 0)}" for status in _FINAL_STATUSES),
        )
        self._kv("Elapsed", f"{elapsed:.2f}s")

    def report_saved(self, path: str, token_count: int) -> None:
        if not self.enabled:
            return
        self._print("")
        self._print(f"{self.theme.glyph(TaskStatus.SUCCESS)} Report saved to: {path} ({token_count} tokens)")

    def _section(self, title: str) -> None:
        self._print("")
        self._print(f"=== {title} ===")

    def _kv(self, key: str, value: str) -> None:
        self._print(f"- {key}: {value}")

    def _print(self, line: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


_FINAL_STATUSES = (TaskStatus.SUCCESS, TaskStatus.FAILED, TaskStatus.SKIPPED)


def _count_statuses(results: Sequence[TaskResult]) -> Dict[TaskStatus, int]:
    counts: Dict[TaskStatus, int] = {}
    for result in results:
        counts[result.status] = counts.get(result.status, 0) + 1
    return counts


def _detail(result: TaskResult) -> str:
    if result.status == TaskStatus.SKIPPED:
        return result.skip_reason
    if result.status == TaskStatus.FAILED:
        return _shorten(result.error.splitlines()[0] if result.error else "failed", 80)
    return f"{result.duration:.2f}s"


def _shorten(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"
