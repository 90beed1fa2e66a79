"""Shell execution of probe tasks.

Each eligible task runs as ``sh -c <command>`` with a global deadline.
Standard output and standard error are captured separately and truncated
independently before they are stored on the result.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time
from typing import List, NamedTuple, Optional, Tuple

import psutil

from schemas.capability_ir import CapabilityDescriptor
from schemas.result_ir import TaskResult, TaskStatus
from schemas.task_ir import Task
from skills.eligibility import Which, check_eligibility

logger = logging.getLogger(__name__)

# Default timeout (30 seconds)
DEFAULT_TIMEOUT = 30.0

# Default output limits, overridable per task
DEFAULT_MAX_LINES = 500
DEFAULT_MAX_BYTES = 64 * 1024

# Grace period for collecting output after a timed-out command is killed
DRAIN_TIMEOUT = 1.0


def format_bytes(size: int) -> str:
    """Return a human readable byte count such as ``512B`` or ``64KB``."""
    unit = 1024
    if size < unit:
        return f"{size}B"
    value = float(size)
    for suffix in "KMGTPE":
        value /= unit
        if value < unit or suffix == "E":
            break
    if value == int(value):
        return f"{int(value)}{suffix}B"
    return f"{value:.1f}{suffix}B"


def _split_lines(text: str) -> List[str]:
    lines = text.split("\n")
    # A final newline terminates the last line rather than opening a new one.
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def truncate_output(text: str, max_lines: int = 0, max_bytes: int = 0) -> str:
    """Apply the byte bound, then the line bound, then strip whitespace."""
    if max_lines <= 0:
        max_lines = DEFAULT_MAX_LINES
    if max_bytes <= 0:
        max_bytes = DEFAULT_MAX_BYTES

    encoded = text.encode("utf-8")
    if len(encoded) > max_bytes:
        # Drop a multi-byte character split by the cut.
        text = encoded[:max_bytes].decode("utf-8", errors="ignore")
        text += f"\n... [truncated: exceeded {format_bytes(max_bytes)}]"

    lines = _split_lines(text)
    if len(lines) > max_lines:
        text = "\n".join(lines[:max_lines])
        text += f"\n... [truncated: exceeded {max_lines} lines]"

    return text.strip()


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _kill_tree(proc: psutil.Popen) -> None:
    """Kill the command, its process group and any descendants still attached."""
    try:
        children = proc.children(recursive=True)
    except psutil.Error:
        children = []
    # The shell leads its own session, so its pid is also the group id.
    # Background jobs stay in the group after the shell itself has exited.
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    for child in children:
        try:
            child.kill()
        except psutil.Error:
            pass
    try:
        proc.kill()
    except psutil.Error:
        pass


def _drain(proc: psutil.Popen) -> Tuple[Optional[bytes], Optional[bytes]]:
    """Collect what is left on the pipes of a killed command, without blocking."""
    try:
        return proc.communicate(timeout=DRAIN_TIMEOUT)
    except subprocess.TimeoutExpired as exc:
        # A descendant that left the process group still holds the pipes.
        logger.warning("output pipes still open after kill, keeping partial output")
        for pipe in (proc.stdout, proc.stderr):
            if pipe is not None:
                pipe.close()
        proc.wait()
        return exc.output, exc.stderr


def _format_timeout(seconds: float) -> str:
    return f"{seconds:g} seconds"


class _Execution(NamedTuple):
    status: TaskStatus
    stdout: str = ""
    stderr: str = ""
    failure: str = ""
    timed_out: bool = False


class ShellRunner:
    """Runs one probe task at a time and reports a TaskResult.

    A runner holds no per-task state, so a single instance is shared by all
    scheduler workers.
    """

    def __init__(
        self,
        caps: CapabilityDescriptor,
        timeout: float = DEFAULT_TIMEOUT,
        which: Which = shutil.which,
    ):
        """Initialize the runner.

        Args:
            caps: Capability snapshot used for eligibility decisions.
            timeout: Per-task deadline in seconds.
            which: Executable lookup used for ``requires`` checks.
        """
        self.caps = caps
        self.timeout = timeout
        self.which = which

    def run(self, task: Task) -> TaskResult:
        eligible, reason = check_eligibility(task, self.caps, self.which)
        if not eligible:
            logger.debug("skipping %s: %s", task.name, reason)
            return self._result(task, TaskStatus.SKIPPED, skip_reason=reason)

        start = time.monotonic()
        execution = self._execute(task.command)
        duration = time.monotonic() - start

        output = truncate_output(execution.stdout, task.max_lines, task.max_bytes)
        error = truncate_output(execution.stderr, task.max_lines, task.max_bytes)
        # A timeout always reports itself; other failures only fill an empty stderr.
        if execution.failure and (execution.timed_out or not error):
            error = execution.failure
        logger.debug("%s finished: %s in %.3fs", task.name, execution.status.value, duration)
        return self._result(
            task,
            execution.status,
            output=output,
            error=error,
            duration=duration,
        )

    def _execute(self, command: str) -> _Execution:
        try:
            proc = psutil.Popen(
                ["sh", "-c", command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            return _Execution(TaskStatus.FAILED, failure=str(exc))

        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            stdout, stderr = _drain(proc)
            return _Execution(
                TaskStatus.FAILED,
                _decode(stdout),
                _decode(stderr),
                failure=f"Command timed out after {_format_timeout(self.timeout)}",
                timed_out=True,
            )

        if proc.returncode != 0:
            return _Execution(
                TaskStatus.FAILED,
                _decode(stdout),
                _decode(stderr),
                failure=f"exit status {proc.returncode}",
            )
        return _Execution(TaskStatus.SUCCESS, _decode(stdout), _decode(stderr))

    @staticmethod
    def _result(task: Task, status: TaskStatus, **fields: object) -> TaskResult:
        return TaskResult(
            task_id=task.task_id,
            name=task.name,
            command=task.command,
            category=task.category,
            status=status,
            **fields,
        )
