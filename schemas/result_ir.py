from __future__ import annotations

from enum import Enum

from pydantic import model_validator

from schemas.strict_base import FrozenModel


class TaskStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCESS = "Success"
    SKIPPED = "Skipped"
    FAILED = "Failed"


class TaskResult(FrozenModel):
    task_id: int = -1
    name: str
    command: str = ""
    category: str = ""
    status: TaskStatus
    output: str = ""
    error: str = ""
    duration: float = 0.0
    skip_reason: str = ""

    @model_validator(mode="after")
    def _validate_skip_reason(self) -> "TaskResult":
        if self.status == TaskStatus.SKIPPED and not self.skip_reason:
            raise ValueError("skipped results must carry a skip_reason")
        if self.status != TaskStatus.SKIPPED and self.skip_reason:
            raise ValueError("skip_reason is only valid for skipped results")
        return self
