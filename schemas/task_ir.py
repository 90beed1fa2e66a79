from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import Field

from schemas.strict_base import FrozenModel


class Task(FrozenModel):
    name: str = Field(..., min_length=1)
    command: str = Field(..., min_length=1)
    privilege: Literal["", "sudo"] = ""
    max_lines: int = Field(0, ge=0)
    max_bytes: int = Field(0, ge=0)
    requires: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    category: str = ""
    # Assigned by the loader in canonical load order; used for correlation.
    task_id: int = -1


class Profile(FrozenModel):
    name: str = ""
    description: str = ""
    platform: Optional[str] = None
    tasks: List[Task] = Field(default_factory=list)
