from __future__ import annotations

import shutil
from typing import Callable, Iterable, Optional, Tuple

from schemas.capability_ir import CapabilityDescriptor
from schemas.task_ir import Task

Which = Callable[[str], Optional[str]]


def _matches_tag(caps: CapabilityDescriptor, tag: str) -> bool:
    tag = tag.lower()
    wm = caps.wm.lower()
    if tag == "wayland":
        return caps.is_wayland
    if tag == "x11":
        return not caps.is_wayland and bool(wm)
    if tag in ("hyprland", "sway", "gnome"):
        return tag in wm
    if tag in ("kde", "plasma"):
        return "kde" in wm or "plasma" in wm
    return tag in caps.distro.lower() or tag in wm


def matches_tags(caps: CapabilityDescriptor, tags: Iterable[str]) -> bool:
    tags = list(tags)
    if not tags:
        return True
    return any(_matches_tag(caps, tag) for tag in tags)


def check_eligibility(
    task: Task,
    caps: CapabilityDescriptor,
    which: Which = shutil.which,
) -> Tuple[bool, str]:
    """Decide whether a task can run here.

    Checks privilege, then binary dependencies, then environment tags; the
    first failing check wins and its reason is returned.
    """
    if task.privilege == "sudo" and not caps.is_root:
        return False, "Requires elevated privileges (sudo)"

    for binary in task.requires:
        if not which(binary):
            return False, f"Missing dependency: {binary}"

    if task.tags and not matches_tags(caps, task.tags):
        return False, "Environment mismatch: requires " + " or ".join(task.tags)

    return True, ""
