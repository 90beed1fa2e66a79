from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Dict, Mapping, Optional

from schemas.capability_ir import CapabilityDescriptor

OS_RELEASE_PATH = Path("/etc/os-release")

# Checked in order; the first non-empty variable names the desktop session.
_DESKTOP_ENV_VARS = ("XDG_CURRENT_DESKTOP", "XDG_SESSION_DESKTOP", "DESKTOP_SESSION")


def parse_os_release(text: str) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def _read_os_release(path: Path) -> Dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return {}
    return parse_os_release(text)


def detect_wm(env: Mapping[str, str]) -> str:
    for var in _DESKTOP_ENV_VARS:
        value = env.get(var, "")
        if value:
            return value.lower()
    if env.get("HYPRLAND_INSTANCE_SIGNATURE"):
        return "hyprland"
    if env.get("SWAYSOCK"):
        return "sway"
    return ""


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    return geteuid() == 0


def detect_capabilities(
    env: Optional[Mapping[str, str]] = None,
    os_release_path: Path = OS_RELEASE_PATH,
) -> CapabilityDescriptor:
    """Take a snapshot of the environment facts used for eligibility decisions."""
    env = os.environ if env is None else env
    release = _read_os_release(os_release_path)

    distro_id = release.get("ID", "")
    distro = distro_id or release.get("ID_LIKE", "")
    if distro_id:
        distro_id = distro_id.lower() + "_linux"

    return CapabilityDescriptor(
        os=platform.system().lower(),
        distro=distro.lower(),
        distro_id=distro_id,
        wm=detect_wm(env),
        is_root=_is_root(),
        is_wayland=bool(env.get("WAYLAND_DISPLAY")),
    )
