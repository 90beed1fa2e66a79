from __future__ import annotations

from schemas.strict_base import FrozenModel


class CapabilityDescriptor(FrozenModel):
    os: str = ""  # "linux", "darwin", ...
    distro: str = ""  # "arch", "ubuntu", ...
    distro_id: str = ""  # "arch_linux"
    wm: str = ""  # "hyprland", "gnome", ...
    is_root: bool = False
    is_wayland: bool = False

    def platform_label(self) -> str:
        label = self.distro_id or self.os or "unknown"
        if self.wm:
            label += f" ({self.wm})"
        return label
