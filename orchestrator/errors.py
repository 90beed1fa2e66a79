from __future__ import annotations

from pathlib import Path
from typing import Union


class SysprobeError(RuntimeError):
    """Base class for errors that abort a probe run."""


class ConfigError(SysprobeError):
    """Raised when the run configuration is invalid."""


class ManifestLoadError(SysprobeError):
    """Raised when a probe manifest cannot be read or parsed."""

    def __init__(self, path: Union[str, Path], detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"loading {self.path}: {detail}")


class NoTasksError(SysprobeError):
    """Raised when no probe task applies to the current platform."""


class ReportWriteError(SysprobeError):
    """Raised when the rendered report cannot be written."""

    def __init__(self, path: Union[str, Path], detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"writing {self.path}: {detail}")
