from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import Field, ValidationError

from orchestrator.errors import ConfigError
from schemas.strict_base import StrictBaseModel
from skills.report import ReportMode
from skills.shell_runner import DEFAULT_TIMEOUT

DEFAULT_CONFIG_NAME = "sysprobe.yaml"
DEFAULT_OUTPUT = "sysprobe-report.md"
DEFAULT_INTRO_OUTPUT = "sysprobe-intro.md"
BUILTIN_PROBES_DIR = Path(__file__).resolve().parent.parent / "probes"


class RunConfig(StrictBaseModel):
    output: Optional[str] = None
    mode: ReportMode = ReportMode.FULL
    workers: int = Field(4, ge=1)
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    probes_dir: str = str(BUILTIN_PROBES_DIR)
    quiet: bool = False
    no_ui: bool = False
    verbose: bool = False

    def output_path(self) -> Path:
        if self.output:
            return Path(self.output)
        if self.mode == ReportMode.INTRO:
            return Path(DEFAULT_INTRO_OUTPUT)
        return Path(DEFAULT_OUTPUT)


def _deep_merge_dicts(base: dict, overlay: dict) -> dict:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _local_override_path(path: Path) -> Path:
    return path.with_name(f"{path.stem}.local{path.suffix}")


def _load_config_file(path: Path) -> dict:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"config {path} must be a mapping")
    return raw


def load_config_layers(path: Optional[Path]) -> dict:
    """Read the config file and its machine-local ``*.local.yaml`` override."""
    if path is None:
        candidate = Path(DEFAULT_CONFIG_NAME)
        if not candidate.exists():
            return {}
        path = candidate
    elif not path.exists():
        raise ConfigError(f"config file not found: {path}")

    cfg = _load_config_file(path)
    local_path = _local_override_path(path)
    if local_path.exists():
        cfg = _deep_merge_dicts(cfg, _load_config_file(local_path))
    return cfg


def build_run_config(file_cfg: dict, overrides: Dict[str, object]) -> RunConfig:
    """Merge file values with CLI overrides; ``None`` overrides are ignored."""
    merged = dict(file_cfg)
    merged.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return RunConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
