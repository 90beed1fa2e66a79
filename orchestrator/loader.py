from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import yaml
from pydantic import ValidationError

from orchestrator.errors import ManifestLoadError
from schemas.capability_ir import CapabilityDescriptor
from schemas.task_ir import Profile, Task

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml")

Sources = Union[str, Path, Sequence[Union[str, Path]]]


def load_yaml(path: Path) -> Dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ManifestLoadError(path, str(exc)) from exc
    except yaml.YAMLError as exc:
        raise ManifestLoadError(path, f"invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestLoadError(path, f"expected a mapping, got {type(data).__name__}")
    return data


def discover_manifests(sources: Sources) -> List[Path]:
    """Expand a directory (recursively, sorted) or keep an explicit path list."""
    if isinstance(sources, (str, Path)):
        root = Path(sources)
        if not root.is_dir():
            return [root]
        return sorted(
            (p for p in root.rglob("*") if p.is_file() and p.suffix in MANIFEST_SUFFIXES),
            key=lambda p: p.relative_to(root).as_posix(),
        )
    return [Path(p) for p in sources]


def load_profile(path: Path) -> Profile:
    data = load_yaml(path)
    try:
        profile = Profile.model_validate(data)
    except ValidationError as exc:
        raise ManifestLoadError(path, _summarize(exc)) from exc

    # Tasks without a category are grouped under the manifest's stem.
    category = path.stem
    tasks = [
        task if task.category else task.model_copy(update={"category": category})
        for task in profile.tasks
    ]
    return profile.model_copy(update={"tasks": tasks})


def load_profiles(sources: Sources) -> List[Tuple[Path, Profile]]:
    return [(path, load_profile(path)) for path in discover_manifests(sources)]


def matches_platform(profile: Profile, caps: CapabilityDescriptor) -> bool:
    if not profile.platform:
        return True
    wanted = profile.platform.lower()
    current = caps.distro_id.lower()
    if wanted == current:
        return True
    # Coarse family match, e.g. "arch" against "arch_linux".
    if current and wanted in current:
        return True
    return bool(caps.os) and wanted == caps.os.lower()


def load_tasks(sources: Sources, caps: CapabilityDescriptor) -> List[Task]:
    """Load every manifest, keep the platform-applicable ones, number their tasks.

    Every manifest is parsed before any task is returned, so one malformed
    file aborts the whole load.
    """
    profiles = load_profiles(sources)
    tasks: List[Task] = []
    for path, profile in profiles:
        if not matches_platform(profile, caps):
            logger.debug("skipping manifest %s (platform %s)", path, profile.platform)
            continue
        for task in profile.tasks:
            tasks.append(task.model_copy(update={"task_id": len(tasks)}))
    logger.debug("loaded %d tasks from %d manifests", len(tasks), len(profiles))
    return tasks


def filter_by_category(tasks: Iterable[Task], category: str) -> List[Task]:
    return [task for task in tasks if task.category == category]


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)
