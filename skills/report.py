from __future__ import annotations

import string
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from schemas.capability_ir import CapabilityDescriptor
from schemas.result_ir import TaskResult, TaskStatus
from skills.tokenizer import TokenCounter, get_token_counter

DEFAULT_CATEGORY = "General"
INTRO_CATEGORY = "intro"

INTRO_PREAMBLE = (
    "# System Context\n\n"
    "Use this information to understand my environment when helping me.\n\n"
)


class ReportMode(str, Enum):
    FULL = "full"
    MINIFIED = "minified"
    INTRO = "intro"


@dataclass(frozen=True)
class RenderedReport:
    text: str
    token_count: int


def category_label(category: str) -> str:
    # Capitalize whitespace-separated words only, so "network_info" stays one word.
    return string.capwords(category or DEFAULT_CATEGORY)


def group_by_category(results: Sequence[TaskResult]) -> List[Tuple[str, List[TaskResult]]]:
    """Group results under capitalized category labels, sorted by label."""
    groups: Dict[str, List[TaskResult]] = {}
    for result in results:
        groups.setdefault(category_label(result.category), []).append(result)
    return sorted(groups.items())


def _fenced(body: str) -> str:
    return f"```\n{body}\n```\n"


class ReportRenderer:
    """Renders a result set as Full, Minified or Intro Markdown.

    Rendering is a pure function of the capability snapshot, the results,
    the generation time and the token counter.
    """

    def __init__(
        self,
        caps: CapabilityDescriptor,
        results: Sequence[TaskResult],
        generated: Optional[datetime] = None,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.caps = caps
        self.results = list(results)
        self.generated = generated or datetime.now().astimezone()
        self.token_counter = token_counter or get_token_counter()

    def render(self, mode: ReportMode) -> RenderedReport:
        if mode == ReportMode.MINIFIED:
            return self.minified()
        if mode == ReportMode.INTRO:
            return self.intro()
        return self.full()

    def full(self) -> RenderedReport:
        body = self._full_body()
        measured = self.token_counter.count(body)
        text = self._full_header(measured) + body
        return RenderedReport(text, self.token_counter.count(text))

    def minified(self) -> RenderedReport:
        parts = [
            "# SysProbe Report\n",
            f"Time:{self.generated.strftime('%Y-%m-%dT%H:%M')} Platform:{self.caps.distro_id}\n",
        ]
        for result in self.results:
            if result.status == TaskStatus.SUCCESS and result.output:
                parts.append(f"\n## {result.name}\n")
                parts.append(_fenced(result.output.strip()))
        return self._measured("".join(parts))

    def intro(self) -> RenderedReport:
        parts = [INTRO_PREAMBLE]
        for result in self.results:
            if result.category != INTRO_CATEGORY:
                continue
            if result.status == TaskStatus.SUCCESS and result.output:
                parts.append(f"## {result.name}\n")
                parts.append(_fenced(result.output.strip()))
                parts.append("\n")
        return self._measured("".join(parts))

    def _measured(self, text: str) -> RenderedReport:
        return RenderedReport(text, self.token_counter.count(text))

    def _full_header(self, token_count: int) -> str:
        return (
            "# SysProbe Diagnostic Report\n\n"
            f"Generated: {self.generated.isoformat(timespec='seconds')}\n"
            f"Platform: {self.caps.platform_label()}\n"
            f"Token Count: {token_count}\n"
        )

    def _full_body(self) -> str:
        parts: List[str] = []
        for label, results in group_by_category(self.results):
            parts.append(f"\n## {label}\n")
            for result in results:
                if result.status != TaskStatus.SUCCESS:
                    continue
                parts.append(f"\n### {result.name}\n")
                parts.append(_fenced(f"$ {result.command}\n{result.output or '[no output]'}"))
        parts.append(self._errors_section())
        return "".join(parts)

    def _errors_section(self) -> str:
        failed = [r for r in self.results if r.status == TaskStatus.FAILED]
        skipped = [r for r in self.results if r.status == TaskStatus.SKIPPED]
        if not failed and not skipped:
            return ""
        lines = ["\n## Errors & Skipped\n\n"]
        for result in failed:
            lines.append(f"- **{result.name}**: Failed ({result.error or 'Unknown error'})\n")
        for result in skipped:
            lines.append(f"- **{result.name}**: Skipped ({result.skip_reason or 'Unknown reason'})\n")
        return "".join(lines)
