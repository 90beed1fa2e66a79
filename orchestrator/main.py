from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence

from orchestrator.config import RunConfig, build_run_config, load_config_layers
from orchestrator.console import ConsoleUI, Theme
from orchestrator.errors import NoTasksError, ReportWriteError, SysprobeError
from orchestrator.events import EventChannel, ReportWritten
from orchestrator.loader import filter_by_category, load_tasks
from orchestrator.scheduler import run_indexed, run_streaming
from schemas.capability_ir import CapabilityDescriptor
from schemas.result_ir import TaskResult
from schemas.task_ir import Task
from skills.platform_probe import detect_capabilities
from skills.report import INTRO_CATEGORY, RenderedReport, ReportMode, ReportRenderer
from skills.shell_runner import ShellRunner

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sysprobe",
        description="Collect system diagnostics into an LLM-friendly Markdown report",
    )
    parser.add_argument("-o", "--output", default=None, help="Output file path for the report")
    parser.add_argument(
        "--no-ui",
        action="store_true",
        default=None,
        help="Plain progress output; results keep manifest order",
    )
    parser.add_argument(
        "--minified",
        action="store_true",
        help="Generate minified output for a smaller token count",
    )
    parser.add_argument(
        "--intro",
        action="store_true",
        help="Generate only the system intro for LLM chat context",
    )
    parser.add_argument("--workers", type=int, default=None, help="Number of concurrent workers (default: 4)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-task timeout in seconds (default: 30)")
    parser.add_argument("--probes-dir", default=None, help="Directory of probe manifests")
    parser.add_argument("--config", default=None, help="YAML config file (default: ./sysprobe.yaml if present)")
    parser.add_argument("--quiet", action="store_true", default=None, help="Suppress console progress output")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Verbose progress and debug logs")
    parser.add_argument("--version", action="version", version=f"sysprobe {__version__}")
    return parser


def resolve_config(args: argparse.Namespace) -> RunConfig:
    mode = None
    if args.intro:
        mode = ReportMode.INTRO
    elif args.minified:
        mode = ReportMode.MINIFIED
    file_cfg = load_config_layers(Path(args.config) if args.config else None)
    return build_run_config(
        file_cfg,
        {
            "output": args.output,
            "mode": mode,
            "workers": args.workers,
            "timeout": args.timeout,
            "probes_dir": args.probes_dir,
            "no_ui": args.no_ui,
            "quiet": args.quiet,
            "verbose": args.verbose,
        },
    )


def select_tasks(config: RunConfig, caps: CapabilityDescriptor) -> List[Task]:
    tasks = load_tasks(config.probes_dir, caps)
    if config.mode == ReportMode.INTRO:
        tasks = filter_by_category(tasks, INTRO_CATEGORY)
    if not tasks:
        raise NoTasksError("No tasks found for this platform")
    return tasks


def write_report(path: Path, report: RenderedReport) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.text, encoding="utf-8")
    except OSError as exc:
        raise ReportWriteError(path, str(exc)) from exc


def _render(config: RunConfig, caps: CapabilityDescriptor, results: Sequence[TaskResult]) -> RenderedReport:
    return ReportRenderer(caps, results).render(config.mode)


def run_plain(
    config: RunConfig,
    caps: CapabilityDescriptor,
    tasks: Sequence[Task],
    ui: ConsoleUI,
) -> ReportWritten:
    """Index-addressed run with one progress line per finished task."""
    runner = ShellRunner(caps, timeout=config.timeout)
    start = time.monotonic()
    results = run_indexed(tasks, runner, workers=config.workers, on_result=ui.task_done)
    ui.summary(results, time.monotonic() - start)
    report = _render(config, caps, results)
    path = config.output_path()
    write_report(path, report)
    ui.report_saved(str(path), report.token_count)
    return ReportWritten(path=str(path), token_count=report.token_count)


def run_with_events(
    config: RunConfig,
    caps: CapabilityDescriptor,
    tasks: Sequence[Task],
    ui: ConsoleUI,
) -> Optional[ReportWritten]:
    """Streaming run: workers and report writing in the background, display here."""
    runner = ShellRunner(caps, timeout=config.timeout)
    events = EventChannel(len(tasks))
    failures: List[Exception] = []

    def produce() -> None:
        try:
            results = run_streaming(tasks, runner, events, workers=config.workers)
            report = _render(config, caps, results)
            path = config.output_path()
            write_report(path, report)
            events.publish(ReportWritten(path=str(path), token_count=report.token_count))
        except Exception as exc:
            failures.append(exc)
        finally:
            events.close()

    producer = threading.Thread(target=produce, name="probe-scheduler", daemon=True)
    producer.start()
    written = ui.consume(events)
    producer.join()
    if failures:
        raise failures[0]
    return written


def run(
    config: RunConfig,
    ui: Optional[ConsoleUI] = None,
    caps: Optional[CapabilityDescriptor] = None,
) -> Optional[ReportWritten]:
    if caps is None:
        caps = detect_capabilities()
    logger.debug("capabilities: %s", caps)
    tasks = select_tasks(config, caps)
    if ui is None:
        theme = Theme() if sys.stdout.isatty() else Theme.plain()
        ui = ConsoleUI(enabled=not config.quiet, theme=theme, verbose=config.verbose)
    ui.header(caps, len(tasks), config.workers, config.mode.value)
    if config.no_ui:
        return run_plain(config, caps, tasks, ui)
    return run_with_events(config, caps, tasks, ui)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = resolve_config(args)
        configure_logging(config.verbose)
        run(config)
    except SysprobeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
