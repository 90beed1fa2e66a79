import re
from datetime import datetime, timezone

from schemas.capability_ir import CapabilityDescriptor
from schemas.result_ir import TaskResult, TaskStatus
from skills.report import (
    INTRO_PREAMBLE,
    ReportMode,
    ReportRenderer,
    category_label,
    group_by_category,
)
from skills.tokenizer import TokenCounter

GENERATED = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)


def _caps() -> CapabilityDescriptor:
    return CapabilityDescriptor(os="linux", distro="arch", distro_id="arch_linux", wm="hyprland")


def _ok(name: str, output: str = "", category: str = "system", command: str = "cmd") -> TaskResult:
    return TaskResult(name=name, command=command, category=category, status=TaskStatus.SUCCESS, output=output)


def _failed(name: str, error: str = "") -> TaskResult:
    return TaskResult(name=name, command="cmd", category="system", status=TaskStatus.FAILED, error=error)


def _skipped(name: str, reason: str) -> TaskResult:
    return TaskResult(name=name, command="cmd", category="system", status=TaskStatus.SKIPPED, skip_reason=reason)


def _renderer(results) -> ReportRenderer:
    return ReportRenderer(_caps(), results, generated=GENERATED, token_counter=TokenCounter(None))


def _headings(text: str, level: str = "##") -> list:
    return re.findall(rf"^{level} (.+)$", text, re.MULTILINE)


def test_full_report_end_to_end() -> None:
    results = [
        _ok("Kernel", "Linux 6.1", category="system", command="uname -r"),
        _skipped("Foo probe", "Missing dependency: foo"),
    ]
    report = _renderer(results).full()
    text = report.text
    assert text.startswith("# SysProbe Diagnostic Report\n")
    assert "Generated: 2024-05-01T12:30:00+00:00" in text
    assert "Platform: arch_linux (hyprland)" in text
    assert _headings(text) == ["System", "Errors & Skipped"]
    assert "### Kernel\n```\n$ uname -r\nLinux 6.1\n```\n" in text
    assert "- **Foo probe**: Skipped (Missing dependency: foo)" in text


def test_full_token_count_is_final_measurement() -> None:
    counter = TokenCounter(None)
    renderer = ReportRenderer(_caps(), [_ok("Kernel", "Linux 6.1")], generated=GENERATED, token_counter=counter)
    report = renderer.full()
    assert report.token_count == counter.count(report.text)
    match = re.search(r"^Token Count: (\d+)\n", report.text, re.MULTILINE)
    body = report.text[match.end():]
    assert int(match.group(1)) == counter.count(body)
    assert int(match.group(1)) < report.token_count


def test_full_render_is_deterministic() -> None:
    results = [_ok("a", "1"), _failed("b", "boom"), _skipped("c", "nope")]
    first = _renderer(results).full()
    second = _renderer(results).full()
    assert first == second


def test_categories_fold_case_and_sort() -> None:
    results = [
        _ok("eth0", "up", category="network"),
        _ok("wlan0", "down", category="Network"),
        _ok("lo", "up", category="NETWORK"),
        _ok("misc", "x", category=""),
        _ok("cpu", "x", category="hardware"),
    ]
    text = _renderer(results).full().text
    assert _headings(text) == ["General", "Hardware", "Network"]
    network = text.split("## Network\n", 1)[1]
    assert _headings(network, "###") == ["eth0", "wlan0", "lo"]


def test_category_labels_capitalize_whole_words() -> None:
    assert category_label("network_info") == "Network_info"
    assert category_label("it's DISK") == "It's Disk"
    assert category_label("") == "General"


def test_category_without_successes_keeps_its_heading() -> None:
    ping = TaskResult(name="ping", command="ping", category="network", status=TaskStatus.FAILED, error="unreachable")
    results = [_ok("cpu", "x", category="hardware"), ping]
    text = _renderer(results).full().text
    assert _headings(text) == ["Hardware", "Network", "Errors & Skipped"]
    network = text.split("## Network\n", 1)[1].split("## Errors", 1)[0]
    assert "###" not in network


def test_group_by_category_keeps_result_order() -> None:
    groups = group_by_category([_ok("b", category="x"), _ok("a", category="X")])
    assert [(label, [r.name for r in items]) for label, items in groups] == [("X", ["b", "a"])]


def test_full_lists_failures_before_skips_and_defaults() -> None:
    results = [
        _skipped("s1", "Requires elevated privileges (sudo)"),
        _failed("f1", ""),
        _failed("f2", "Command timed out after 30 seconds"),
    ]
    text = _renderer(results).full().text
    section = text.split("## Errors & Skipped\n", 1)[1]
    assert section.strip().splitlines() == [
        "- **f1**: Failed (Unknown error)",
        "- **f2**: Failed (Command timed out after 30 seconds)",
        "- **s1**: Skipped (Requires elevated privileges (sudo))",
    ]
    assert _headings(text) == ["System", "Errors & Skipped"]
    assert _headings(text, "###") == []


def test_full_marks_empty_output() -> None:
    text = _renderer([_ok("quiet", "", command="true")]).full().text
    assert "```\n$ true\n[no output]\n```" in text
    assert "Errors & Skipped" not in text


def test_minified_keeps_only_successful_output_in_order() -> None:
    results = [
        _ok("b", "second", category="z"),
        _ok("empty", ""),
        _failed("bad", "err"),
        _ok("a", "  first  ", category="a"),
    ]
    report = _renderer(results).minified()
    assert report.text.startswith("# SysProbe Report\nTime:2024-05-01T12:30 Platform:arch_linux\n")
    assert _headings(report.text) == ["b", "a"]
    assert "```\nfirst\n```" in report.text
    assert "Errors" not in report.text
    assert report.token_count == len(report.text) // 4


def test_intro_uses_only_intro_category() -> None:
    results = [
        _ok("OS", "Arch Linux", category="intro"),
        _ok("Kernel", "6.1", category="system"),
        _failed("CPU", "boom"),
        _ok("Shell", "/bin/zsh", category="intro"),
    ]
    report = _renderer(results).intro()
    assert report.text.startswith(INTRO_PREAMBLE)
    assert _headings(report.text) == ["OS", "Shell"]


def test_intro_without_intro_tasks_is_preamble_only() -> None:
    report = _renderer([_ok("Kernel", "6.1", category="system")]).intro()
    assert report.text == INTRO_PREAMBLE
    assert report.token_count == len(INTRO_PREAMBLE) // 4


def test_render_dispatches_on_mode() -> None:
    renderer = _renderer([_ok("Kernel", "6.1")])
    assert renderer.render(ReportMode.FULL) == renderer.full()
    assert renderer.render(ReportMode.MINIFIED) == renderer.minified()
    assert renderer.render(ReportMode.INTRO) == renderer.intro()


def test_estimate_counter_is_a_quarter_of_characters() -> None:
    counter = TokenCounter(None)
    assert not counter.exact
    assert counter.count("x" * 41) == 10
