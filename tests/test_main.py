from pathlib import Path

import pytest

import skills.report
from orchestrator.main import main
from skills.tokenizer import TokenCounter

MANIFEST = """\
name: Demo
tasks:
  - name: Greeting
    command: echo hello
  - name: Broken
    command: echo nope >&2; exit 2
  - name: Needs tool
    command: tool --version
    requires: [definitely-nonexistent-binary-xyz]
"""

INTRO_MANIFEST = """\
tasks:
  - name: Kernel name
    command: echo Linux
"""


@pytest.fixture(autouse=True)
def _offline_tokenizer(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(skills.report, "get_token_counter", lambda: TokenCounter(None))
    monkeypatch.chdir(tmp_path)


def _probes(tmp_path: Path, **manifests: str) -> Path:
    probes = tmp_path / "probes"
    probes.mkdir()
    for name, text in manifests.items():
        (probes / f"{name}.yaml").write_text(text, encoding="utf-8")
    return probes


@pytest.mark.parametrize("extra", [["--no-ui"], []])
def test_full_report_is_written(tmp_path: Path, capsys, extra) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    out = tmp_path / "report.md"
    code = main(["--probes-dir", str(probes), "-o", str(out), "--workers", "2"] + extra)
    assert code == 0
    text = out.read_text(encoding="utf-8")
    assert "## Demo" in text
    assert "$ echo hello\nhello" in text
    assert "- **Broken**: Failed (nope)" in text
    assert "- **Needs tool**: Skipped (Missing dependency: definitely-nonexistent-binary-xyz)" in text
    stdout = capsys.readouterr().out
    assert f"Report saved to: {out}" in stdout
    assert "success=1, failed=1, skipped=1" in stdout


def test_minified_report(tmp_path: Path) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    out = tmp_path / "mini.md"
    assert main(["--probes-dir", str(probes), "-o", str(out), "--minified", "--quiet"]) == 0
    text = out.read_text(encoding="utf-8")
    assert text.startswith("# SysProbe Report\n")
    assert "## Greeting\n```\nhello\n```" in text
    assert "Broken" not in text


def test_intro_mode_runs_only_intro_tasks(tmp_path: Path) -> None:
    probes = _probes(tmp_path, demo=MANIFEST, intro=INTRO_MANIFEST)
    assert main(["--probes-dir", str(probes), "--intro", "--quiet", "--no-ui"]) == 0
    text = (tmp_path / "sysprobe-intro.md").read_text(encoding="utf-8")
    assert text.startswith("# System Context")
    assert "## Kernel name\n```\nLinux\n```" in text
    assert "Greeting" not in text


def test_intro_mode_without_intro_tasks_fails(tmp_path: Path, capsys) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    assert main(["--probes-dir", str(probes), "--intro", "--quiet"]) == 1
    assert "No tasks found" in capsys.readouterr().err


def test_malformed_manifest_aborts(tmp_path: Path, capsys) -> None:
    probes = _probes(tmp_path, demo=MANIFEST, broken="tasks: [\n")
    out = tmp_path / "report.md"
    assert main(["--probes-dir", str(probes), "-o", str(out), "--quiet"]) == 1
    assert "broken.yaml" in capsys.readouterr().err
    assert not out.exists()


@pytest.mark.parametrize("extra", [["--no-ui"], []])
def test_write_failure_is_fatal(tmp_path: Path, capsys, extra) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    out = blocker / "report.md"
    assert main(["--probes-dir", str(probes), "-o", str(out), "--quiet"] + extra) == 1
    assert "writing" in capsys.readouterr().err


def test_config_file_supplies_defaults(tmp_path: Path) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    (tmp_path / "sysprobe.yaml").write_text(
        f"probes_dir: {probes}\nmode: minified\noutput: from-config.md\nquiet: true\n",
        encoding="utf-8",
    )
    assert main([]) == 0
    assert (tmp_path / "from-config.md").read_text(encoding="utf-8").startswith("# SysProbe Report")


def test_invalid_workers_is_config_error(tmp_path: Path, capsys) -> None:
    probes = _probes(tmp_path, demo=MANIFEST)
    assert main(["--probes-dir", str(probes), "--workers", "0"]) == 1
    assert "invalid configuration" in capsys.readouterr().err
