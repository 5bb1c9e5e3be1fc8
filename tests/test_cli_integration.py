import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from phasegate.cli import cli
from phasegate.config import load_config, save_config
from phasegate.log import LOGGER_NAME

FLAG_VARIABLES = (
    "ENABLE_WORKFLOW_TRACKER",
    "ENABLE_QUALITY_GATE",
    "QUALITY_GATE_STRICT",
    "QUALITY_GATE_COVERAGE_THRESHOLD",
    "QUALITY_GATE_PROBE_TIMEOUT",
)


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    for name in FLAG_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    logging.getLogger(LOGGER_NAME).handlers.clear()


def _invoke(*args: str) -> Result:
    return CliRunner().invoke(cli, list(args), catch_exceptions=False)


def _disable_probes(config_path: Path) -> None:
    config = load_config(config_path, environ={})
    config.probes.type_check_command = ""
    config.probes.lint_command = ""
    config.probes.test_command = ""
    config.probes.audit_command = ""
    save_config(config_path, config)


def test_init_writes_config_and_workflow_dir(project: Path) -> None:
    result = _invoke("init", "--strict", "--coverage-threshold", "70")

    assert result.exit_code == 0, result.output
    assert "Gate mode: strict" in result.output
    config = load_config(project / "phasegate.toml", environ={})
    assert config.gates.strict is True
    assert config.gates.coverage_threshold == 70
    assert (project / ".workflow").is_dir()


def test_phase_sequence_resumes_across_invocations(project: Path) -> None:
    assert _invoke("init").exit_code == 0

    first = _invoke("phase", "design")
    (project / "billing.design.md").write_text("# Billing\n", encoding="utf-8")
    second = _invoke("phase", "implement", "--file", "billing.design.md")

    assert first.output.strip() == "Transitioned to design phase"
    assert second.output.strip() == "Transitioned to implement phase from design"
    lines = (project / ".workflow" / "transitions.jsonl").read_text(encoding="utf-8")
    entries = [json.loads(line) for line in lines.splitlines()]
    assert [entry["to"] for entry in entries] == ["design", "implement"]
    assert entries[1]["filesModified"] == ["billing.design.md"]

    status = json.loads(_invoke("status").output)
    assert status["phase"] == "implement"


def test_phase_warns_on_failing_gate_in_warning_mode(project: Path) -> None:
    assert _invoke("init", "--warning").exit_code == 0
    _invoke("phase", "design")

    result = CliRunner().invoke(cli, ["phase", "implement"])

    assert result.exit_code == 0
    assert "Quality Gate Warning: No design files found" in result.output
    assert "Transitioned to implement phase from design" in result.output


def test_phase_blocked_in_strict_mode(project: Path) -> None:
    assert _invoke("init", "--strict").exit_code == 0
    _invoke("phase", "design")

    result = CliRunner().invoke(cli, ["phase", "implement"])

    assert result.exit_code == 1
    assert "Quality gate failed: No design files found" in result.output
    status = json.loads(_invoke("status").output)
    assert status["phase"] == "design"


def test_strict_flag_from_environment(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    assert _invoke("init", "--warning").exit_code == 0
    _invoke("phase", "design")
    monkeypatch.setenv("QUALITY_GATE_STRICT", "true")

    result = CliRunner().invoke(cli, ["phase", "implement"])

    assert result.exit_code == 1
    assert "blocked" in result.output


def test_invalid_phase_is_a_usage_error(project: Path) -> None:
    result = CliRunner().invoke(cli, ["phase", "deploy"])

    assert result.exit_code == 1
    assert "Invalid phase: deploy" in result.output


def test_gate_command_reports_json_and_exit_code(project: Path) -> None:
    assert _invoke("init").exit_code == 0
    _disable_probes(project / "phasegate.toml")
    (project / "coverage").mkdir()
    (project / "coverage" / "coverage-summary.json").write_text(
        json.dumps({"total": {"lines": {"pct": 72}}}), encoding="utf-8"
    )

    result = CliRunner().invoke(cli, ["gate", "test->review", "--json", "--exit-code"])

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["passed"] is False
    assert payload["transition"] == "test→review"
    assert payload["message"].startswith("Coverage below threshold:")


def test_gate_command_text_output_for_ungated_transition(project: Path) -> None:
    result = _invoke("gate", "plan→design")

    assert result.exit_code == 0
    assert "PASSED plan→design: No quality gate defined for transition: plan→design" in (
        result.output
    )


def test_reports_without_data(project: Path) -> None:
    assert _invoke("report").output.strip() == "No workflow data available yet."
    assert _invoke("quality-report").output.strip() == "No quality gate data available yet."


def test_idle_and_end_close_the_session(project: Path) -> None:
    assert _invoke("init").exit_code == 0
    _disable_probes(project / "phasegate.toml")
    _invoke("phase", "review")

    idle = _invoke("idle", "--file", "CHANGELOG.md")
    end = _invoke("end")

    assert "Checkpoint logged for review: 1 file(s)" in idle.output
    assert "Next gate review→release" in idle.output
    assert "Session closed in review phase." in end.output
    assert "Workflow report: 3 transition(s)" in end.output
    report = json.loads((project / ".workflow" / "report.json").read_text(encoding="utf-8"))
    assert report["phases"]["complete"]["count"] == 1
    assert json.loads(_invoke("status").output)["phase"] == "none"


def test_suggest_and_phases_commands(project: Path) -> None:
    suggestion = _invoke("suggest", "src/app.tsx")
    missing = _invoke("suggest", "notes.txt")
    phases = _invoke("phases")

    assert "implement→test" in suggestion.output
    assert missing.output.strip() == "No gate suggestion for notes.txt."
    assert phases.output.split() == [
        "plan",
        "design",
        "implement",
        "test",
        "review",
        "release",
        "operate",
    ]


def test_invalid_config_surfaces_as_click_error(project: Path) -> None:
    (project / "phasegate.toml").write_text("[gates]\ncoverage_threshold = 150\n", "utf-8")

    result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 1
    assert "coverage_threshold must be between 0 and 100" in result.output
