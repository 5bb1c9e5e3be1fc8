"""Quality gates evaluated before SDLC phase transitions.

Four transitions carry a validation recipe; every other transition is
approved with an informational message. A recipe is an ordered list of steps
and the first step that fails, or cannot run, decides the gate. Step results
keep "condition not met" (``failed``) apart from "check could not run"
(``error``); both fail the gate.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from phasegate import reports
from phasegate.config import GateMode, GatesConfig, ProbesConfig
from phasegate.errors import GateBlockedError, ProbeExecutionError, ProbeTimeoutError
from phasegate.events import (
    GATE_BLOCKED,
    GATE_EVALUATED,
    GATE_WARNING,
    EventBus,
    WorkflowEvent,
)
from phasegate.phases import Phase, coerce_phase, split_transition, transition_key
from phasegate.probes import CommandRunner
from phasegate.state.journal import JsonlJournal
from phasegate.state.transitions import format_timestamp

logger = logging.getLogger(__name__)

GATE_LOG_FILE = "quality-gates.jsonl"
QUALITY_REPORT_FILE = "quality-report.json"
IGNORED_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", ".tox"}

StepStatus = Literal["passed", "failed", "skipped", "error"]


@dataclass(frozen=True, slots=True)
class StepOutcome:
    name: str
    status: StepStatus
    message: str
    timed_out: bool = False

    @property
    def blocking(self) -> bool:
        return self.status in ("failed", "error")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "timed_out": self.timed_out,
        }


@dataclass(frozen=True, slots=True)
class GateResult:
    passed: bool
    message: str
    transition: str
    timestamp: str
    steps: tuple[StepOutcome, ...] = ()
    gate_defined: bool = True

    @property
    def failed_step(self) -> StepOutcome | None:
        for step in self.steps:
            if step.blocking:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "message": self.message,
            "transition": self.transition,
            "timestamp": self.timestamp,
            "gate_defined": self.gate_defined,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass(frozen=True, slots=True)
class GateCheckLog:
    transition: str
    passed: bool
    message: str
    timestamp: str
    mode: GateMode
    blocked: bool

    @classmethod
    def from_result(cls, result: GateResult, mode: GateMode) -> GateCheckLog:
        return cls(
            transition=result.transition,
            passed=result.passed,
            message=result.message,
            timestamp=result.timestamp,
            mode=mode,
            blocked=not result.passed and mode == "strict",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transition": self.transition,
            "passed": self.passed,
            "message": self.message,
            "timestamp": self.timestamp,
            "mode": self.mode,
            "blocked": self.blocked,
        }


@dataclass(frozen=True, slots=True)
class GateDefinition:
    source: Phase
    target: Phase
    steps: tuple[str, ...]
    success_message: str

    @property
    def key(self) -> str:
        return transition_key(self.source, self.target)


GATES: dict[tuple[Phase, Phase], GateDefinition] = {
    (definition.source, definition.target): definition
    for definition in (
        GateDefinition(
            Phase.DESIGN,
            Phase.IMPLEMENT,
            steps=("design_artifacts",),
            success_message="Design files present",
        ),
        GateDefinition(
            Phase.IMPLEMENT,
            Phase.TEST,
            steps=("type_check", "lint"),
            success_message="Code compiles and passes linting",
        ),
        GateDefinition(
            Phase.TEST,
            Phase.REVIEW,
            steps=("tests", "coverage"),
            success_message="Tests pass with sufficient coverage",
        ),
        GateDefinition(
            Phase.REVIEW,
            Phase.RELEASE,
            steps=("audit", "changelog"),
            success_message="Security clean and documentation updated",
        ),
    )
}


def gate_for(source: str | Phase, target: str | Phase) -> GateDefinition | None:
    source_phase = coerce_phase(source)
    target_phase = coerce_phase(target)
    if source_phase is None or target_phase is None:
        return None
    return GATES.get((source_phase, target_phase))


def coverage_percent(payload: Any) -> float | None:
    """Extract a line-coverage percentage from common JSON coverage summaries."""
    if not isinstance(payload, dict):
        return None
    candidates: list[Any] = []
    total = payload.get("total")
    if isinstance(total, dict) and isinstance(total.get("lines"), dict):
        # istanbul / nyc coverage-summary.json
        candidates.append(total["lines"].get("pct"))
    totals = payload.get("totals")
    if isinstance(totals, dict):
        # coverage.py json report
        candidates.append(totals.get("percent_covered"))
    candidates.append(payload.get("coverage_percent"))
    for value in candidates:
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
    return None


def _format_percent(value: float) -> str:
    return f"{value:g}%"


class QualityGateEvaluator:
    def __init__(
        self,
        project_root: Path,
        workflow_dir: Path,
        gates_config: GatesConfig,
        probes_config: ProbesConfig,
        runner: CommandRunner,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.project_root = project_root.resolve()
        self.workflow_dir = workflow_dir
        self.gates_config = gates_config
        self.probes = probes_config
        self.runner = runner
        self.events = events or EventBus()
        self._clock = clock
        self.journal = JsonlJournal(workflow_dir / GATE_LOG_FILE)
        self.report_path = workflow_dir / QUALITY_REPORT_FILE
        self._steps: dict[str, Callable[[], StepOutcome]] = {
            "design_artifacts": self._check_design_artifacts,
            "type_check": self._check_type_check,
            "lint": self._check_lint,
            "tests": self._check_tests,
            "coverage": self._check_coverage,
            "audit": self._check_audit,
            "changelog": self._check_changelog,
        }
        for definition in GATES.values():
            for step in definition.steps:
                if step not in self._steps:
                    raise KeyError(f"Gate {definition.key} uses unknown step '{step}'")

    @property
    def mode(self) -> GateMode:
        return self.gates_config.mode

    @property
    def gate_log_path(self) -> Path:
        return self.journal.path

    def _timestamp(self) -> str:
        return format_timestamp(self._clock())

    def evaluate(self, transition: str) -> GateResult:
        source, target = split_transition(transition)
        key = transition_key(source, target)
        definition = gate_for(source, target)
        if definition is None:
            return GateResult(
                passed=True,
                message=f"No quality gate defined for transition: {key}",
                transition=key,
                timestamp=self._timestamp(),
                gate_defined=False,
            )

        outcomes: list[StepOutcome] = []
        for step_name in definition.steps:
            outcome = self._steps[step_name]()
            logger.debug("Gate %s step %s: %s", key, step_name, outcome.status)
            outcomes.append(outcome)
            if outcome.blocking:
                return GateResult(
                    passed=False,
                    message=outcome.message,
                    transition=key,
                    timestamp=self._timestamp(),
                    steps=tuple(outcomes),
                )
        return GateResult(
            passed=True,
            message=definition.success_message,
            transition=key,
            timestamp=self._timestamp(),
            steps=tuple(outcomes),
        )

    def check(self, transition: str) -> GateResult:
        """Evaluate a gate and append the outcome to the gate-check log."""
        result = self.evaluate(transition)
        entry = GateCheckLog.from_result(result, self.mode)
        self.journal.append(entry.to_dict())
        logger.info(
            "Gate %s %s (%s mode)",
            result.transition,
            "passed" if result.passed else "failed",
            entry.mode,
        )
        self.events.emit(
            WorkflowEvent(
                kind=GATE_EVALUATED,
                message=result.message,
                level="success" if result.passed else "info",
                data=entry.to_dict(),
            )
        )
        return result

    def enforce(self, result: GateResult) -> None:
        """Raise ``GateBlockedError`` for a failed gate in strict mode; warn otherwise."""
        if result.passed:
            return
        if self.mode == "strict":
            self.events.emit(
                WorkflowEvent(
                    kind=GATE_BLOCKED,
                    message=f"Quality gate blocked {result.transition}: {result.message}",
                    level="error",
                    data={"transition": result.transition},
                )
            )
            raise GateBlockedError(
                f"Quality gate failed: {result.message}\n\n"
                f"Transition {result.transition} blocked. Fix the issues and try again.",
                transition=result.transition,
                check_message=result.message,
            )
        self.events.emit(
            WorkflowEvent(
                kind=GATE_WARNING,
                message=f"Quality Gate Warning: {result.message}",
                level="warning",
                data={"transition": result.transition},
            )
        )

    def generate_quality_report(self) -> dict[str, Any] | None:
        return reports.generate_quality_report(self.gate_log_path, self.report_path)

    def _marker_present(self, marker: str) -> bool:
        if "#" in marker:
            file_part, _, key_path = marker.partition("#")
            target = self.project_root / file_part
            if not target.is_file():
                return False
            try:
                node: Any = json.loads(target.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                return False
            for key in key_path.split("."):
                if not isinstance(node, dict) or key not in node:
                    return False
                node = node[key]
            return True
        return any(True for _ in self.project_root.glob(marker))

    def _configured(self, command: str, markers: list[str]) -> tuple[bool, str]:
        if not command.strip():
            return False, "no command configured"
        if not markers:
            return True, ""
        if any(self._marker_present(marker) for marker in markers):
            return True, ""
        return False, f"none of {', '.join(markers)} found"

    def _run_command_step(
        self,
        name: str,
        label: str,
        command: str,
        markers: list[str],
        failure_hint: str,
    ) -> StepOutcome:
        configured, reason = self._configured(command, markers)
        if not configured:
            return StepOutcome(name, "skipped", f"{label} skipped: {reason}")

        timeout = float(self.gates_config.probe_timeout_seconds)
        try:
            result = self.runner.run(command, cwd=self.project_root, timeout=timeout)
        except ProbeTimeoutError as exc:
            return StepOutcome(
                name,
                "error",
                f"{label} timed out: `{command}` {exc}",
                timed_out=True,
            )
        except ProbeExecutionError as exc:
            return StepOutcome(name, "error", f"{label} could not run: `{command}` {exc}")

        if not result.ok:
            message = f"{label} failed: {failure_hint} (exit {result.exit_code})"
            output = result.tail()
            if output:
                message = f"{message}\n{output}"
            return StepOutcome(name, "failed", message)
        return StepOutcome(name, "passed", f"{label} passed")

    def _find_design_artifact(self, patterns: list[str]) -> Path | None:
        workflow_dir = self.workflow_dir.resolve()

        def _on_error(error: OSError) -> None:
            if Path(error.filename or "") == self.project_root:
                raise error
            logger.warning("Skipping unreadable directory during design check: %s", error)

        for current, dirnames, filenames in os.walk(self.project_root, onerror=_on_error):
            dirnames[:] = sorted(
                item
                for item in dirnames
                if item not in IGNORED_DIRS and Path(current, item).resolve() != workflow_dir
            )
            for filename in sorted(filenames):
                if any(fnmatch.fnmatch(filename, pattern) for pattern in patterns):
                    return Path(current, filename).relative_to(self.project_root)
        return None

    def _check_design_artifacts(self) -> StepOutcome:
        patterns = list(self.probes.design_patterns)
        try:
            found = self._find_design_artifact(patterns)
        except OSError as exc:
            return StepOutcome("design_artifacts", "error", f"Design check could not run: {exc}")
        if found is not None:
            return StepOutcome("design_artifacts", "passed", f"Design files present: {found}")
        return StepOutcome(
            "design_artifacts",
            "failed",
            f"No design files found: expected {', '.join(patterns)}. "
            "Create design specifications before implementing.",
        )

    def _check_type_check(self) -> StepOutcome:
        return self._run_command_step(
            "type_check",
            "Type check",
            self.probes.type_check_command,
            list(self.probes.type_check_markers),
            "fix type errors before testing",
        )

    def _check_lint(self) -> StepOutcome:
        return self._run_command_step(
            "lint",
            "Lint",
            self.probes.lint_command,
            list(self.probes.lint_markers),
            "fix linting errors before testing",
        )

    def _check_tests(self) -> StepOutcome:
        return self._run_command_step(
            "tests",
            "Tests",
            self.probes.test_command,
            list(self.probes.test_markers),
            "fix failing tests before review",
        )

    def _check_coverage(self) -> StepOutcome:
        if not self.probes.coverage_file.strip():
            return StepOutcome(
                "coverage", "skipped", "Coverage skipped: no coverage file configured"
            )
        path = self.project_root / self.probes.coverage_file
        if not path.is_file():
            return StepOutcome("coverage", "skipped", f"Coverage skipped: {path.name} not present")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            return StepOutcome(
                "coverage",
                "error",
                f"Coverage report unreadable: {self.probes.coverage_file} ({exc})",
            )
        percent = coverage_percent(payload)
        if percent is None:
            return StepOutcome(
                "coverage",
                "error",
                f"Coverage report unreadable: no line coverage in {self.probes.coverage_file}",
            )
        threshold = self.gates_config.coverage_threshold
        if percent < threshold:
            return StepOutcome(
                "coverage",
                "failed",
                f"Coverage below threshold: {_format_percent(percent)} is under the required "
                f"{threshold}%. Raise coverage before review.",
            )
        return StepOutcome(
            "coverage", "passed", f"Coverage {_format_percent(percent)} meets {threshold}%"
        )

    def _check_audit(self) -> StepOutcome:
        command = self.probes.audit_command
        if not command.strip():
            return StepOutcome(
                "audit", "error", "Security audit could not run: no audit command configured"
            )
        return self._run_command_step(
            "audit",
            "Security audit",
            command,
            [],
            f"high or critical vulnerabilities reported by `{command}`",
        )

    def _check_changelog(self) -> StepOutcome:
        name = self.probes.changelog_file
        if (self.project_root / name).is_file():
            return StepOutcome("changelog", "passed", f"{name} present")
        return StepOutcome(
            "changelog",
            "failed",
            f"Changelog missing: {name} not found. Update changelog before release.",
        )
