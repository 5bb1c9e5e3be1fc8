from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from phasegate.config import PhaseGateConfig
from phasegate.events import (
    CHECKPOINT_LOGGED,
    GATE_REMINDER,
    GATE_SUGGESTION,
    PHASE_TRANSITIONED,
    REPORT_GENERATED,
    EventBus,
    WorkflowEvent,
)
from phasegate.gates import GateResult, QualityGateEvaluator
from phasegate.notifier import suggest_gate_check
from phasegate.phases import (
    NEXT_PHASE,
    SESSION_COMPLETE,
    coerce_phase,
    parse_phase,
    transition_key,
)
from phasegate.probes import CommandRunner, SubprocessRunner
from phasegate.state import PhaseTracker, TransitionLogger, TransitionRecord
from phasegate.state.transitions import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IdleOutcome:
    checkpoint: TransitionRecord | None = None
    reminder: GateResult | None = None


@dataclass(slots=True)
class SessionSummary:
    final_transition: TransitionRecord | None
    workflow_report: dict[str, Any] | None
    quality_report: dict[str, Any] | None


class WorkflowSession:
    """One project's phase tracking, gating and reporting.

    ``track_phase`` and ``check_quality_gate`` are the operations exposed to
    the assistant; ``record_file_modification``, ``on_idle`` and
    ``on_session_end`` are driven by host events.
    """

    def __init__(
        self,
        project_root: Path,
        config: PhaseGateConfig,
        *,
        runner: CommandRunner | None = None,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.project_root = project_root.resolve()
        self.config = config
        self.workflow_dir = self.project_root / config.tracker.workflow_dir
        self.events = events or EventBus()
        self.tracker = PhaseTracker(clock)
        self.transitions = TransitionLogger(self.workflow_dir, self.tracker)
        self.gates = QualityGateEvaluator(
            self.project_root,
            self.workflow_dir,
            config.gates,
            config.probes,
            runner or SubprocessRunner(),
            events=self.events,
            clock=clock,
        )

    def resume(self) -> str | None:
        """Restore the current phase from the last logged transition.

        The phase start time comes from the record that entered the phase;
        idle checkpoints (``phase→phase``) after it do not restart the clock.
        """
        records = self.transitions.records()
        if not records or records[-1].to_phase == SESSION_COMPLETE:
            return None
        record = records[-1]
        entered = next(
            (item for item in reversed(records) if item.from_phase != item.to_phase), record
        )
        started_at = parse_timestamp(entered.timestamp)
        if started_at is None:
            started_at = self.tracker.now()
        self.tracker.restore(record.to_phase, started_at)
        logger.debug("Resumed phase %s from %s", record.to_phase, self.transitions.log_path)
        return record.to_phase

    def track_phase(self, phase: str) -> str:
        target = parse_phase(phase)
        previous = self.tracker.current_phase

        if self.config.gates.enabled and previous is not None:
            result = self.gates.check(transition_key(previous, target))
            self.gates.enforce(result)

        if self.config.tracker.enabled:
            self.transitions.log_transition(
                previous, target.value, self.tracker.get_modified_files()
            )
        self.tracker.set_phase(target.value)
        self.tracker.clear_modified_files()

        message = f"Transitioned to {target.value} phase"
        if previous:
            message += f" from {previous}"
        self.events.emit(
            WorkflowEvent(
                kind=PHASE_TRANSITIONED,
                message=message,
                level="success",
                data={"from": previous, "to": target.value},
            )
        )
        return message

    def check_quality_gate(self, transition: str) -> GateResult:
        return self.gates.check(transition)

    def record_file_modification(self, path: str) -> str | None:
        self.tracker.add_modified_file(path)
        suggestion = suggest_gate_check(path)
        if suggestion:
            self.events.emit(
                WorkflowEvent(
                    kind=GATE_SUGGESTION, message=suggestion, data={"path": path}
                )
            )
        return suggestion

    def on_idle(self) -> IdleOutcome:
        outcome = IdleOutcome()
        phase = self.tracker.current_phase
        if phase is None:
            return outcome

        files = self.tracker.get_modified_files()
        if self.config.tracker.enabled and files:
            outcome.checkpoint = self.transitions.log_transition(phase, phase, files)
            self.tracker.clear_modified_files()
            self.events.emit(
                WorkflowEvent(
                    kind=CHECKPOINT_LOGGED,
                    message=f"Checkpoint in {phase} phase: {len(files)} file(s) modified",
                    data={"phase": phase, "files": files},
                )
            )

        gates = self.config.gates
        if gates.enabled and gates.idle_reminder and not gates.strict:
            current = coerce_phase(phase)
            upcoming = NEXT_PHASE.get(current) if current is not None else None
            if upcoming is not None:
                result = self.gates.evaluate(transition_key(current, upcoming))
                outcome.reminder = result
                if not result.passed:
                    self.events.emit(
                        WorkflowEvent(
                            kind=GATE_REMINDER,
                            message=f"Quality gate reminder: {result.message}",
                            data={"transition": result.transition},
                        )
                    )
        return outcome

    def on_session_end(self) -> SessionSummary:
        final: TransitionRecord | None = None
        workflow_report: dict[str, Any] | None = None
        quality_report: dict[str, Any] | None = None

        if self.config.tracker.enabled:
            phase = self.tracker.current_phase
            if phase is not None:
                final = self.transitions.log_transition(
                    phase, SESSION_COMPLETE, self.tracker.get_modified_files()
                )
                self.tracker.clear_modified_files()
            workflow_report = self.transitions.generate_report()
        if self.config.gates.enabled:
            quality_report = self.gates.generate_quality_report()

        self.events.emit(
            WorkflowEvent(
                kind=REPORT_GENERATED,
                message="Workflow reports regenerated",
                data={
                    "workflow_report": workflow_report is not None,
                    "quality_report": quality_report is not None,
                },
            )
        )
        return SessionSummary(final, workflow_report, quality_report)

    def status(self) -> dict[str, Any]:
        last = self.transitions.last_transition()
        return {
            "phase": self.tracker.get_phase(),
            "modified_files": self.tracker.get_modified_files(),
            "tracking_enabled": self.config.tracker.enabled,
            "gates_enabled": self.config.gates.enabled,
            "mode": self.config.gates.mode,
            "coverage_threshold": self.config.gates.coverage_threshold,
            "workflow_dir": str(self.workflow_dir),
            "last_transition": last.to_dict() if last else None,
        }
