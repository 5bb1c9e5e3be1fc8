from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from phasegate import reports
from phasegate.state.journal import JsonlJournal
from phasegate.state.tracker import PhaseTracker

logger = logging.getLogger(__name__)

TRANSITIONS_FILE = "transitions.jsonl"
REPORT_FILE = "report.json"


def format_timestamp(epoch_seconds: float) -> str:
    stamp = datetime.fromtimestamp(epoch_seconds, UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def parse_timestamp(value: str) -> float | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    timestamp: str
    from_phase: str | None
    to_phase: str
    duration: int
    files_modified: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "from": self.from_phase,
            "to": self.to_phase,
            "duration": self.duration,
            "filesModified": list(self.files_modified),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TransitionRecord | None:
        to_phase = payload.get("to")
        if not isinstance(to_phase, str) or not to_phase:
            return None
        from_phase = payload.get("from")
        files = payload.get("filesModified") or []
        try:
            duration = int(payload.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0
        return cls(
            timestamp=str(payload.get("timestamp", "")),
            from_phase=from_phase if isinstance(from_phase, str) else None,
            to_phase=to_phase,
            duration=max(0, duration),
            files_modified=tuple(str(item) for item in files if isinstance(item, str)),
        )


class TransitionLogger:
    """Appends phase transitions to ``transitions.jsonl`` inside the workflow directory."""

    def __init__(self, workflow_dir: Path, tracker: PhaseTracker) -> None:
        self.workflow_dir = workflow_dir
        self.tracker = tracker
        self.journal = JsonlJournal(workflow_dir / TRANSITIONS_FILE)
        self.report_path = workflow_dir / REPORT_FILE

    @property
    def log_path(self) -> Path:
        return self.journal.path

    def log_transition(
        self,
        from_phase: str | None,
        to_phase: str,
        files: list[str] | None = None,
    ) -> TransitionRecord:
        record = TransitionRecord(
            timestamp=format_timestamp(self.tracker.now()),
            from_phase=from_phase,
            to_phase=to_phase,
            duration=self.tracker.elapsed_ms(),
            files_modified=tuple(files or ()),
        )
        self.journal.append(record.to_dict())
        logger.info(
            "Logged transition %s -> %s (%d ms, %d files)",
            from_phase or "start",
            to_phase,
            record.duration,
            len(record.files_modified),
        )
        return record

    def records(self) -> list[TransitionRecord]:
        parsed = (TransitionRecord.from_dict(payload) for payload in self.journal.read().records)
        return [record for record in parsed if record is not None]

    def last_transition(self) -> TransitionRecord | None:
        records = self.records()
        return records[-1] if records else None

    def generate_report(self) -> dict[str, Any] | None:
        return reports.generate_workflow_report(self.log_path, self.report_path)
