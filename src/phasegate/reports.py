"""Aggregate reports folded from the transition and gate-check journals.

Reports are projections: they are rebuilt from the full journal on every call
and overwrite the previous report file. They carry no generation timestamp so
that folding an unchanged journal twice produces identical bytes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from phasegate.state.journal import JsonlJournal, write_json_atomic

logger = logging.getLogger(__name__)


def failure_category(message: str) -> str:
    return str(message).split(":", 1)[0].strip()


def _as_duration(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def fold_transitions(records: list[dict[str, Any]], skipped: int = 0) -> dict[str, Any]:
    phases: dict[str, dict[str, int]] = {}
    files_changed: dict[str, None] = {}
    total = 0
    for record in records:
        target = record.get("to")
        if not isinstance(target, str) or not target:
            skipped += 1
            continue
        total += 1
        bucket = phases.setdefault(target, {"count": 0, "totalDuration": 0})
        bucket["count"] += 1
        bucket["totalDuration"] += _as_duration(record.get("duration"))
        files = record.get("filesModified")
        if isinstance(files, list):
            for path in files:
                if isinstance(path, str):
                    files_changed.setdefault(path, None)
    return {
        "totalTransitions": total,
        "phases": phases,
        "filesChanged": list(files_changed),
        "skippedLines": skipped,
    }


def fold_gate_checks(records: list[dict[str, Any]], skipped: int = 0) -> dict[str, Any]:
    by_transition: dict[str, dict[str, int]] = {}
    common_failures: dict[str, int] = {}
    passed = failed = blocked = 0
    for record in records:
        transition = record.get("transition")
        outcome = record.get("passed")
        if not isinstance(transition, str) or not isinstance(outcome, bool):
            skipped += 1
            continue
        bucket = by_transition.setdefault(transition, {"total": 0, "passed": 0, "failed": 0})
        bucket["total"] += 1
        if outcome:
            passed += 1
            bucket["passed"] += 1
        else:
            failed += 1
            bucket["failed"] += 1
            category = failure_category(str(record.get("message", "")))
            common_failures[category] = common_failures.get(category, 0) + 1
        if record.get("blocked") is True:
            blocked += 1

    total = passed + failed
    return {
        "totalChecks": total,
        "passed": passed,
        "failed": failed,
        "blocked": blocked,
        "passRate": round(passed / total * 100, 2) if total else 0.0,
        "byTransition": by_transition,
        "commonFailures": common_failures,
        "skippedLines": skipped,
    }


def generate_workflow_report(log_path: Path, report_path: Path) -> dict[str, Any] | None:
    """Fold ``transitions.jsonl`` into ``report.json``; ``None`` when there is no log yet."""
    journal = JsonlJournal(log_path)
    if not journal.exists():
        return None
    read = journal.read()
    report = fold_transitions(read.records, skipped=read.skipped)
    write_json_atomic(report_path, report)
    if report["skippedLines"]:
        logger.warning(
            "Workflow report skipped %d unreadable line(s) in %s",
            report["skippedLines"],
            log_path,
        )
    return report


def generate_quality_report(gate_log_path: Path, report_path: Path) -> dict[str, Any] | None:
    """Fold ``quality-gates.jsonl`` into ``quality-report.json``; ``None`` when absent."""
    journal = JsonlJournal(gate_log_path)
    if not journal.exists():
        return None
    read = journal.read()
    report = fold_gate_checks(read.records, skipped=read.skipped)
    write_json_atomic(report_path, report)
    if report["skippedLines"]:
        logger.warning(
            "Quality report skipped %d unreadable line(s) in %s",
            report["skippedLines"],
            gate_log_path,
        )
    return report
