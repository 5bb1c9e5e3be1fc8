from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

EventLevel = Literal["success", "info", "warning", "error"]

PHASE_TRANSITIONED = "phase_transitioned"
CHECKPOINT_LOGGED = "checkpoint_logged"
GATE_EVALUATED = "gate_evaluated"
GATE_WARNING = "gate_warning"
GATE_BLOCKED = "gate_blocked"
GATE_REMINDER = "gate_reminder"
GATE_SUGGESTION = "gate_suggestion"
REPORT_GENERATED = "report_generated"


@dataclass(frozen=True, slots=True)
class WorkflowEvent:
    kind: str
    message: str
    level: EventLevel = "info"
    data: dict[str, Any] = field(default_factory=dict)


EventHook = Callable[[WorkflowEvent], None]


class EventBus:
    """Delivers core events to best-effort subscribers.

    A subscriber that raises is logged and skipped; delivery never changes the
    outcome of the operation that emitted the event.
    """

    def __init__(self) -> None:
        self._hooks: list[EventHook] = []

    def subscribe(self, hook: EventHook) -> None:
        self._hooks.append(hook)

    def emit(self, event: WorkflowEvent) -> None:
        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event.kind)
