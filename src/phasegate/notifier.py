from __future__ import annotations

import logging

from phasegate.events import EventLevel, WorkflowEvent
from phasegate.phases import Phase, transition_key

LEVELS: dict[EventLevel, int] = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_TEST_GATE = transition_key(Phase.IMPLEMENT, Phase.TEST)
_REVIEW_GATE = transition_key(Phase.TEST, Phase.REVIEW)
_IMPLEMENT_GATE = transition_key(Phase.DESIGN, Phase.IMPLEMENT)
_RELEASE_GATE = transition_key(Phase.REVIEW, Phase.RELEASE)

SUGGESTIONS: dict[str, str] = {
    "compile": f"Consider running '{_TEST_GATE}' gate (compilation check)",
    "lint": f"Consider running '{_TEST_GATE}' gate (linting check)",
    "coverage": f"Consider running '{_REVIEW_GATE}' gate (test coverage check)",
    "design": f"Consider running '{_IMPLEMENT_GATE}' gate (design review)",
    "schema": f"Consider running '{_IMPLEMENT_GATE}' gate (schema review)",
    "release": f"Consider running '{_RELEASE_GATE}' gate (release readiness)",
}


def suggest_gate_check(file_path: str) -> str | None:
    name = file_path.replace("\\", "/").rsplit("/", maxsplit=1)[-1]
    if name == "CHANGELOG.md":
        return SUGGESTIONS["release"]
    if name.endswith(".design.md"):
        return SUGGESTIONS["design"]
    if name.endswith(".schema.sql"):
        return SUGGESTIONS["schema"]
    if "test." in name or "spec." in name:
        return SUGGESTIONS["coverage"]
    if name.endswith((".ts", ".tsx")):
        return SUGGESTIONS["compile"]
    if name.endswith((".js", ".jsx")):
        return SUGGESTIONS["lint"]
    return None


class LoggingNotifier:
    """Event subscriber that surfaces workflow events through ``logging``."""

    def __init__(self, logger_name: str = "phasegate.notify") -> None:
        self.logger = logging.getLogger(logger_name)

    def __call__(self, event: WorkflowEvent) -> None:
        self.logger.log(
            LEVELS.get(event.level, logging.INFO),
            event.message,
            extra={"extra_fields": {"event": event.kind, "data": event.data}},
        )
