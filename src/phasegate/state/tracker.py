from __future__ import annotations

import time
from collections.abc import Callable

NO_PHASE = "none"

Clock = Callable[[], float]


class PhaseTracker:
    """In-memory phase state for one project session.

    The tracker stores whatever label it is given. Checking that a phase name
    is one of the lifecycle phases is left to the caller.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._phase: str | None = None
        self._phase_started_at: float | None = None
        # dict keys keep insertion order and give set semantics
        self._modified_files: dict[str, None] = {}

    @property
    def current_phase(self) -> str | None:
        return self._phase

    @property
    def phase_started_at(self) -> float | None:
        return self._phase_started_at

    def now(self) -> float:
        return self._clock()

    def get_phase(self) -> str:
        return self._phase if self._phase is not None else NO_PHASE

    def set_phase(self, phase: str) -> None:
        self._phase = phase
        self._phase_started_at = self._clock()

    def restore(self, phase: str, started_at: float) -> None:
        self._phase = phase
        self._phase_started_at = started_at

    def elapsed_ms(self) -> int:
        if self._phase_started_at is None:
            return 0
        return max(0, int(round((self._clock() - self._phase_started_at) * 1000)))

    def add_modified_file(self, path: str) -> None:
        self._modified_files.setdefault(path, None)

    def get_modified_files(self) -> list[str]:
        return list(self._modified_files)

    def clear_modified_files(self) -> None:
        self._modified_files.clear()
