from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from phasegate.errors import ProbeExecutionError, ProbeTimeoutError

__all__ = [
    "CommandRunner",
    "ProbeExecutionError",
    "ProbeResult",
    "ProbeTimeoutError",
]


@dataclass(frozen=True, slots=True)
class ProbeResult:
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def tail(self, limit: int = 400) -> str:
        output = (self.stderr.strip() or self.stdout.strip())
        return output[-limit:]


class CommandRunner(ABC):
    @abstractmethod
    def run(self, command: str, *, cwd: Path, timeout: float) -> ProbeResult:
        """Run ``command`` non-interactively and capture its output.

        Raises ``ProbeExecutionError`` when the command cannot be started or
        its executable is missing, and ``ProbeTimeoutError`` when it exceeds
        ``timeout`` seconds.
        """
