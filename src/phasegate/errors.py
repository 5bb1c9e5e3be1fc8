from __future__ import annotations


class PhaseGateError(RuntimeError):
    """Base class for all phasegate failures."""


class ValidationError(PhaseGateError, ValueError):
    """Raised when a phase name or transition key is not recognized."""


class ConfigError(PhaseGateError, ValueError):
    """Raised when a config file value or environment flag is invalid."""


class PersistenceError(PhaseGateError):
    """Raised when an audit log append or report write fails."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class CorruptDataError(PhaseGateError):
    """A journal line that could not be decoded."""

    def __init__(self, message: str, *, path: str | None = None, line_number: int = 0) -> None:
        super().__init__(message)
        self.path = path
        self.line_number = line_number


class ProbeExecutionError(PhaseGateError):
    """Raised when a probe command could not run to completion."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code


class ProbeTimeoutError(ProbeExecutionError):
    """Raised when a probe command exceeds its timeout."""


class GateBlockedError(PhaseGateError):
    """Raised in strict mode when a failing quality gate blocks a transition."""

    def __init__(self, message: str, *, transition: str, check_message: str) -> None:
        super().__init__(message)
        self.transition = transition
        self.check_message = check_message
