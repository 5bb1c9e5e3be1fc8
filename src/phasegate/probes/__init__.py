from phasegate.probes.base import (
    CommandRunner,
    ProbeExecutionError,
    ProbeResult,
    ProbeTimeoutError,
)
from phasegate.probes.subprocess_runner import SubprocessRunner

__all__ = [
    "CommandRunner",
    "ProbeExecutionError",
    "ProbeResult",
    "ProbeTimeoutError",
    "SubprocessRunner",
]
