from __future__ import annotations

import logging
import os
import re
import shlex
import signal
import subprocess
from pathlib import Path

from phasegate.probes.base import (
    CommandRunner,
    ProbeExecutionError,
    ProbeResult,
    ProbeTimeoutError,
)

logger = logging.getLogger(__name__)

SHELL_REQUIRED_PATTERN = re.compile(r"(?:\|\||&&|[|;<>`*?]|[$]\()")
# POSIX shells report "not executable" and "not found" with these codes
UNRUNNABLE_EXIT_CODES = {126, 127}


class SubprocessRunner(CommandRunner):
    """Runs probe commands in their own process group with a hard timeout."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self.env = env

    @staticmethod
    def _prepare(command: str) -> tuple[str | list[str], bool]:
        command_text = command.strip()
        if SHELL_REQUIRED_PATTERN.search(command_text):
            return command_text, True
        try:
            return shlex.split(command_text), False
        except ValueError:
            return command_text, True

    @staticmethod
    def _terminate(proc: subprocess.Popen[str]) -> None:
        if proc.poll() is not None:
            return
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            return
        except OSError:
            proc.kill()

    def run(self, command: str, *, cwd: Path, timeout: float) -> ProbeResult:
        if not command.strip():
            raise ProbeExecutionError("Command is empty.", command=command)

        payload, used_shell = self._prepare(command)
        env = os.environ.copy()
        if self.env:
            env.update(self.env)
        env.setdefault("CI", "true")

        logger.debug("Running probe %r in %s (timeout %.0fs)", command, cwd, timeout)
        try:
            proc = subprocess.Popen(
                payload,
                cwd=cwd,
                shell=used_shell,
                env=env,
                text=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise ProbeExecutionError(
                f"executable not found: {exc.filename or command}", command=command
            ) from exc
        except OSError as exc:
            raise ProbeExecutionError(f"could not start: {exc}", command=command) from exc

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            self._terminate(proc)
            proc.communicate()
            raise ProbeTimeoutError(f"exceeded {timeout:g}s", command=command) from exc
        except BaseException:
            # interrupted by the caller: never leave the probe running
            self._terminate(proc)
            proc.wait()
            raise

        if used_shell and proc.returncode in UNRUNNABLE_EXIT_CODES:
            detail = (stderr.strip() or stdout.strip())[-200:]
            raise ProbeExecutionError(
                f"command could not run (exit {proc.returncode}): {detail}",
                command=command,
                exit_code=proc.returncode,
            )
        return ProbeResult(
            command=command,
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )
