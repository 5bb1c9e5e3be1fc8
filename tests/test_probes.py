import os
import shlex
import sys
import time
from pathlib import Path

import pytest

from phasegate.probes import ProbeExecutionError, ProbeTimeoutError, SubprocessRunner

PYTHON = shlex.quote(sys.executable)


def test_runner_captures_exit_code_and_output(tmp_path: Path) -> None:
    runner = SubprocessRunner()

    result = runner.run(
        f"{PYTHON} -c \"import sys; print('hello'); sys.exit(3)\"", cwd=tmp_path, timeout=30
    )

    assert result.exit_code == 3
    assert result.ok is False
    assert result.stdout.strip() == "hello"


def test_runner_runs_in_project_directory(tmp_path: Path) -> None:
    result = SubprocessRunner().run(
        f"{PYTHON} -c \"import os; print(os.getcwd())\"", cwd=tmp_path, timeout=30
    )

    assert result.ok
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()


def test_runner_marks_environment_non_interactive(tmp_path: Path) -> None:
    runner = SubprocessRunner(env={"PHASEGATE_PROBE": "1"})

    result = runner.run(
        f"{PYTHON} -c \"import os; print(os.environ['PHASEGATE_PROBE'], os.environ['CI'])\"",
        cwd=tmp_path,
        timeout=30,
    )

    assert result.stdout.split() == ["1", os.environ.get("CI", "true")]


def test_runner_times_out_long_running_probe(tmp_path: Path) -> None:
    started = time.monotonic()

    with pytest.raises(ProbeTimeoutError, match="exceeded 0.5s"):
        SubprocessRunner().run(
            f"{PYTHON} -c \"import time; time.sleep(30)\"", cwd=tmp_path, timeout=0.5
        )

    assert time.monotonic() - started < 10


def test_missing_executable_raises_execution_error(tmp_path: Path) -> None:
    with pytest.raises(ProbeExecutionError, match="executable not found"):
        SubprocessRunner().run("phasegate-no-such-tool --check", cwd=tmp_path, timeout=5)


@pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")
def test_shell_command_not_found_raises_execution_error(tmp_path: Path) -> None:
    with pytest.raises(ProbeExecutionError) as excinfo:
        SubprocessRunner().run("phasegate-no-such-tool && echo ok", cwd=tmp_path, timeout=5)

    assert excinfo.value.exit_code == 127


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ProbeExecutionError):
        SubprocessRunner().run("   ", cwd=tmp_path, timeout=5)


def test_shell_operators_switch_to_shell_mode() -> None:
    assert SubprocessRunner._prepare("npm test && npm run lint") == (
        "npm test && npm run lint",
        True,
    )
    assert SubprocessRunner._prepare("npx tsc --noEmit") == (["npx", "tsc", "--noEmit"], False)
