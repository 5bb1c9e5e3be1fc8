from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from phasegate import __version__
from phasegate.config import CONFIG_FILE, PhaseGateConfig, load_config, save_config
from phasegate.errors import ConfigError, PhaseGateError
from phasegate.events import WorkflowEvent
from phasegate.log import setup_logging
from phasegate.notifier import LoggingNotifier, suggest_gate_check
from phasegate.phases import PHASE_NAMES
from phasegate.session import WorkflowSession


@dataclass(slots=True)
class Runtime:
    project_root: Path
    config_path: Path
    config: PhaseGateConfig
    session: WorkflowSession


def _resolve_config_path(project_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = project_root / config_path
    return config_path.resolve()


def _echo_event(event: WorkflowEvent) -> None:
    if event.level == "warning":
        click.secho(event.message, fg="yellow", err=True)
    elif event.level == "error":
        click.secho(event.message, fg="red", err=True)


def _load_runtime(project_root: Path, config_path: Path) -> Runtime:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    log_file = Path(config.logging.file) if config.logging.file else None
    if log_file is not None and not log_file.is_absolute():
        log_file = project_root / log_file
    setup_logging(config.logging.level, log_file)

    session = WorkflowSession(project_root, config)
    if log_file is not None:
        session.events.subscribe(LoggingNotifier())
    session.events.subscribe(_echo_event)
    try:
        session.resume()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    return Runtime(
        project_root=project_root,
        config_path=config_path,
        config=config,
        session=session,
    )


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


@click.group()
@click.version_option(__version__, prog_name="phasegate")
def cli() -> None:
    """Track SDLC phases and enforce quality gates between them."""


@cli.command("init")
@click.option("--strict/--warning", "strict", default=None, help="Gate enforcement mode.")
@click.option("--coverage-threshold", type=click.IntRange(0, 100), default=None)
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def init_command(strict: bool | None, coverage_threshold: int | None, config_value: str) -> None:
    project_root = Path.cwd().resolve()
    config_path = _resolve_config_path(project_root, config_value)
    try:
        config = load_config(config_path, environ={})
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    if strict is not None:
        config.gates.strict = strict
    if coverage_threshold is not None:
        config.gates.coverage_threshold = coverage_threshold
    save_config(config_path, config)

    workflow_dir = project_root / config.tracker.workflow_dir
    workflow_dir.mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized phasegate in {project_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Workflow directory: {workflow_dir}")
    click.echo(f"Gate mode: {config.gates.mode}")


@cli.command("phase")
@click.argument("phase")
@click.option("--file", "files", multiple=True, help="File modified during the current phase.")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def phase_command(phase: str, files: tuple[str, ...], config_value: str) -> None:
    """Move the project to PHASE (plan, design, implement, test, review, release, operate)."""
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    for path in files:
        runtime.session.record_file_modification(path)
    try:
        message = runtime.session.track_phase(phase)
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(message)


@cli.command("gate")
@click.argument("transition")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.option(
    "--exit-code", is_flag=True, default=False, help="Exit with status 1 if the gate fails."
)
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def gate_command(transition: str, as_json: bool, exit_code: bool, config_value: str) -> None:
    """Check the quality gate for TRANSITION, e.g. 'design→implement' or 'design->implement'."""
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    try:
        result = runtime.session.check_quality_gate(transition)
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(_dump(result.to_dict()))
    else:
        status = "PASSED" if result.passed else "FAILED"
        click.echo(f"{status} {result.transition}: {result.message}")
        for step in result.steps:
            click.echo(f"  [{step.status}] {step.message}")
    if exit_code and not result.passed:
        raise SystemExit(1)


@cli.command("status")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def status_command(config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    click.echo(_dump(runtime.session.status()))


@cli.command("report")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def report_command(config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    try:
        report = runtime.session.transitions.generate_report()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    if report is None:
        click.echo("No workflow data available yet.")
        return
    click.echo(_dump(report))


@cli.command("quality-report")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def quality_report_command(config_value: str) -> None:
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    try:
        report = runtime.session.gates.generate_quality_report()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc
    if report is None:
        click.echo("No quality gate data available yet.")
        return
    click.echo(_dump(report))


@cli.command("idle")
@click.option("--file", "files", multiple=True, help="File modified since the last checkpoint.")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def idle_command(files: tuple[str, ...], config_value: str) -> None:
    """Log a checkpoint for the current phase and remind about the next gate."""
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    for path in files:
        runtime.session.record_file_modification(path)
    try:
        outcome = runtime.session.on_idle()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc

    if outcome.checkpoint is not None:
        click.echo(
            f"Checkpoint logged for {outcome.checkpoint.to_phase}: "
            f"{len(outcome.checkpoint.files_modified)} file(s)"
        )
    if outcome.reminder is not None:
        status = "ready" if outcome.reminder.passed else "not ready"
        click.echo(f"Next gate {outcome.reminder.transition} {status}: {outcome.reminder.message}")
    if outcome.checkpoint is None and outcome.reminder is None:
        click.echo(f"Nothing to record (phase: {runtime.session.tracker.get_phase()}).")


@cli.command("end")
@click.option("--file", "files", multiple=True, help="File modified since the last checkpoint.")
@click.option("--config", "config_value", default=CONFIG_FILE, show_default=True)
def end_command(files: tuple[str, ...], config_value: str) -> None:
    """Close the session: log the final transition and regenerate both reports."""
    project_root = Path.cwd().resolve()
    runtime = _load_runtime(project_root, _resolve_config_path(project_root, config_value))
    for path in files:
        runtime.session.record_file_modification(path)
    try:
        summary = runtime.session.on_session_end()
    except PhaseGateError as exc:
        raise click.ClickException(str(exc)) from exc

    if summary.final_transition is not None:
        click.echo(f"Session closed in {summary.final_transition.from_phase} phase.")
    workflow = summary.workflow_report
    quality = summary.quality_report
    click.echo(
        f"Workflow report: {workflow['totalTransitions']} transition(s)"
        if workflow
        else "Workflow report: no data"
    )
    click.echo(
        f"Quality report: {quality['totalChecks']} check(s), {quality['passRate']}% passed"
        if quality
        else "Quality report: no data"
    )


@cli.command("suggest")
@click.argument("path")
def suggest_command(path: str) -> None:
    """Suggest which quality gate a change to PATH is relevant to."""
    suggestion = suggest_gate_check(path)
    click.echo(suggestion or f"No gate suggestion for {path}.")


@cli.command("phases")
def phases_command() -> None:
    for name in PHASE_NAMES:
        click.echo(name)
