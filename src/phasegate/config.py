from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from phasegate.errors import ConfigError

GateMode = Literal["warning", "strict"]

CONFIG_FILE = "phasegate.toml"

ENV_ENABLE_TRACKER = "ENABLE_WORKFLOW_TRACKER"
ENV_ENABLE_GATES = "ENABLE_QUALITY_GATE"
ENV_STRICT = "QUALITY_GATE_STRICT"
ENV_COVERAGE_THRESHOLD = "QUALITY_GATE_COVERAGE_THRESHOLD"
ENV_PROBE_TIMEOUT = "QUALITY_GATE_PROBE_TIMEOUT"


@dataclass(slots=True)
class TrackerConfig:
    enabled: bool = True
    workflow_dir: str = ".workflow"


@dataclass(slots=True)
class GatesConfig:
    enabled: bool = True
    strict: bool = False
    coverage_threshold: int = 80
    probe_timeout_seconds: float = 300.0
    idle_reminder: bool = True

    @property
    def mode(self) -> GateMode:
        return "strict" if self.strict else "warning"


@dataclass(slots=True)
class ProbesConfig:
    design_patterns: list[str] = field(
        default_factory=lambda: ["*.design.md", "*.schema.sql", "*.openapi.yml"]
    )
    type_check_command: str = "npx tsc --noEmit"
    type_check_markers: list[str] = field(default_factory=lambda: ["tsconfig.json"])
    lint_command: str = "npx eslint . --max-warnings 0"
    lint_markers: list[str] = field(default_factory=lambda: [".eslintrc.*", "eslint.config.*"])
    test_command: str = "npm test"
    test_markers: list[str] = field(default_factory=lambda: ["package.json#scripts.test"])
    coverage_file: str = "coverage/coverage-summary.json"
    audit_command: str = "npm audit --audit-level=high"
    changelog_file: str = "CHANGELOG.md"


@dataclass(slots=True)
class LoggingConfig:
    level: str = "WARNING"
    file: str = ""


@dataclass(slots=True)
class PhaseGateConfig:
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    gates: GatesConfig = field(default_factory=GatesConfig)
    probes: ProbesConfig = field(default_factory=ProbesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> PhaseGateConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> PhaseGateConfig:
        try:
            return cls(
                tracker=TrackerConfig(**data.get("tracker", {})),
                gates=GatesConfig(**data.get("gates", {})),
                probes=ProbesConfig(**data.get("probes", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigError(f"Unknown config key: {exc}") from exc

    def to_dict(self) -> dict:
        return {
            "tracker": {
                "enabled": self.tracker.enabled,
                "workflow_dir": self.tracker.workflow_dir,
            },
            "gates": {
                "enabled": self.gates.enabled,
                "strict": self.gates.strict,
                "coverage_threshold": self.gates.coverage_threshold,
                "probe_timeout_seconds": self.gates.probe_timeout_seconds,
                "idle_reminder": self.gates.idle_reminder,
            },
            "probes": {
                "design_patterns": list(self.probes.design_patterns),
                "type_check_command": self.probes.type_check_command,
                "type_check_markers": list(self.probes.type_check_markers),
                "lint_command": self.probes.lint_command,
                "lint_markers": list(self.probes.lint_markers),
                "test_command": self.probes.test_command,
                "test_markers": list(self.probes.test_markers),
                "coverage_file": self.probes.coverage_file,
                "audit_command": self.probes.audit_command,
                "changelog_file": self.probes.changelog_file,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        if not rendered:
            return "0.0"
        return rendered if "." in rendered else f"{rendered}.0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: PhaseGateConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["tracker", "gates", "probes", "logging"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def _env_flag_enabled(raw: str) -> bool:
    # tracker and gates stay on unless explicitly switched off
    return raw.strip().lower() != "false"


def _env_flag_set(raw: str) -> bool:
    return raw.strip().lower() == "true"


def apply_env_overrides(
    config: PhaseGateConfig, environ: Mapping[str, str] | None = None
) -> PhaseGateConfig:
    env = os.environ if environ is None else environ
    if ENV_ENABLE_TRACKER in env:
        config.tracker.enabled = _env_flag_enabled(env[ENV_ENABLE_TRACKER])
    if ENV_ENABLE_GATES in env:
        config.gates.enabled = _env_flag_enabled(env[ENV_ENABLE_GATES])
    if ENV_STRICT in env:
        config.gates.strict = _env_flag_set(env[ENV_STRICT])
    if ENV_COVERAGE_THRESHOLD in env:
        raw = env[ENV_COVERAGE_THRESHOLD]
        try:
            config.gates.coverage_threshold = int(raw.strip())
        except ValueError as exc:
            raise ConfigError(f"{ENV_COVERAGE_THRESHOLD} must be an integer, got {raw!r}") from exc
    if ENV_PROBE_TIMEOUT in env:
        raw = env[ENV_PROBE_TIMEOUT]
        try:
            config.gates.probe_timeout_seconds = float(raw.strip())
        except ValueError as exc:
            raise ConfigError(f"{ENV_PROBE_TIMEOUT} must be a number, got {raw!r}") from exc
    validate_config(config)
    return config


def validate_config(config: PhaseGateConfig) -> None:
    threshold = config.gates.coverage_threshold
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ConfigError(f"coverage_threshold must be an integer percent, got {threshold!r}")
    if not 0 <= threshold <= 100:
        raise ConfigError(f"coverage_threshold must be between 0 and 100, got {threshold}")
    timeout = config.gates.probe_timeout_seconds
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ConfigError(f"probe_timeout_seconds must be a number of seconds, got {timeout!r}")
    if timeout <= 0:
        raise ConfigError(f"probe_timeout_seconds must be positive, got {timeout}")
    workflow_dir = config.tracker.workflow_dir
    if not isinstance(workflow_dir, str):
        raise ConfigError(f"workflow_dir must be a string path, got {workflow_dir!r}")
    if not workflow_dir.strip():
        raise ConfigError("workflow_dir must not be empty")


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> PhaseGateConfig:
    if not path.exists():
        config = PhaseGateConfig.default()
    else:
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
        config = PhaseGateConfig.from_dict(data)
    return apply_env_overrides(config, environ)


def save_config(path: Path, config: PhaseGateConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
