from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from phasegate.errors import CorruptDataError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JournalRead:
    records: list[dict[str, Any]] = field(default_factory=list)
    errors: list[CorruptDataError] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.errors)


class JsonlJournal:
    """Append-only JSON-lines file.

    Each record is written with one ``os.write`` on a descriptor opened with
    ``O_APPEND`` so concurrent appenders never interleave partial lines.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def append(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"
        payload = line.encode("utf-8")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                written = os.write(fd, payload)
            finally:
                os.close(fd)
        except OSError as exc:
            raise PersistenceError(
                f"Failed to append to {self.path}: {exc}", path=str(self.path)
            ) from exc
        if written != len(payload):
            raise PersistenceError(
                f"Short write to {self.path}: {written} of {len(payload)} bytes",
                path=str(self.path),
            )

    def _iter_lines(self) -> Iterator[tuple[int, str]]:
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            for number, raw_line in enumerate(handle, start=1):
                line = raw_line.strip()
                if line:
                    yield number, line

    def read(self) -> JournalRead:
        result = JournalRead()
        if not self.exists():
            return result
        for number, line in self._iter_lines():
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError as exc:
                parsed = None
                reason = exc.msg
            else:
                reason = "expected a JSON object"
            if isinstance(parsed, dict):
                result.records.append(parsed)
                continue
            error = CorruptDataError(
                f"{self.path.name}:{number}: {reason}", path=str(self.path), line_number=number
            )
            logger.warning("Skipping corrupt journal line %s", error)
            result.errors.append(error)
        return result


def write_json_atomic(path: Path, payload: Any) -> None:
    """Overwrite ``path`` with pretty-printed JSON via a temp file and rename."""
    serialized = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    temp_path: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            handle.write(serialized)
            temp_path = handle.name
        os.replace(temp_path, path)
    except OSError as exc:
        if temp_path is not None:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
        raise PersistenceError(f"Failed to write {path}: {exc}", path=str(path)) from exc
