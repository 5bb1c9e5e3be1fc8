import json
import os
import threading
from pathlib import Path

import pytest

from phasegate.errors import PersistenceError
from phasegate.state import JsonlJournal, PhaseTracker, TransitionLogger, write_json_atomic


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_tracker_reports_none_before_any_phase() -> None:
    tracker = PhaseTracker()

    assert tracker.get_phase() == "none"
    assert tracker.current_phase is None
    assert tracker.elapsed_ms() == 0


def test_tracker_reflects_most_recent_set_phase() -> None:
    tracker = PhaseTracker()
    for phase in ["plan", "design", "design", "implement", "anything-goes"]:
        tracker.set_phase(phase)
        assert tracker.get_phase() == phase


def test_modified_files_are_deduplicated_in_insertion_order() -> None:
    tracker = PhaseTracker()
    for path in ["b.ts", "a.ts", "b.ts", "c.ts", "a.ts"]:
        tracker.add_modified_file(path)

    assert tracker.get_modified_files() == ["b.ts", "a.ts", "c.ts"]

    tracker.clear_modified_files()
    assert tracker.get_modified_files() == []


def test_elapsed_ms_measures_time_since_phase_start() -> None:
    clock = FakeClock()
    tracker = PhaseTracker(clock)
    tracker.set_phase("design")
    clock.advance(2.5)

    assert tracker.elapsed_ms() == 2500

    tracker.set_phase("implement")
    assert tracker.elapsed_ms() == 0


def test_log_transition_appends_json_line_and_creates_directory(tmp_path: Path) -> None:
    clock = FakeClock()
    tracker = PhaseTracker(clock)
    workflow_dir = tmp_path / "nested" / ".workflow"
    transitions = TransitionLogger(workflow_dir, tracker)

    first = transitions.log_transition(None, "design")
    tracker.set_phase("design")
    clock.advance(1.25)
    second = transitions.log_transition("design", "implement", ["a.ts", "b.ts"])

    lines = (workflow_dir / "transitions.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0]) == first.to_dict()
    payload = json.loads(lines[1])
    assert payload["from"] == "design"
    assert payload["to"] == "implement"
    assert payload["duration"] == 1250
    assert payload["filesModified"] == ["a.ts", "b.ts"]
    assert first.duration == 0
    assert second.duration == 1250


def test_durations_match_gap_between_set_phase_calls(tmp_path: Path) -> None:
    clock = FakeClock()
    tracker = PhaseTracker(clock)
    transitions = TransitionLogger(tmp_path, tracker)
    gaps = [0.5, 3.0, 0.0, 12.75]

    previous = None
    for index, gap in enumerate(gaps):
        clock.advance(gap)
        record = transitions.log_transition(previous, f"phase-{index}")
        tracker.set_phase(f"phase-{index}")
        previous = f"phase-{index}"
        expected = 0 if index == 0 else int(gap * 1000)
        assert record.duration == expected
        assert record.duration >= 0


def test_last_transition_skips_corrupt_tail(tmp_path: Path) -> None:
    transitions = TransitionLogger(tmp_path, PhaseTracker())
    transitions.log_transition(None, "plan")
    transitions.log_transition("plan", "design")
    with (tmp_path / "transitions.jsonl").open("a", encoding="utf-8") as handle:
        handle.write('{"from": "design", "to": "impl')

    last = transitions.last_transition()

    assert last is not None
    assert last.to_phase == "design"


def test_journal_read_counts_malformed_lines(tmp_path: Path) -> None:
    journal = JsonlJournal(tmp_path / "log.jsonl")
    journal.append({"n": 1})
    with journal.path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n")
        handle.write("[1, 2]\n")
        handle.write("\n")
    journal.append({"n": 2})

    read = journal.read()

    assert [record["n"] for record in read.records] == [1, 2]
    assert read.skipped == 2
    assert [error.line_number for error in read.errors] == [2, 3]


def test_journal_read_of_missing_file_is_empty(tmp_path: Path) -> None:
    read = JsonlJournal(tmp_path / "missing.jsonl").read()

    assert read.records == []
    assert read.skipped == 0


def test_concurrent_appends_never_interleave(tmp_path: Path) -> None:
    journal = JsonlJournal(tmp_path / "log.jsonl")
    padding = "x" * 2048

    def _writer(worker: int) -> None:
        for index in range(50):
            journal.append({"worker": worker, "index": index, "padding": padding})

    threads = [threading.Thread(target=_writer, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    read = journal.read()
    assert read.skipped == 0
    assert len(read.records) == 200


@pytest.mark.skipif(
    os.name != "posix" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="needs POSIX permissions enforced for the current user",
)
def test_append_failure_raises_persistence_error(tmp_path: Path) -> None:
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o500)
    try:
        journal = JsonlJournal(locked / "transitions.jsonl")
        with pytest.raises(PersistenceError):
            journal.append({"to": "design"})
    finally:
        locked.chmod(0o700)


def test_append_into_path_blocked_by_file_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    transitions = TransitionLogger(blocker / ".workflow", PhaseTracker())

    with pytest.raises(PersistenceError) as excinfo:
        transitions.log_transition(None, "design")

    assert "transitions.jsonl" in str(excinfo.value)


def test_write_json_atomic_overwrites_without_leftovers(tmp_path: Path) -> None:
    target = tmp_path / "report.json"
    write_json_atomic(target, {"version": 1})
    write_json_atomic(target, {"version": 2})

    assert json.loads(target.read_text(encoding="utf-8")) == {"version": 2}
    assert sorted(path.name for path in tmp_path.iterdir()) == ["report.json"]
