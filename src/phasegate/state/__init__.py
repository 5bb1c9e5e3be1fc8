from phasegate.state.journal import JournalRead, JsonlJournal, write_json_atomic
from phasegate.state.tracker import NO_PHASE, PhaseTracker
from phasegate.state.transitions import TransitionLogger, TransitionRecord

__all__ = [
    "JournalRead",
    "JsonlJournal",
    "NO_PHASE",
    "PhaseTracker",
    "TransitionLogger",
    "TransitionRecord",
    "write_json_atomic",
]
