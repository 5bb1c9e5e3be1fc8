from __future__ import annotations

from enum import StrEnum

from phasegate.errors import ValidationError

TRANSITION_ARROW = "→"
TRANSITION_SEPARATORS = (TRANSITION_ARROW, "->")
SESSION_COMPLETE = "complete"


class Phase(StrEnum):
    PLAN = "plan"
    DESIGN = "design"
    IMPLEMENT = "implement"
    TEST = "test"
    REVIEW = "review"
    RELEASE = "release"
    OPERATE = "operate"


PHASE_NAMES: tuple[str, ...] = tuple(phase.value for phase in Phase)

NEXT_PHASE: dict[Phase, Phase] = {
    Phase.DESIGN: Phase.IMPLEMENT,
    Phase.IMPLEMENT: Phase.TEST,
    Phase.TEST: Phase.REVIEW,
    Phase.REVIEW: Phase.RELEASE,
}


def parse_phase(value: str) -> Phase:
    normalized = str(value).strip().lower()
    try:
        return Phase(normalized)
    except ValueError:
        raise ValidationError(
            f"Invalid phase: {value}. Must be one of: {', '.join(PHASE_NAMES)}"
        ) from None


def coerce_phase(value: str | None) -> Phase | None:
    """Return the matching Phase, or None for labels outside the lifecycle."""
    if value is None:
        return None
    try:
        return Phase(str(value).strip().lower())
    except ValueError:
        return None


def transition_key(source: str, target: str) -> str:
    return f"{source}{TRANSITION_ARROW}{target}"


def split_transition(key: str) -> tuple[str, str]:
    """Split ``"design→implement"`` (or ``"design->implement"``) into its two labels."""
    text = str(key).strip()
    for separator in TRANSITION_SEPARATORS:
        if separator in text:
            source, _, target = text.partition(separator)
            source, target = source.strip(), target.strip()
            if source and target and not any(sep in target for sep in TRANSITION_SEPARATORS):
                return source, target
            break
    raise ValidationError(
        f"Malformed transition: {key!r}. Expected '<from>{TRANSITION_ARROW}<to>', "
        f"e.g. 'design{TRANSITION_ARROW}implement'."
    )
