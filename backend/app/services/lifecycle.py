"""Match lifecycle state machine.

::

    pending --start--> inprogress --pause--> paused
                       inprogress <--resume-- paused
                       inprogress --finish--> finished   (terminal)

The table below is the single source of truth for legal transitions; the
routers only look actions up here and never compare statuses themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..exceptions import InvalidStateTransition


class MatchStatus(str, Enum):
    PENDING = "pending"
    INPROGRESS = "inprogress"
    PAUSED = "paused"
    FINISHED = "finished"


class MatchAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    FINISH = "finish"


@dataclass(frozen=True)
class Transition:
    action: MatchAction
    source: MatchStatus
    target: MatchStatus
    stamps_start: bool = False


TRANSITIONS: dict[MatchAction, Transition] = {
    MatchAction.START: Transition(
        MatchAction.START, MatchStatus.PENDING, MatchStatus.INPROGRESS, stamps_start=True
    ),
    MatchAction.PAUSE: Transition(
        MatchAction.PAUSE, MatchStatus.INPROGRESS, MatchStatus.PAUSED
    ),
    MatchAction.RESUME: Transition(
        MatchAction.RESUME, MatchStatus.PAUSED, MatchStatus.INPROGRESS
    ),
    MatchAction.FINISH: Transition(
        MatchAction.FINISH, MatchStatus.INPROGRESS, MatchStatus.FINISHED
    ),
}


def parse_status(value: str) -> MatchStatus:
    try:
        return MatchStatus(value)
    except ValueError:
        raise ValueError(f"unknown match status {value!r}") from None


def ensure_transition(current: str, action: MatchAction | str) -> Transition:
    """Return the transition for ``action`` or raise if ``current`` is not its source."""

    action = MatchAction(action)
    transition = TRANSITIONS[action]
    status = parse_status(current)
    if status != transition.source:
        raise InvalidStateTransition(
            action=action.value,
            current=status.value,
            required=transition.source.value,
        )
    return transition


def can_transition(current: str, action: MatchAction | str) -> bool:
    try:
        ensure_transition(current, action)
    except InvalidStateTransition:
        return False
    return True


def accepts_points(status: str) -> bool:
    return parse_status(status) == MatchStatus.INPROGRESS


def is_slot_editable(status: str) -> bool:
    return parse_status(status) == MatchStatus.PENDING


def ensure_slot_editable(status: str) -> None:
    if not is_slot_editable(status):
        raise InvalidStateTransition(
            action="edit the draw slots of",
            current=parse_status(status).value,
            required=MatchStatus.PENDING.value,
        )


def allowed_actions(status: str) -> list[str]:
    current = parse_status(status)
    return [
        action.value
        for action, transition in TRANSITIONS.items()
        if transition.source == current
    ]
