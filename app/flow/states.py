"""
app/flow/states.py

Purpose: Defines all conversation states

- PendingAction enum: the in-progress multi-turn flow per identity
  (None / IDLE means no flow is running)
- Which states accept a fixed vocabulary and abort on unrelated commands
- Allowed transitions between states
- StepResult returned by every state handler
"""

from enum import Enum
from typing import Dict, Optional, Set
from dataclasses import dataclass


class PendingAction(str, Enum):
    """
    Multi-turn flows. Stored as pending_action on the user document;
    pending_payload belongs to whichever value is stored there.
    """

    IDLE = "idle"

    # Reminder flow: pick tone -> confirm draft -> send
    CHOOSE_TONE = "choose_tone"
    CONFIRM_SEND = "confirm_send"

    # Upgrade flow: business name -> billing cycle -> trial / checkout
    ASK_NAME = "ask_name"
    ASK_CYCLE = "ask_cycle"

    # Support flow: one free-text report
    SUPPORT_COLLECT = "support_collect"


# States that expect a small fixed vocabulary. Unmatched input that looks
# like a known command aborts the flow and is resolved as a new intent.
VOCABULARY_STATES: Set[PendingAction] = {
    PendingAction.CHOOSE_TONE,
    PendingAction.CONFIRM_SEND,
    PendingAction.ASK_CYCLE,
}


VALID_TRANSITIONS: Dict[PendingAction, Set[PendingAction]] = {
    PendingAction.IDLE: {
        PendingAction.CHOOSE_TONE,
        PendingAction.CONFIRM_SEND,
        PendingAction.ASK_NAME,
        PendingAction.ASK_CYCLE,
        PendingAction.SUPPORT_COLLECT,
    },
    PendingAction.CHOOSE_TONE: {PendingAction.CONFIRM_SEND, PendingAction.IDLE},
    PendingAction.CONFIRM_SEND: {PendingAction.IDLE},
    PendingAction.ASK_NAME: {PendingAction.ASK_CYCLE, PendingAction.IDLE},
    PendingAction.ASK_CYCLE: {PendingAction.IDLE},
    PendingAction.SUPPORT_COLLECT: {PendingAction.IDLE},
}


def parse_pending_action(value: Optional[str]) -> PendingAction:
    """
    Maps the stored value to the enum. Missing or unrecognised values
    are treated as idle.
    """
    if not value:
        return PendingAction.IDLE
    try:
        return PendingAction(value)
    except ValueError:
        return PendingAction.IDLE


def is_valid_transition(from_state: PendingAction, to_state: PendingAction) -> bool:
    """
    Validates if a state transition is allowed.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is valid
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def stored_value(state: PendingAction) -> Optional[str]:
    """Idle is stored as None."""
    return None if state == PendingAction.IDLE else state.value


@dataclass
class StepResult:
    """
    Outcome of one state handler.

    reply: Text to send back (None when falling through)
    fall_through: The flow was aborted; resolve this same message as a
                  fresh intent
    """
    reply: Optional[str] = None
    fall_through: bool = False

    @classmethod
    def respond(cls, reply: str) -> "StepResult":
        return cls(reply=reply)

    @classmethod
    def abort(cls) -> "StepResult":
        return cls(fall_through=True)
