"""Draft state machine.

State Flow:
    INITIATED → STAGING → READY → COMMITTING → COMMITTED|FAILED|CONFLICT

Any pre-commit state may be abandoned to EXPIRED when its TTL lapses.
A FAILED commit can be retried (FAILED → READY) after re-validation.
A commit interrupted mid-write (worker crash, lost lock) is recovered by
compensating its records and moving COMMITTING → FAILED.

Terminal States: COMMITTED, EXPIRED
"""

from enum import Enum
from typing import List


class DraftState(str, Enum):
    """Draft state enumeration."""
    INITIATED = "INITIATED"
    STAGING = "STAGING"
    READY = "READY"
    COMMITTING = "COMMITTING"
    COMMITTED = "COMMITTED"
    CONFLICT = "CONFLICT"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


ALLOWED_TRANSITIONS = {
    DraftState.INITIATED: [
        DraftState.STAGING,
        DraftState.EXPIRED
    ],
    DraftState.STAGING: [
        DraftState.READY,
        DraftState.EXPIRED
    ],
    DraftState.READY: [
        DraftState.COMMITTING,
        DraftState.EXPIRED
    ],
    DraftState.COMMITTING: [
        DraftState.COMMITTED,
        DraftState.FAILED,
        DraftState.CONFLICT
    ],
    DraftState.FAILED: [
        DraftState.READY,
        DraftState.EXPIRED
    ],
    DraftState.CONFLICT: [DraftState.EXPIRED],
    DraftState.COMMITTED: [],  # Terminal state
    DraftState.EXPIRED: [],  # Terminal state
}

# States in which items and sections may still be changed
MUTABLE_STATES = (DraftState.INITIATED, DraftState.STAGING)


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


def get_allowed_transitions(state: DraftState) -> List[DraftState]:
    """Get list of allowed transitions from a given state."""
    return list(ALLOWED_TRANSITIONS.get(state, []))


def validate_transition(
    current_state: DraftState,
    new_state: DraftState
) -> None:
    """Validate that a state transition is allowed.

    Raises:
        StateTransitionError: If transition is not allowed
    """
    allowed = get_allowed_transitions(current_state)
    if new_state not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_state.value} -> {new_state.value}. "
            f"Allowed transitions from {current_state.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(
    current_state: DraftState,
    new_state: DraftState
) -> bool:
    """Check if a state transition is allowed without raising exception."""
    allowed = get_allowed_transitions(current_state)
    return new_state in allowed
