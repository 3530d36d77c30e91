"""Fetch-session state machine definitions."""

from enum import Enum


class SessionState(str, Enum):
    """Stages of one fetch session."""

    LAUNCHED = "LAUNCHED"
    NAVIGATING = "NAVIGATING"
    EARLY_SNAPSHOT = "EARLY_SNAPSHOT"
    SETTLING = "SETTLING"
    CHALLENGE_CHECK = "CHALLENGE_CHECK"
    FINAL_SNAPSHOT = "FINAL_SNAPSHOT"
    CLOSED = "CLOSED"
    DONE = "DONE"
    FAILED = "FAILED"


# Accepting ends of a run
TERMINAL_STATES = {SessionState.DONE, SessionState.FAILED}

# Reachable from any non-terminal state, in addition to the transitions below
INTERRUPT_STATES = {SessionState.CLOSED, SessionState.FAILED}

# Normal state transitions
STATE_TRANSITIONS: dict[SessionState, list[SessionState]] = {
    SessionState.LAUNCHED: [SessionState.NAVIGATING],
    SessionState.NAVIGATING: [SessionState.EARLY_SNAPSHOT],
    SessionState.EARLY_SNAPSHOT: [SessionState.SETTLING],
    SessionState.SETTLING: [SessionState.CHALLENGE_CHECK],
    SessionState.CHALLENGE_CHECK: [SessionState.FINAL_SNAPSHOT],
    SessionState.FINAL_SNAPSHOT: [SessionState.DONE],
    SessionState.CLOSED: [SessionState.DONE, SessionState.FAILED],
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Return whether *current* → *target* is a legal transition."""
    if current in TERMINAL_STATES:
        return False
    if target in INTERRUPT_STATES and current is not SessionState.CLOSED:
        return True
    return target in STATE_TRANSITIONS.get(current, [])
