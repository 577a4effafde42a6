"""Dev mode session state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    INACTIVE ──> WATCHING ──> BUILDING ──┬──> AWAITING_RELOAD_DECISION ──┬──> RELOADING ──> WATCHING
                   ▲  │                  │                               └──> WATCHING
                   │  │                  └──> BUILD_FAILED ──> WATCHING
                   │  └──> RELOADING  (manual reload)
                   │
    Any active state ──> INACTIVE  (deactivation)
"""
from __future__ import annotations

from .models import SessionState

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.INACTIVE: {
        SessionState.WATCHING,
    },
    SessionState.WATCHING: {
        SessionState.BUILDING,
        SessionState.RELOADING,
        SessionState.INACTIVE,
    },
    SessionState.BUILDING: {
        SessionState.AWAITING_RELOAD_DECISION,
        SessionState.BUILD_FAILED,
        SessionState.INACTIVE,
    },
    SessionState.AWAITING_RELOAD_DECISION: {
        SessionState.RELOADING,
        SessionState.WATCHING,
        SessionState.INACTIVE,
    },
    SessionState.RELOADING: {
        SessionState.WATCHING,
        SessionState.INACTIVE,
    },
    SessionState.BUILD_FAILED: {
        SessionState.WATCHING,
        SessionState.INACTIVE,
    },
}


def validate_transition(current: SessionState, target: SessionState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(sorted(s.value for s in allowed)) or "none"
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )


def is_active_state(state: SessionState) -> bool:
    return state is not SessionState.INACTIVE
