from __future__ import annotations

import pytest

from devmode.engine.lifecycle import VALID_TRANSITIONS, is_active_state, validate_transition
from devmode.engine.models import SessionState


def test_every_state_has_a_transition_entry() -> None:
    assert set(VALID_TRANSITIONS) == set(SessionState)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (SessionState.INACTIVE, SessionState.WATCHING),
        (SessionState.WATCHING, SessionState.BUILDING),
        (SessionState.BUILDING, SessionState.AWAITING_RELOAD_DECISION),
        (SessionState.BUILDING, SessionState.BUILD_FAILED),
        (SessionState.AWAITING_RELOAD_DECISION, SessionState.RELOADING),
        (SessionState.AWAITING_RELOAD_DECISION, SessionState.WATCHING),
        (SessionState.RELOADING, SessionState.WATCHING),
        (SessionState.BUILD_FAILED, SessionState.WATCHING),
        (SessionState.BUILDING, SessionState.INACTIVE),
    ],
)
def test_valid_transitions_pass(current: SessionState, target: SessionState) -> None:
    validate_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (SessionState.INACTIVE, SessionState.BUILDING),
        (SessionState.BUILD_FAILED, SessionState.RELOADING),
        (SessionState.BUILDING, SessionState.RELOADING),
        (SessionState.RELOADING, SessionState.BUILDING),
    ],
)
def test_invalid_transitions_raise(current: SessionState, target: SessionState) -> None:
    with pytest.raises(ValueError, match="Invalid state transition"):
        validate_transition(current, target)


def test_failed_build_cannot_reach_reloading_directly() -> None:
    assert SessionState.RELOADING not in VALID_TRANSITIONS[SessionState.BUILD_FAILED]


def test_is_active_state() -> None:
    assert not is_active_state(SessionState.INACTIVE)
    assert all(is_active_state(s) for s in SessionState if s is not SessionState.INACTIVE)
