"""Tests for call state and history models."""

import pytest

from switchboard.domain.models.call import (
    TERMINAL_STATES,
    CallState,
    can_transition,
    format_duration,
)


@pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_terminal_states_have_no_exits(state):
    """Test that nothing leaves a terminal state."""
    assert state.is_terminal
    for target in CallState:
        assert not can_transition(state, target)


@pytest.mark.parametrize(
    "current,target,expected",
    [
        (CallState.IDLE, CallState.DIALING, True),
        (CallState.IDLE, CallState.RINGING, True),
        (CallState.DIALING, CallState.RINGING, True),
        (CallState.RINGING, CallState.CONNECTING, True),
        (CallState.CONNECTING, CallState.CONNECTED, True),
        (CallState.CONNECTED, CallState.RECONNECTING, True),
        (CallState.RECONNECTING, CallState.CONNECTED, True),
        (CallState.CONNECTED, CallState.RINGING, False),
        (CallState.IDLE, CallState.CONNECTED, False),
        (CallState.RINGING, CallState.ENDED, False),
    ],
)
def test_transitions(current, target, expected):
    assert can_transition(current, target) is expected


def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(42) == "42s"
    assert format_duration(185) == "3:05"
