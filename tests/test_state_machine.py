import pytest

from bridge.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    can_transition,
    close_target,
    pairing_state_for,
    transition,
)


class TestValidTransitions:
    def test_connecting_to_awaiting_qr(self):
        result = transition(SessionState.CONNECTING, SessionState.AWAITING_QR)
        assert result == SessionState.AWAITING_QR

    def test_awaiting_qr_to_connected(self):
        result = transition(SessionState.AWAITING_QR, SessionState.CONNECTED)
        assert result == SessionState.CONNECTED

    def test_connected_to_disconnected(self):
        result = transition(SessionState.CONNECTED, SessionState.DISCONNECTED)
        assert result == SessionState.DISCONNECTED

    def test_disconnected_to_connecting(self):
        result = transition(SessionState.DISCONNECTED, SessionState.CONNECTING)
        assert result == SessionState.CONNECTING

    def test_logged_out_only_leaves_through_connecting(self):
        result = transition(SessionState.LOGGED_OUT, SessionState.CONNECTING)
        assert result == SessionState.CONNECTING


class TestInvalidTransitions:
    def test_logged_out_to_connected(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.LOGGED_OUT, SessionState.CONNECTED)

    def test_logged_out_to_disconnected(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.LOGGED_OUT, SessionState.DISCONNECTED)

    def test_connected_to_awaiting_qr(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.CONNECTED, SessionState.AWAITING_QR)

    def test_disconnected_to_connected(self):
        with pytest.raises(InvalidTransitionError):
            transition(SessionState.DISCONNECTED, SessionState.CONNECTED)

    def test_error_message_names_states(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(SessionState.LOGGED_OUT, SessionState.CONNECTED)
        assert "logged_out -> connected" in str(exc_info.value)


class TestHelperFunctions:
    def test_pairing_state_for_qr(self):
        assert pairing_state_for("qr") == SessionState.AWAITING_QR

    def test_pairing_state_for_code(self):
        assert pairing_state_for("code") == SessionState.AWAITING_PAIRING_CODE

    def test_pairing_state_defaults_to_qr(self):
        assert pairing_state_for("") == SessionState.AWAITING_QR

    def test_close_target(self):
        assert close_target(logged_out=True) == SessionState.LOGGED_OUT
        assert close_target(logged_out=False) == SessionState.DISCONNECTED


class TestCanTransition:
    def test_valid_returns_true(self):
        assert can_transition(SessionState.CONNECTING, SessionState.CONNECTED) is True

    def test_invalid_returns_false(self):
        assert can_transition(SessionState.DISCONNECTED, SessionState.AWAITING_QR) is False
