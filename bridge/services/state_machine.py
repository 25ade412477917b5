from enum import Enum


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_QR = "awaiting_qr"
    AWAITING_PAIRING_CODE = "awaiting_pairing_code"
    CONNECTED = "connected"
    LOGGED_OUT = "logged_out"


# CONNECTING is reachable from everywhere: an explicit restart may begin a new attempt at any time.
VALID_TRANSITIONS = {
    SessionState.DISCONNECTED: [SessionState.CONNECTING],
    SessionState.CONNECTING: [
        SessionState.AWAITING_QR,
        SessionState.AWAITING_PAIRING_CODE,
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
        SessionState.LOGGED_OUT,
    ],
    SessionState.AWAITING_QR: [
        SessionState.CONNECTING,
        SessionState.AWAITING_PAIRING_CODE,
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
        SessionState.LOGGED_OUT,
    ],
    SessionState.AWAITING_PAIRING_CODE: [
        SessionState.CONNECTING,
        SessionState.AWAITING_QR,
        SessionState.CONNECTED,
        SessionState.DISCONNECTED,
        SessionState.LOGGED_OUT,
    ],
    SessionState.CONNECTED: [
        SessionState.CONNECTING,
        SessionState.DISCONNECTED,
        SessionState.LOGGED_OUT,
    ],
    SessionState.LOGGED_OUT: [SessionState.CONNECTING],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SessionState, to_state: SessionState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: SessionState, to_state: SessionState) -> SessionState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def pairing_state_for(method: str) -> SessionState:
    """State entered when the transport asks for pairing with the given method."""
    if (method or "").strip().lower() in {"code", "pairing_code", "pairing-code"}:
        return SessionState.AWAITING_PAIRING_CODE
    return SessionState.AWAITING_QR


def close_target(logged_out: bool) -> SessionState:
    """State entered when the session closes."""
    return SessionState.LOGGED_OUT if logged_out else SessionState.DISCONNECTED
