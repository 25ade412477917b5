class BridgeError(Exception):
    """Base class for errors raised by the bridge."""


class BackendError(BridgeError):
    """The reasoning webhook failed: non-2xx status, network error or timeout."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ExtractionError(BridgeError):
    """No text could be read from an image attachment."""


class TransportError(BridgeError):
    """The transport rejected or failed an outbound operation."""


class SessionNotReadyError(BridgeError):
    """An operation needs a live transport session and there is none."""


class AlreadyConnectedError(BridgeError):
    """Pairing was requested for a session that is already authenticated."""


class QueueClosedError(BridgeError):
    """Work was submitted after the conversation queue was closed."""
