from bridge.services.transport.base import (
    SessionEvent,
    SessionEventKind,
    SessionHandle,
    Transport,
)
from bridge.services.transport.sidecar import SidecarTransport

__all__ = ["SessionEvent", "SessionEventKind", "SessionHandle", "SidecarTransport", "Transport"]
