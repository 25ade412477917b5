from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Status code the WhatsApp web protocol uses for a session that was logged out remotely.
LOGGED_OUT_STATUS_CODE = 401
LOGGED_OUT_REASONS = {"logged_out", "loggedout", "logout", "logged out"}


@dataclass
class SessionHandle:
    session_id: str
    user_id: Optional[str] = None


class SessionEventKind(str, Enum):
    QR_ISSUED = "qr"
    PAIRING_REQUIRED = "pairing-required"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class SessionEvent:
    kind: SessionEventKind
    qr: Optional[str] = None
    reason: Optional[str] = None
    status_code: Optional[int] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_logout(self) -> bool:
        if self.kind != SessionEventKind.CLOSED:
            return False
        if self.status_code == LOGGED_OUT_STATUS_CODE:
            return True
        return (self.reason or "").strip().lower() in LOGGED_OUT_REASONS


class Transport(ABC):
    """Narrow capability interface over the messaging transport."""

    @abstractmethod
    async def start(self) -> SessionHandle:
        """Open a session. It may still need pairing when this returns."""
        pass

    @abstractmethod
    async def send_text(self, session: SessionHandle, conversation_key: str, text: str) -> None:
        pass

    @abstractmethod
    async def request_pairing_code(self, session: SessionHandle, phone_number: str) -> str:
        pass

    @abstractmethod
    async def set_presence(self, session: SessionHandle, conversation_key: str, state: str) -> None:
        pass

    @abstractmethod
    async def logout(self, session: SessionHandle) -> None:
        """Log the account out. The transport drops its persisted credentials."""
        pass

    async def close(self) -> None:
        return None
