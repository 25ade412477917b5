from unittest.mock import AsyncMock, Mock

import pytest

from bridge.errors import TransportError
from bridge.services.connection_service import ConnectionManager
from bridge.services.dispatch_service import DispatchEngine
from bridge.services.transport.base import SessionHandle, Transport
from bridge.services.trigger_service import TriggerConfig


class FakeTransport(Transport):
    """In-memory transport that records every outbound call."""

    def __init__(self):
        self.start_calls = 0
        self.fail_starts = 0
        self.fail_send = False
        self.sent = []
        self.presence = []
        self.pairing_requests = []
        self.logged_out = []
        self.closed = False

    async def start(self) -> SessionHandle:
        self.start_calls += 1
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise TransportError("sidecar unavailable")
        return SessionHandle(session_id=f"session-{self.start_calls}")

    async def send_text(self, session, conversation_key, text):
        if self.fail_send:
            raise TransportError("send failed")
        self.sent.append((conversation_key, text))

    async def request_pairing_code(self, session, phone_number):
        self.pairing_requests.append(phone_number)
        return "ABCD-1234"

    async def set_presence(self, session, conversation_key, state):
        self.presence.append((conversation_key, state))

    async def logout(self, session):
        self.logged_out.append(session.session_id)

    async def close(self):
        self.closed = True


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def triggers():
    return TriggerConfig(
        bot_names=["yesbank bot", "yes bank bot", "ai response"],
        bot_number_fallbacks=["65559051915364"],
        bot_commands=["/bot", "!bot"],
    )


@pytest.fixture
def backend():
    """Mock reasoning webhook client."""
    client = Mock()
    client.query = AsyncMock(return_value="Here is your answer")
    client.close = AsyncMock()
    return client


@pytest.fixture
def make_engine(transport, backend, triggers):
    def _make(ocr=None, **connection_kwargs):
        connection_kwargs.setdefault("reconnect_delay_seconds", 0)
        connection = ConnectionManager(transport, **connection_kwargs)
        return DispatchEngine(connection=connection, backend=backend, triggers=triggers, ocr=ocr)

    return _make
