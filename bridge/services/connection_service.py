import asyncio
import re
from collections import deque
from typing import Deque, Optional

from bridge.errors import AlreadyConnectedError, SessionNotReadyError
from bridge.logging_config import get_logger
from bridge.services.alert_service import alert_warning
from bridge.services.state_machine import (
    InvalidTransitionError,
    SessionState,
    close_target,
    pairing_state_for,
    transition,
)
from bridge.services.transport.base import SessionEvent, SessionEventKind, SessionHandle, Transport

logger = get_logger("connection_service")


class ConnectionManager:
    """Owns the single transport session and its lifecycle state.

    Lifecycle events from the transport drive the state machine. A closed
    session is restarted after a fixed delay unless it was logged out, in which
    case the manager stays in LOGGED_OUT until ``restart()`` is called after the
    account has been paired again.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        pairing_method: str = "qr",
        reconnect_delay_seconds: float = 2.0,
        logout_restart_delay_seconds: float = 1.0,
        pairing_ready_timeout_seconds: float = 10.0,
    ):
        self.transport = transport
        self.pairing_method = pairing_method
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.logout_restart_delay_seconds = logout_restart_delay_seconds
        self.pairing_ready_timeout_seconds = pairing_ready_timeout_seconds

        self._state = SessionState.CONNECTING
        self._session: Optional[SessionHandle] = None
        self._socket_live = asyncio.Event()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._restart_after_logout = False
        self._retired_session_ids: Deque[str] = deque(maxlen=16)

        self.latest_qr: Optional[str] = None
        self.pairing_code: Optional[str] = None
        self.user_id: Optional[str] = None

    def status(self) -> SessionState:
        return self._state

    def current_session(self) -> Optional[SessionHandle]:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED and self._session is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _apply(self, new_state: SessionState) -> bool:
        if new_state == self._state:
            return True
        try:
            self._state = transition(self._state, new_state)
        except InvalidTransitionError as e:
            logger.warning(f"Ignoring session event: {e}")
            return False
        logger.info("Session state changed", extra={"context": {"state": self._state.value}})
        return True

    def _drop_session(self) -> None:
        if self._session is not None:
            self._retired_session_ids.append(self._session.session_id)
        self._session = None
        self._socket_live.clear()
        self.latest_qr = None
        self.pairing_code = None

    async def start(self) -> SessionHandle:
        """Open a transport session and return its handle (pairing may still be pending)."""
        self._apply(SessionState.CONNECTING)
        self._restart_after_logout = False
        self._socket_live.clear()

        session = await self.transport.start()
        # A sidecar may reuse ids across restarts.
        while session.session_id in self._retired_session_ids:
            self._retired_session_ids.remove(session.session_id)
        self._session = session
        self._socket_live.set()
        logger.info("Transport session started", extra={"context": {"session_id": session.session_id}})
        return session

    async def restart(self) -> SessionHandle:
        """Explicit restart. The only way out of LOGGED_OUT."""
        self._cancel_reconnect()
        self._drop_session()
        return await self.start()

    def _is_stale(self, event: SessionEvent) -> bool:
        """Whether the event belongs to a session that was already replaced or closed."""
        if not event.session_id:
            return False
        if event.session_id in self._retired_session_ids:
            return True
        return self._session is not None and event.session_id != self._session.session_id

    async def handle_event(self, event: SessionEvent) -> None:
        if self._is_stale(event):
            logger.info(
                "Ignoring event from a previous session",
                extra={"context": {"event": event.kind.value, "session_id": event.session_id}},
            )
            return

        if event.kind == SessionEventKind.QR_ISSUED:
            if self._apply(SessionState.AWAITING_QR):
                self.latest_qr = event.qr
                logger.info("QR issued, waiting for scan")

        elif event.kind == SessionEventKind.PAIRING_REQUIRED:
            self._apply(pairing_state_for(self.pairing_method))

        elif event.kind == SessionEventKind.READY:
            if self._apply(SessionState.CONNECTED):
                self.latest_qr = None
                self.pairing_code = None
                self.user_id = event.user_id
                if self._session is not None and event.user_id:
                    self._session.user_id = event.user_id
                logger.info("WhatsApp connected", extra={"context": {"user": event.user_id}})

        elif event.kind == SessionEventKind.CLOSED:
            await self._handle_closed(event)

    async def _handle_closed(self, event: SessionEvent) -> None:
        logger.warning(
            "Session closed",
            extra={"context": {"reason": event.reason, "status_code": event.status_code}},
        )
        self._drop_session()

        if event.is_logout:
            self._apply(close_target(logged_out=True))
            self.user_id = None
            if not self._restart_after_logout:
                self._cancel_reconnect()
                await alert_warning(
                    "WhatsApp session logged out, pairing required",
                    {"reason": event.reason, "status_code": event.status_code},
                )
            return

        if not self._apply(close_target(logged_out=False)):
            return
        self.schedule_reconnect(self.reconnect_delay_seconds)

    def schedule_reconnect(self, delay_seconds: float) -> bool:
        """Schedule one restart. Returns False if one is already pending."""
        if self.reconnect_pending:
            return False
        logger.info(f"Reconnecting in {delay_seconds}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_seconds))
        return True

    async def connect(self) -> bool:
        """Like start(), but a failure schedules another attempt instead of raising."""
        try:
            await self.start()
            return True
        except Exception as e:
            logger.error(f"Transport start failed: {e}", exc_info=True)
            self._drop_session()
            if self._apply(SessionState.DISCONNECTED):
                self.schedule_reconnect(self.reconnect_delay_seconds)
            return False

    async def _reconnect_after(self, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def request_pairing_code(self, phone_number: str) -> str:
        """Ask the transport for a pairing code, waiting a bounded time for a live socket."""
        digits = re.sub(r"\D", "", phone_number or "")
        if not digits:
            raise ValueError("Number missing")
        if self._state == SessionState.CONNECTED:
            raise AlreadyConnectedError("Already connected")

        if self._session is None:
            try:
                await asyncio.wait_for(self._socket_live.wait(), timeout=self.pairing_ready_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise SessionNotReadyError("Socket not ready") from e

        session = self._session
        if session is None:
            raise SessionNotReadyError("Socket not ready")

        code = await self.transport.request_pairing_code(session, digits)
        self.pairing_code = code
        self._apply(SessionState.AWAITING_PAIRING_CODE)
        logger.info("Pairing code issued")
        return code

    async def logout(self) -> None:
        """Log the account out and start a fresh pairing session shortly after."""
        session = self._session
        if session is None:
            raise SessionNotReadyError("Socket not ready")

        self._restart_after_logout = True
        await self.transport.logout(session)
        self._drop_session()
        self.user_id = None
        self._apply(SessionState.LOGGED_OUT)
        logger.info("Logged out")
        self.schedule_reconnect(self.logout_restart_delay_seconds)

    async def send_text(self, conversation_key: str, text: str) -> None:
        session = self._session
        if session is None:
            raise SessionNotReadyError("No live transport session")
        await self.transport.send_text(session, conversation_key, text)

    async def set_presence(self, conversation_key: str, state: str = "composing") -> None:
        session = self._session
        if session is None:
            raise SessionNotReadyError("No live transport session")
        await self.transport.set_presence(session, conversation_key, state)

    def snapshot(self) -> dict:
        return {
            "state": self._state.value,
            "connected": self.is_connected,
            "user": self.user_id,
            "hasQr": self.latest_qr is not None,
            "reconnectPending": self.reconnect_pending,
        }

    async def shutdown(self) -> None:
        self._cancel_reconnect()
        await self.transport.close()
