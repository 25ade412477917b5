from typing import Optional

import httpx

from bridge.errors import TransportError
from bridge.logging_config import get_logger
from bridge.services.transport.base import SessionHandle, Transport

logger = get_logger("transport.sidecar")


class SidecarTransport(Transport):
    """Transport backed by a WhatsApp web sidecar that exposes a small REST API.

    The sidecar owns the socket, credential storage and media download. It pushes
    lifecycle events and inbound messages back to ``/transport/events`` and
    ``/transport/messages``.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Sidecar request failed: path={path}, error={e}")
            raise TransportError(f"Sidecar request to {path} failed: {e}") from e

        if response.status_code >= 300:
            logger.error(f"Sidecar error: path={path}, status={response.status_code}, body={response.text[:200]}")
            raise TransportError(f"Sidecar {path} returned {response.status_code}")

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def start(self) -> SessionHandle:
        data = await self._post("/session/start", {})
        session_id = data.get("sessionId") or data.get("session_id")
        if not session_id:
            raise TransportError("Sidecar did not return a session id")
        return SessionHandle(session_id=str(session_id), user_id=data.get("userId"))

    async def send_text(self, session: SessionHandle, conversation_key: str, text: str) -> None:
        await self._post(
            "/messages/text",
            {"sessionId": session.session_id, "jid": conversation_key, "text": text},
        )

    async def request_pairing_code(self, session: SessionHandle, phone_number: str) -> str:
        data = await self._post(
            "/session/pairing-code",
            {"sessionId": session.session_id, "phoneNumber": phone_number},
        )
        code = data.get("pairingCode") or data.get("code")
        if not code:
            raise TransportError("Sidecar did not return a pairing code")
        return str(code)

    async def set_presence(self, session: SessionHandle, conversation_key: str, state: str) -> None:
        await self._post(
            "/presence",
            {"sessionId": session.session_id, "jid": conversation_key, "state": state},
        )

    async def logout(self, session: SessionHandle) -> None:
        await self._post("/session/logout", {"sessionId": session.session_id})

    async def close(self) -> None:
        await self._client.aclose()
