import json
from typing import Any, Optional

import httpx

from bridge.errors import BackendError
from bridge.logging_config import get_logger

logger = get_logger("backend_service")

NO_RESPONSE_FALLBACK = "🤖 No response generated."


def build_payload(
    clean_text: str,
    message_type: str,
    language: str,
    is_group: bool,
    confirmed: Optional[bool] = None,
) -> dict:
    """Request body for the reasoning webhook."""
    payload = {
        "message": clean_text,
        "type": message_type,
        "language": language,
        "isGroup": is_group,
    }
    if confirmed is not None:
        payload["confirmed"] = confirmed
    return payload


def parse_response(raw_body: str) -> dict:
    """Parse the webhook body, treating anything that is not a JSON object as the reply itself."""
    if not raw_body or not raw_body.strip():
        return {}
    try:
        data = json.loads(raw_body)
    except ValueError:
        logger.debug("Backend returned non-JSON body, using it as reply")
        return {"reply": raw_body}
    if isinstance(data, str):
        return {"reply": data}
    if not isinstance(data, dict):
        return {"reply": raw_body}
    return data


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def extract_reply(data: dict) -> str:
    """Pick ``reply``, then ``output``, then the fixed fallback."""
    reply = _as_text(data.get("reply"))
    if reply:
        return reply
    output = _as_text(data.get("output"))
    if output:
        return output
    return NO_RESPONSE_FALLBACK


class BackendClient:
    """HTTP client for the reasoning webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def query(self, payload: dict) -> str:
        """POST the payload and return the reply text. Raises BackendError on any HTTP failure."""
        try:
            response = await self._client.post(
                self.webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Backend timeout: {e}")
            raise BackendError("Backend request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Backend request failed: {e}")
            raise BackendError(f"Backend request failed: {e}") from e

        logger.debug(f"Backend response: status={response.status_code}, body={response.text[:200]}")

        if not response.is_success:
            raise BackendError(f"Webhook HTTP {response.status_code}", status_code=response.status_code)

        return extract_reply(parse_response(response.text))

    async def close(self) -> None:
        await self._client.aclose()
