import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from bridge.config import Settings
from bridge.errors import BackendError, ExtractionError, QueueClosedError
from bridge.logging_config import ConversationLogger, get_logger
from bridge.schemas.inbound import InboundMessage
from bridge.services.alert_service import alert_error
from bridge.services.backend_service import BackendClient, build_payload
from bridge.services.confirmation_service import (
    ConfirmationOutcome,
    ConfirmationTracker,
    is_confirmation_request,
)
from bridge.services.connection_service import ConnectionManager
from bridge.services.ocr_service import OCRAdapter, TesseractOCR, read_image_text
from bridge.services.queue_service import ConversationQueue
from bridge.services.transport.base import Transport
from bridge.services.transport.sidecar import SidecarTransport
from bridge.services.trigger_service import (
    TriggerConfig,
    detect_language,
    evaluate_trigger,
    load_trigger_config,
)

logger = get_logger("dispatch_service")

MSG_PLEASE_WAIT = "⏳ Please wait..."
MSG_SOMETHING_WENT_WRONG = "⚠️ Something went wrong."
MSG_COULD_NOT_READ = "⚠️ Could not read any text from the image."
MSG_CANCELLED = "👍 Okay, cancelled."
MSG_CONFIRM_PROMPT = "Please reply *yes* or *no*."

SEND_FAILURE_ALERT_THRESHOLD = 3


@dataclass
class DispatchResult:
    action: str
    reason: Optional[str] = None
    future: Optional[asyncio.Future] = None


class DispatchEngine:
    """Per-process dispatch state: queue chains, busy counters, pending confirmations and the session.

    Built once by the app at startup and shut down (draining in-flight work) on exit.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        backend: BackendClient,
        triggers: TriggerConfig,
        ocr: Optional[OCRAdapter] = None,
        queue: Optional[ConversationQueue] = None,
        confirmations: Optional[ConfirmationTracker] = None,
    ):
        self.connection = connection
        self.backend = backend
        self.triggers = triggers
        self.ocr = ocr
        self.queue = queue or ConversationQueue()
        self.confirmations = confirmations or ConfirmationTracker()
        self._send_failures = 0

    @classmethod
    def create(
        cls,
        settings: Settings,
        transport: Optional[Transport] = None,
        backend: Optional[BackendClient] = None,
        ocr: Optional[OCRAdapter] = None,
    ) -> "DispatchEngine":
        transport = transport or SidecarTransport(
            settings.transport_base_url,
            token=settings.transport_token,
            timeout_seconds=settings.transport_timeout_seconds,
        )
        connection = ConnectionManager(
            transport,
            pairing_method=settings.pairing_method,
            reconnect_delay_seconds=settings.reconnect_delay_seconds,
            logout_restart_delay_seconds=settings.logout_restart_delay_seconds,
            pairing_ready_timeout_seconds=settings.pairing_ready_timeout_seconds,
        )
        backend = backend or BackendClient(
            settings.backend_webhook_url,
            timeout_seconds=settings.backend_timeout_seconds,
        )
        if ocr is None and settings.ocr_enabled:
            try:
                ocr = TesseractOCR(lang=settings.ocr_lang, tesseract_cmd=settings.tesseract_cmd)
            except ExtractionError as e:
                logger.warning(f"OCR disabled: {e}")

        triggers = load_trigger_config(
            settings.bot_names,
            settings.bot_number_fallbacks,
            settings.bot_commands,
            settings.triggers_file,
        )
        return cls(connection=connection, backend=backend, triggers=triggers, ocr=ocr)

    async def startup(self) -> None:
        await self.connection.connect()

    async def shutdown(self) -> None:
        logger.info("Draining conversation queue", extra={"context": {"active": len(self.queue.active_keys())}})
        await self.queue.close()
        await self.connection.shutdown()
        await self.backend.close()

    async def handle_inbound(self, message: InboundMessage) -> DispatchResult:
        """Filter an inbound message, apply any pending confirmation, and queue the work."""
        decision = evaluate_trigger(message, self.triggers)
        if not decision.accepted:
            return DispatchResult(action="skipped", reason=decision.reason)

        key = message.conversation_key
        log = ConversationLogger(logger, {"conversation": key, "message_id": message.message_id})

        if message.attachment is not None:
            log.info("Image message accepted")
            return await self._submit(key, lambda: self._answer_image(message, decision.clean_text))

        resolution = self.confirmations.resolve(key, decision.clean_text)

        if resolution.outcome == ConfirmationOutcome.CONFIRMED:
            log.info("Confirmation accepted, asking backend again")
            question = resolution.original_question or ""
            return await self._submit(
                key,
                lambda: self._answer_text(key, question, message.is_group, confirmed=True),
            )

        if resolution.outcome == ConfirmationOutcome.CANCELLED:
            log.info("Confirmation declined")
            return await self._submit(
                key,
                lambda: self._send_notice(key, MSG_CANCELLED),
                notify_busy=False,
                action="cancelled",
            )

        if resolution.outcome == ConfirmationOutcome.UNCLEAR:
            log.info("Unclear confirmation reply, asking again")
            return await self._submit(
                key,
                lambda: self._send_notice(key, MSG_CONFIRM_PROMPT),
                notify_busy=False,
                action="reprompted",
            )

        if resolution.outcome == ConfirmationOutcome.SUPERSEDED:
            log.info("Pending confirmation dropped for a new question")

        text = decision.clean_text
        return await self._submit(key, lambda: self._answer_text(key, text, message.is_group))

    async def _submit(
        self,
        key: str,
        work: Callable[[], Awaitable[None]],
        *,
        notify_busy: bool = True,
        action: str = "queued",
    ) -> DispatchResult:
        if self.queue.closed:
            logger.warning("Queue closed, dropping message", extra={"context": {"conversation": key}})
            return DispatchResult(action="rejected", reason="shutting_down")

        busy = self.queue.is_busy(key)
        # The slot is taken before any await so arrival order is kept.
        try:
            future = self.queue.enqueue(key, lambda: self._guarded(key, work))
        except QueueClosedError:
            return DispatchResult(action="rejected", reason="shutting_down")

        if notify_busy and busy:
            await self._safe_send(key, MSG_PLEASE_WAIT)
        return DispatchResult(action=action, future=future)

    async def _guarded(self, key: str, work: Callable[[], Awaitable[None]]) -> None:
        try:
            await work()
        except Exception as e:
            logger.error(
                f"Dispatch task failed: {e}",
                exc_info=True,
                extra={"context": {"conversation": key}},
            )
            await self._safe_send(key, MSG_SOMETHING_WENT_WRONG)

    async def _answer_text(self, key: str, text: str, is_group: bool, confirmed: Optional[bool] = None) -> None:
        await self._show_typing(key)
        payload = build_payload(text, "text", detect_language(text), is_group, confirmed=confirmed)
        await self._relay(key, text, payload)

    async def _answer_image(self, message: InboundMessage, caption: str) -> None:
        key = message.conversation_key
        await self._show_typing(key)
        try:
            extracted = await read_image_text(self.ocr, message.attachment or b"")
        except ExtractionError as e:
            logger.warning(f"Image text extraction failed: {e}", extra={"context": {"conversation": key}})
            await self._safe_send(key, MSG_COULD_NOT_READ)
            return

        text = f"{caption}\n\n{extracted}" if caption else extracted
        payload = build_payload(text, "image", detect_language(extracted), message.is_group)
        await self._relay(key, text, payload)

    async def _relay(self, key: str, question: str, payload: dict) -> None:
        try:
            reply = await self.backend.query(payload)
        except BackendError as e:
            logger.error(
                f"Backend failed: {e}",
                extra={"context": {"conversation": key, "status_code": e.status_code}},
            )
            await self._safe_send(key, MSG_SOMETHING_WENT_WRONG)
            return

        if is_confirmation_request(reply):
            self.confirmations.remember(key, question)
        await self._safe_send(key, reply)

    async def _send_notice(self, key: str, text: str) -> None:
        await self._safe_send(key, text)

    async def _show_typing(self, key: str) -> None:
        try:
            await self.connection.set_presence(key, "composing")
        except Exception as e:
            logger.debug(f"Presence update failed: {e}")

    async def _safe_send(self, key: str, text: str) -> bool:
        """Send a text; failures are logged and reported, never raised."""
        try:
            await self.connection.send_text(key, text)
        except Exception as e:
            self._send_failures += 1
            logger.error(
                f"Send failed: {e}",
                extra={"context": {"conversation": key, "consecutive_failures": self._send_failures}},
            )
            if self._send_failures == SEND_FAILURE_ALERT_THRESHOLD:
                await alert_error("WhatsApp sends are failing", {"jid": key, "error": str(e)})
            return False
        self._send_failures = 0
        return True

    def snapshot(self) -> dict:
        return {
            "session": self.connection.snapshot(),
            "activeConversations": len(self.queue.active_keys()),
            "pendingConfirmations": len(self.confirmations),
        }
