import base64
import binascii
from dataclasses import dataclass
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from bridge.services.transport.base import SessionEvent, SessionEventKind

GROUP_JID_SUFFIX = "@g.us"

EVENT_ALIASES = {
    "qr": SessionEventKind.QR_ISSUED,
    "qr-issued": SessionEventKind.QR_ISSUED,
    "pairing-required": SessionEventKind.PAIRING_REQUIRED,
    "pairing": SessionEventKind.PAIRING_REQUIRED,
    "ready": SessionEventKind.READY,
    "open": SessionEventKind.READY,
    "closed": SessionEventKind.CLOSED,
    "close": SessionEventKind.CLOSED,
}


@dataclass
class InboundMessage:
    conversation_key: str
    is_group: bool
    body: str = ""
    attachment: Optional[bytes] = None
    attachment_mime: Optional[str] = None
    sender_is_self: bool = False
    message_id: Optional[str] = None


class InboundMessagePayload(BaseModel):
    remoteJid: str = Field(validation_alias=AliasChoices("remoteJid", "remote_jid", "jid"))
    fromMe: bool = Field(default=False, validation_alias=AliasChoices("fromMe", "from_me"))
    messageId: Optional[str] = Field(default=None, validation_alias=AliasChoices("messageId", "message_id", "id"))
    upsertType: str = Field(default="notify", validation_alias=AliasChoices("upsertType", "type"))
    messageType: str = "text"
    text: Optional[str] = None
    caption: Optional[str] = None
    mediaBase64: Optional[str] = Field(default=None, validation_alias=AliasChoices("mediaBase64", "mediaData"))
    mimetype: Optional[str] = None

    @property
    def is_notify(self) -> bool:
        return self.upsertType == "notify"

    def to_inbound(self) -> InboundMessage:
        """Convert to the dispatch model. Raises ValueError on undecodable media."""
        attachment = None
        if self.messageType == "image" and self.mediaBase64:
            try:
                attachment = base64.b64decode(self.mediaBase64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError("mediaBase64 is not valid base64") from e

        return InboundMessage(
            conversation_key=self.remoteJid,
            is_group=self.remoteJid.endswith(GROUP_JID_SUFFIX),
            body=self.text or self.caption or "",
            attachment=attachment,
            attachment_mime=self.mimetype,
            sender_is_self=self.fromMe,
            message_id=self.messageId,
        )


class SessionEventPayload(BaseModel):
    event: str = Field(validation_alias=AliasChoices("event", "connection"))
    qr: Optional[str] = None
    reason: Optional[str] = None
    statusCode: Optional[int] = Field(default=None, validation_alias=AliasChoices("statusCode", "status_code"))
    userId: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id", "user"))
    sessionId: Optional[str] = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))

    def to_event(self) -> SessionEvent:
        kind = EVENT_ALIASES.get(self.event.strip().lower())
        if kind is None:
            raise ValueError(f"Unknown session event: {self.event}")
        return SessionEvent(
            kind=kind,
            qr=self.qr,
            reason=self.reason,
            status_code=self.statusCode,
            user_id=self.userId,
            session_id=self.sessionId,
        )


class IngestResponse(BaseModel):
    success: bool
    message: str


class StatusResponse(BaseModel):
    state: str
    connected: bool
    user: Optional[str] = None
    hasQr: bool = False
    reconnectPending: bool = False


class QrResponse(BaseModel):
    qr: Optional[str] = None
    message: Optional[str] = None


class PairCodeResponse(BaseModel):
    pairingCode: str


class LogoutResponse(BaseModel):
    status: str
