from bridge.schemas.inbound import InboundMessage, InboundMessagePayload, SessionEventPayload

__all__ = ["InboundMessage", "InboundMessagePayload", "SessionEventPayload"]
