"""Ingestion endpoints the transport sidecar pushes messages and lifecycle events to."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from bridge.config import settings
from bridge.logging_config import get_logger
from bridge.routers.deps import get_engine
from bridge.schemas.inbound import InboundMessagePayload, IngestResponse, SessionEventPayload
from bridge.services.dispatch_service import DispatchEngine

logger = get_logger("transport_router")

router = APIRouter(prefix="/transport")


def _require_transport_token(provided: Optional[str]) -> None:
    expected = settings.transport_token
    if not expected:
        return
    if not provided or provided != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid transport token")


@router.post("/messages", response_model=IngestResponse)
async def ingest_message(
    payload: InboundMessagePayload,
    engine: DispatchEngine = Depends(get_engine),
    x_transport_token: Optional[str] = Header(default=None, alias="X-Transport-Token"),
):
    _require_transport_token(x_transport_token)

    if not payload.is_notify:
        return IngestResponse(success=True, message="Ignored non-notify upsert")

    try:
        message = payload.to_inbound()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    result = await engine.handle_inbound(message)
    detail = f"{result.action}: {result.reason}" if result.reason else result.action
    return IngestResponse(success=result.action != "rejected", message=detail)


@router.post("/events", response_model=IngestResponse)
async def ingest_event(
    payload: SessionEventPayload,
    engine: DispatchEngine = Depends(get_engine),
    x_transport_token: Optional[str] = Header(default=None, alias="X-Transport-Token"),
):
    _require_transport_token(x_transport_token)

    try:
        event = payload.to_event()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    logger.debug(f"Session event received: {payload.event}")
    await engine.connection.handle_event(event)
    return IngestResponse(success=True, message=engine.connection.status().value)
