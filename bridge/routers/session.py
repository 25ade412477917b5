from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from bridge.errors import AlreadyConnectedError, SessionNotReadyError, TransportError
from bridge.logging_config import get_logger
from bridge.routers.deps import get_engine
from bridge.schemas.inbound import LogoutResponse, PairCodeResponse, QrResponse, StatusResponse
from bridge.services.dispatch_service import DispatchEngine

logger = get_logger("session_router")

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
def session_status(engine: DispatchEngine = Depends(get_engine)):
    return StatusResponse(**engine.connection.snapshot())


@router.get("/qr", response_model=QrResponse)
def session_qr(engine: DispatchEngine = Depends(get_engine)):
    connection = engine.connection
    if connection.is_connected:
        return QrResponse(message="Already connected")
    if not connection.latest_qr:
        return QrResponse(message="QR not generated yet")
    return QrResponse(qr=connection.latest_qr)


@router.get("/pair-code", response_model=PairCodeResponse)
async def pair_code(
    number: Optional[str] = Query(default=None),
    engine: DispatchEngine = Depends(get_engine),
):
    if not number:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Number missing")

    try:
        code = await engine.connection.request_pairing_code(number)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (AlreadyConnectedError, SessionNotReadyError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except TransportError as e:
        logger.error(f"Pairing code request failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return PairCodeResponse(pairingCode=code)


@router.post("/logout", response_model=LogoutResponse)
async def logout(engine: DispatchEngine = Depends(get_engine)):
    try:
        await engine.connection.logout()
    except SessionNotReadyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except TransportError as e:
        logger.error(f"Logout failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return LogoutResponse(status="Logged out")


@router.get("/health")
def health(engine: DispatchEngine = Depends(get_engine)):
    return {"status": "ok", **engine.snapshot()}
