from fastapi import HTTPException, Request, status

from bridge.services.dispatch_service import DispatchEngine


def get_engine(request: Request) -> DispatchEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bridge is starting")
    return engine
