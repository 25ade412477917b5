from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bridge.config import settings
from bridge.logging_config import get_logger, setup_logging
from bridge.routers import session, transport
from bridge.services.dispatch_service import DispatchEngine

setup_logging(settings.log_level)

logger = get_logger("main")


def create_app(engine: Optional[DispatchEngine] = None) -> FastAPI:
    app = FastAPI(
        title="WA Bridge",
        description="Relays WhatsApp messages to a reasoning webhook",
        version="0.1.0",
    )

    cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
    if not cors_origins:
        cors_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session.router)
    app.include_router(transport.router)
    app.state.engine = engine

    @app.on_event("startup")
    async def start_engine() -> None:
        if app.state.engine is None:
            app.state.engine = DispatchEngine.create(settings)
        await app.state.engine.startup()
        logger.info("Bridge started")

    @app.on_event("shutdown")
    async def stop_engine() -> None:
        if app.state.engine is None:
            return
        await app.state.engine.shutdown()
        logger.info("Bridge stopped")

    return app


app = create_app()
