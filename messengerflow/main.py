"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from messengerflow.config import settings
from messengerflow.core.exceptions import PersistenceError
from messengerflow.services.change_bus import ChangeBus, create_change_bus

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    configure_logging()

    from messengerflow.db.session import init_db

    await init_db()

    bus: ChangeBus | None = getattr(app.state, "change_bus", None)
    if bus is None:
        bus = create_change_bus(
            settings.CHANGE_BUS_BACKEND,
            settings.REDIS_URL,
            settings.CHANGE_CHANNEL_PREFIX,
        )
        app.state.change_bus = bus
    await bus.start()

    # Setup telemetry
    from messengerflow.core.telemetry import setup_all_instrumentation

    setup_all_instrumentation(app)

    logger.info(f"MessengerFlow API started (change bus: {type(bus).__name__})")
    yield
    # Shutdown
    await bus.close()


def create_app(change_bus: ChangeBus | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="MessengerFlow API",
        description="Messenger support inbox: webhook ingestion and realtime fan-out",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        openapi_url="/api/openapi.json" if settings.DEBUG else None,
    )
    if change_bus is not None:
        app.state.change_bus = change_bus

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CORS_ORIGIN],
        allow_credentials=settings.CORS_ORIGIN != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Store unavailable"})

    # Include API routes
    from messengerflow.api.v1.router import api_router

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
