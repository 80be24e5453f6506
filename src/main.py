from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.config import Settings, get_settings
from src.dependencies import Container
from src.messaging.api import router as messaging_router
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.infrastructure.observability.logger import bind_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Attaches a request id to request.state and binds it (with the team id
    header, when present) to every log line of the request.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        bind_context(request_id=request_id, team_id=request.headers.get("X-Team-Id"))
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or Container(settings)
        if settings.ENABLE_RETRY_WORKER and not settings.TESTING:
            app.state.container.retry_scheduler.start_background()
        logger.info("app_started", environment=settings.ENVIRONMENT)
        try:
            yield
        finally:
            await app.state.container.aclose()
            logger.info("app_stopped")

    app = FastAPI(
        title="DriverConnect Bridge API",
        version=settings.PROJECT_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_middleware(RequestContextMiddleware)

    # Routers
    app.include_router(messaging_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {"message": "DriverConnect Bridge API", "docs": "/docs", "health": "/health"}

    @app.get("/health", tags=["Root"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
