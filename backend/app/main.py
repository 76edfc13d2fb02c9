"""Auth Gateway API — FastAPI application factory and module-level app.

Invariants:
    - One ConnectionManager per app, on app.state (shared by gate, routes, lifecycle)
    - Middleware order per request: CORS → BodyLimit → RequestObserver →
      ReadinessGate → ErrorSink → route
    - Fallback strategy installed after every explicit router
    - Lifespan shutdown closes the cached connection (idempotent)

Design Decisions:
    - create_app() factory with injectable settings/manager/auth router, so tests
      and the lifecycle build their own instance; `app` kept for ASGI hosts
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import ErrorSinkMiddleware, register_error_handlers
from app.api.middleware import (
    BodyLimitMiddleware, ReadinessGateMiddleware, RequestObserverMiddleware,
)
from app.api.routes import auth, diagnostics
from app.api.routes.fallback import FallbackStrategy, select_fallback
from app.config import Settings, get_settings
from app.infrastructure.database import ConnectionManager
from app.infrastructure.error_sink import ErrorLogSink
from app.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Auth gateway started", extra={"phase": "startup"})
    yield
    logger.info("Auth gateway shutting down", extra={"phase": "shutdown"})
    await app.state.connection_manager.disconnect()


def create_app(
    settings: Settings | None = None,
    connection_manager: ConnectionManager | None = None,
    auth_router: APIRouter | None = None,
    fallback: FallbackStrategy | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="Auth Gateway API", version=settings.api_version, lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.connection_manager = (
        connection_manager or ConnectionManager.from_settings(settings)
    )

    # Starlette wraps the last-added middleware outermost
    app.add_middleware(
        ErrorSinkMiddleware,
        sink=ErrorLogSink(settings.error_log_path),
        verbose=not settings.is_production,
    )
    app.add_middleware(ReadinessGateMiddleware)
    app.add_middleware(
        RequestObserverMiddleware, threshold=settings.body_log_threshold,
    )
    app.add_middleware(BodyLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    register_error_handlers(app)

    # Routes: explicit registration, fallback last
    app.include_router(auth_router or auth.router, prefix=auth.AUTH_PREFIX)
    app.include_router(diagnostics.router)
    (fallback or select_fallback(settings)).install(app)

    return app


app = create_app()
