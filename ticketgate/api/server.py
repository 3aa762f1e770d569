"""API layer — FastAPI application factory.

``create_app()`` is the single entry point for building the FastAPI app.
The ``Runtime`` is built at startup so that tests can inject a provider
(usually ``MemoryChannelProvider``) and custom settings.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketgate import __version__
from ticketgate.api.middleware import (
    AccessLogMiddleware,
    RequestIDMiddleware,
    build_error_handler,
)
from ticketgate.api.routes import catalog, health, sales, security, sessions
from ticketgate.config import Settings, get_settings
from ticketgate.exceptions import TicketGateError
from ticketgate.logging import configure_logging, get_logger
from ticketgate.platform.provider import ChannelProvider
from ticketgate.runtime import Runtime

log = get_logger(__name__)


def create_app(settings: Settings | None = None, provider: ChannelProvider | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override (used in tests).
        provider: Channel provider; ``None`` resolves ``settings.platform.provider``.

    Returns:
        A fully configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    app = FastAPI(
        title="TicketGate",
        description="Admin surface for gated single-session tickets and confirmed purchases.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: outermost applied last)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost", "http://127.0.0.1"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(TicketGateError, build_error_handler())  # type: ignore[arg-type]

    # Routers
    app.include_router(health.router)
    app.include_router(catalog.router)
    app.include_router(sales.router)
    app.include_router(sessions.router)
    app.include_router(security.router)

    # Startup / shutdown lifecycle
    @app.on_event("startup")
    async def startup() -> None:
        log.info("service_starting", version=__version__)
        runtime = Runtime(settings, provider=provider)
        await runtime.start()

        app.state.settings = settings
        app.state.runtime = runtime

        log.info(
            "service_ready",
            host=settings.server.host,
            port=settings.server.port,
            category_configured=runtime.sessions.category_id is not None,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("service_stopping")
        if hasattr(app.state, "runtime"):
            await app.state.runtime.stop()

    return app
