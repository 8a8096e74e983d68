"""API layer — FastAPI application factory.

``create_app()`` is the single entry point for building the FastAPI app.
All dependencies are wired in the lifespan so that tests can override them
by calling ``create_app()`` with custom objects (a fake evaluator registry,
a notifier backed by ``httpx.MockTransport``).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from x402_sentinel import __version__
from x402_sentinel.api.middleware import (
    AccessLogMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    build_error_handler,
)
from x402_sentinel.api.routes import cron, health, operators, payments, watcher_types, watchers
from x402_sentinel.config import Settings, get_settings
from x402_sentinel.evaluators.registry import EvaluatorRegistry
from x402_sentinel.exceptions import SentinelError
from x402_sentinel.logging import configure_logging, get_logger
from x402_sentinel.services import open_services
from x402_sentinel.triggers.notifier import WebhookNotifier

log = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    registry: EvaluatorRegistry | None = None,
    notifier: WebhookNotifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override (used in tests).
        registry: Evaluator registry; the built-in evaluators when omitted.
        notifier: Webhook notifier; an httpx-backed one when omitted.

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

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("service_starting", version=__version__)
        async with open_services(settings, registry=registry, notifier=notifier) as services:
            app.state.settings = settings
            app.state.store = services.store
            app.state.registry = services.registry
            app.state.event_bus = services.event_bus
            app.state.catalog = services.catalog
            app.state.lifecycle = services.lifecycle
            app.state.engine = services.engine
            app.state.scheduler = services.scheduler
            log.info(
                "service_started",
                host=settings.server.host,
                port=settings.server.port,
                executors=services.registry.list(),
                trigger_mode=settings.engine.trigger_mode,
                scheduler_enabled=services.scheduler is not None,
            )
            yield
            log.info("service_stopping")

    app = FastAPI(
        title="x402-sentinel",
        description="Paid watcher marketplace with a webhook trigger engine.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware (order matters: outermost applied last)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RateLimitMiddleware, max_per_minute=settings.server.rate_limit_per_minute)
    app.add_middleware(RequestIDMiddleware)

    # Exception handlers
    app.add_exception_handler(SentinelError, build_error_handler())  # type: ignore[arg-type]

    # Routers
    app.include_router(health.router)
    app.include_router(operators.router)
    app.include_router(watcher_types.router)
    app.include_router(watchers.router)
    app.include_router(payments.router)
    app.include_router(cron.router)

    return app
