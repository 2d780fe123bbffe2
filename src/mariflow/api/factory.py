"""FastAPI application factory."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from mariflow.config import DEFAULT_API_KEY, Settings, load_settings
from mariflow.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_scope,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from mariflow.observability.logging import get_logger, set_log_level
from mariflow.version import __version__
from mariflow.whatsapp.bridge_client import BridgeClient
from mariflow.whatsapp.client import WhatsAppClient
from mariflow.whatsapp.errors import WhatsAppError
from mariflow.whatsapp.inline_client import InlineClient
from mariflow.whatsapp.service import WhatsAppService

from .envelope import register_exception_handlers
from .routers import public
from .routes import contacts, groups, messages, socket, webhooks_bridge, whatsapp

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


def build_client(settings: Settings) -> WhatsAppClient:
    """Underlying client for the configured WHATSAPP_BACKEND."""
    if settings.backend == "bridge":
        return BridgeClient.from_settings(settings)
    logger.warning(
        "inline backend active - sessions are simulated in memory; "
        "set WHATSAPP_BACKEND=bridge to drive a real WhatsApp Web sidecar"
    )
    return InlineClient(settings.session_path, settings.session_id)


async def _initialize_in_background(service: WhatsAppService) -> None:
    with correlation_scope():
        try:
            await service.initialize()
        except WhatsAppError as exc:
            # The API stays up; POST /whatsapp/initialize can retry
            logger.error(
                "automatic initialization failed",
                extra={"extra_fields": {"code": exc.code}},
            )


def create_app(
    settings: Settings | None = None,
    *,
    client: WhatsAppClient | None = None,
    service: WhatsAppService | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    Args:
        settings: Explicit settings. If None, read from the environment.
        client: Underlying client override (tests). Ignored if service is given.
        service: Fully built service override (tests).

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = load_settings()
    set_log_level(settings.log_level)

    if settings.api_key == DEFAULT_API_KEY:
        logger.warning("API_KEY not set - using the development default key")

    if service is None:
        service = WhatsAppService(
            client or build_client(settings),
            restart_delay=settings.restart_delay,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_task: asyncio.Task | None = None
        if settings.auto_initialize:
            init_task = asyncio.create_task(_initialize_in_background(service))
        try:
            yield
        finally:
            if init_task is not None and not init_task.done():
                init_task.cancel()
                await asyncio.gather(init_task, return_exceptions=True)
            await service.destroy()
            if isinstance(service.client, BridgeClient):
                await service.client.aclose()

    app = FastAPI(
        title="MariFlow WhatsApp API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.whatsapp = service

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    register_exception_handlers(app)

    app.include_router(public.router)
    app.include_router(socket.router)
    app.include_router(webhooks_bridge.router)
    for module in (whatsapp, messages, contacts, groups):
        app.include_router(module.router, prefix=API_PREFIX)

    return app
