"""Session lifecycle, account info and event stream endpoints.

GET  /whatsapp/status          -> session snapshot
GET  /whatsapp/qr              -> outstanding QR challenge (404 if none)
POST /whatsapp/initialize      -> start the client
POST /whatsapp/restart         -> destroy, wait, start again
POST /whatsapp/logout          -> drop credentials
GET  /whatsapp/info            -> paired account info
GET  /whatsapp/stats           -> counters
POST /whatsapp/status-message  -> set the profile "about" text
GET  /whatsapp/events          -> server-sent event stream
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from mariflow.api.auth import require_api_key
from mariflow.api.deps import get_service, get_settings
from mariflow.api.envelope import ok
from mariflow.api.streaming import SSE_HEADERS, event_stream
from mariflow.config import Settings
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.errors import NotFound
from mariflow.whatsapp.service import WhatsAppService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/whatsapp",
    tags=["whatsapp"],
    dependencies=[Depends(require_api_key)],
)


class StatusMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str = Field(min_length=1, max_length=139)


@router.get("/status")
async def get_status(service: WhatsAppService = Depends(get_service)) -> dict:
    return ok(service.status().to_dict(), "Status retrieved")


@router.get("/qr")
async def get_qr_code(service: WhatsAppService = Depends(get_service)) -> dict:
    qr_code = service.status().qr_challenge
    if not qr_code:
        raise NotFound(
            "QR code not available. The client may be ready or not initialized.",
            code="QR_NOT_AVAILABLE",
        )
    return ok({"qrCode": qr_code}, "QR code retrieved")


@router.post("/initialize")
async def initialize(service: WhatsAppService = Depends(get_service)) -> dict:
    await service.initialize()
    return ok(message="WhatsApp client initialized")


@router.post("/restart")
async def restart(service: WhatsAppService = Depends(get_service)) -> dict:
    await service.restart()
    return ok(message="WhatsApp client restarted")


@router.post("/logout")
async def logout(service: WhatsAppService = Depends(get_service)) -> dict:
    await service.logout()
    return ok(message="Logged out")


@router.get("/info")
async def get_client_info(service: WhatsAppService = Depends(get_service)) -> dict:
    return ok(await service.get_client_info(), "Client info retrieved")


@router.get("/stats")
async def get_stats(service: WhatsAppService = Depends(get_service)) -> dict:
    return ok(await service.get_stats(), "Stats retrieved")


@router.post("/status-message")
async def set_status_message(
    req: StatusMessageRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_status(req.status)
    return ok({"status": req.status}, "Status message updated")


@router.get("/events")
async def events(
    service: WhatsAppService = Depends(get_service),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    subscription = service.broadcaster.subscribe()
    logger.info(
        "event stream opened",
        extra={"extra_fields": {"subscription_id": subscription.id}},
    )
    return StreamingResponse(
        event_stream(service.broadcaster, subscription, settings.heartbeat_interval),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
