"""WebSocket push channel for session status and client events.

Server -> client frames: ``{"event": "whatsapp:<kind>", "data": {...}, "timestamp": ...}``.
On connect the current status is pushed as ``whatsapp:status``; sending
``{"event": "whatsapp:get_status"}`` asks for a fresh one at any time.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mariflow.infra.time import iso_now
from mariflow.observability.correlation import correlation_scope
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.broadcaster import Subscription
from mariflow.whatsapp.service import WhatsAppService

logger = get_logger(__name__)

router = APIRouter(tags=["socket"])

STATUS_EVENT = "whatsapp:status"
GET_STATUS_EVENT = "whatsapp:get_status"

Sender = Callable[[dict[str, Any]], Awaitable[None]]


def _frame(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data, "timestamp": iso_now()}


def status_frame(service: WhatsAppService) -> dict[str, Any]:
    return _frame(STATUS_EVENT, service.status().to_dict())


async def _forward_events(subscription: Subscription, send: Sender) -> None:
    while True:
        event = await subscription.get()
        await send(event.to_dict())


async def _handle_incoming(raw: str, service: WhatsAppService, send: Sender) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        await send(_frame("error", {"message": "Invalid JSON"}))
        return

    event = message.get("event") if isinstance(message, dict) else None
    if event == GET_STATUS_EVENT:
        await send(status_frame(service))
    else:
        await send(_frame("error", {"message": f"Unsupported event: {event}"}))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    service: WhatsAppService = websocket.app.state.whatsapp
    await websocket.accept()

    # Attach before the first push so nothing published after connect is missed
    subscription = service.broadcaster.subscribe()
    send_lock = asyncio.Lock()

    async def send(payload: dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_json(payload)

    with correlation_scope() as cid:
        logger.info(
            "socket connected",
            extra={"extra_fields": {"subscription_id": subscription.id, "socketId": cid}},
        )
        forwarder: asyncio.Task | None = None
        try:
            await send(status_frame(service))
            forwarder = asyncio.create_task(_forward_events(subscription, send))
            while True:
                raw = await websocket.receive_text()
                await _handle_incoming(raw, service, send)
        except WebSocketDisconnect:
            logger.info(
                "socket disconnected",
                extra={"extra_fields": {"subscription_id": subscription.id}},
            )
        finally:
            if forwarder is not None:
                forwarder.cancel()
                await asyncio.gather(forwarder, return_exceptions=True)
            service.broadcaster.unsubscribe(subscription)
