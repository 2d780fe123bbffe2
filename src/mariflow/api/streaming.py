"""Server-sent event stream over the event broadcaster."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator

from mariflow.infra.time import iso_now
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.broadcaster import EventBroadcaster, Subscription

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def event_stream(
    broadcaster: EventBroadcaster,
    subscription: Subscription,
    heartbeat_interval: float = 30.0,
) -> AsyncGenerator[str, None]:
    """Yield SSE frames for one subscriber until the client goes away.

    The subscription is created by the caller before the response starts
    so no event published after the request arrived is missed. It is
    always detached when the generator finishes or is cancelled.
    """
    try:
        yield sse_frame(
            {
                "type": "connected",
                "message": "Connected to WhatsApp events",
                "timestamp": iso_now(),
            }
        )
        while True:
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                yield sse_frame({"type": "ping", "timestamp": iso_now()})
                continue
            yield sse_frame({"type": "whatsapp_event", **event.to_dict()})
    except asyncio.CancelledError:
        logger.info(
            "event stream closed by client",
            extra={"extra_fields": {"subscription_id": subscription.id}},
        )
        raise
    finally:
        broadcaster.unsubscribe(subscription)
