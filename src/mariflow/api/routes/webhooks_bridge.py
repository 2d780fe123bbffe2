"""Webhook receiving raw client events from the whatsapp-web.js sidecar.

Security:
- Shared secret in X-Webhook-Secret, compared in constant time
- Fail-closed: no configured secret means every call is rejected
- Message bodies and JIDs never reach the logs
"""

from __future__ import annotations

import hmac
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, Response

from mariflow.api.deps import get_service, get_settings
from mariflow.config import Settings
from mariflow.observability.logging import get_logger
from mariflow.observability.redaction import safe_log_context
from mariflow.whatsapp.bridge_client import BridgeClient
from mariflow.whatsapp.service import WhatsAppService

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


@router.post("/bridge")
async def bridge_webhook(
    request: Request,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
    service: WhatsAppService = Depends(get_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Receive one sidecar event.

    Returns:
        200 OK if dispatched (or ignored: other session).
        400 Bad Request if the body is not a valid event.
        401 Unauthorized if secret validation fails.
        404 Not Found if the bridge backend is not active.
    """
    client = service.client
    if not isinstance(client, BridgeClient):
        return Response(status_code=404, content="not found")

    # Webhook secret validation (fail-closed)
    expected_secret = settings.webhook_secret
    if not expected_secret:
        logger.error(
            "WHATSAPP_WEBHOOK_SECRET not configured - rejecting event (fail-closed)"
        )
        return Response(status_code=401, content="unauthorized")
    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), expected_secret.encode()
    ):
        logger.warning("bridge secret mismatch")
        return Response(status_code=401, content="unauthorized")

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning("invalid json body")
        return Response(status_code=400, content="invalid json")

    if not isinstance(payload, dict) or not isinstance(payload.get("dataType"), str):
        logger.warning(
            "invalid bridge payload",
            extra={"extra_fields": safe_log_context(payload=payload)},
        )
        return Response(status_code=400, content="invalid payload")

    session_id = payload.get("sessionId")
    if session_id is not None and session_id != client.session_id:
        logger.info(
            "ignoring event for another session",
            extra={"extra_fields": {"dataType": payload["dataType"]}},
        )
        return Response(status_code=200, content="ignored")

    await client.dispatch(payload["dataType"], payload.get("data"))
    return Response(status_code=200, content="ok")
