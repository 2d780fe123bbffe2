"""Messaging endpoints.

POST   /messages/send                -> text (or inline base64 media)
POST   /messages/send-media          -> multipart upload
GET    /messages/{chat_id}           -> paginated history
POST   /messages/{message_id}/react
POST   /messages/{message_id}/forward
DELETE /messages/{message_id}
POST   /messages/{message_id}/star | /unstar
GET    /messages/{message_id}/download
"""

from __future__ import annotations

import base64
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field, model_validator

from mariflow.api.auth import require_api_key
from mariflow.api.deps import get_service, get_settings
from mariflow.api.envelope import ok
from mariflow.api.schemas import (
    CHAT_ID_PATTERN,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    MESSAGE_ID_PATTERN,
)
from mariflow.config import Settings
from mariflow.observability.logging import get_logger
from mariflow.observability.redaction import safe_log_context
from mariflow.whatsapp.descriptors import paginate
from mariflow.whatsapp.errors import ValidationError
from mariflow.whatsapp.models import MediaPayload
from mariflow.whatsapp.service import WhatsAppService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
    dependencies=[Depends(require_api_key)],
)

MessageType = Literal["text", "image", "video", "audio", "document", "sticker"]


# ── Schemas ───────────────────────────────────────────────────────────────────


class InlineMedia(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mimetype: str = Field(min_length=1)
    data: str = Field(min_length=1)
    filename: str | None = None


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to: str = Field(pattern=CHAT_ID_PATTERN)
    message: str = Field(default="", max_length=4096)
    type: MessageType = "text"
    media: InlineMedia | None = None

    @model_validator(mode="after")
    def _check_content(self) -> "SendMessageRequest":
        if self.type == "text" and not self.message:
            raise ValueError("message is required for text messages")
        if self.type != "text" and self.media is None:
            raise ValueError("media is required for non-text messages")
        return self


class ReactRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Empty string removes an existing reaction
    reaction: str = Field(max_length=16)


class ForwardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to: str = Field(pattern=CHAT_ID_PATTERN)


MessageId = Annotated[str, Path(pattern=MESSAGE_ID_PATTERN)]


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.post("/send")
async def send_message(
    req: SendMessageRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    if req.type != "text" and req.media is not None:
        media = MediaPayload(
            mimetype=req.media.mimetype,
            data=req.media.data,
            filename=req.media.filename,
        )
        sent = await service.send_media(req.to, media, caption=req.message or None)
    else:
        sent = await service.send_message(req.to, req.message)

    logger.info(
        "message sent",
        extra={"extra_fields": safe_log_context(type=req.type, to=req.to)},
    )
    return ok(sent, "Message sent")


@router.post("/send-media")
async def send_media(
    to: str = Form(..., pattern=CHAT_ID_PATTERN),
    caption: str | None = Form(None, max_length=1024),
    file: UploadFile = File(...),
    service: WhatsAppService = Depends(get_service),
    settings: Settings = Depends(get_settings),
) -> dict:
    content = await file.read()
    if not content:
        raise ValidationError("File is empty")
    if len(content) > settings.max_file_size:
        raise ValidationError(
            f"File exceeds the {settings.max_file_size} byte limit", code="FILE_TOO_LARGE"
        )

    media = MediaPayload(
        mimetype=file.content_type or "application/octet-stream",
        data=base64.b64encode(content).decode("ascii"),
        filename=file.filename,
    )
    sent = await service.send_media(to, media, caption=caption or None)
    logger.info(
        "media sent",
        extra={"extra_fields": safe_log_context(to=to, size=len(content), mimetype=media.mimetype)},
    )
    return ok(sent, "Media sent")


@router.get("/{chat_id}")
async def get_messages(
    chat_id: str = Path(pattern=CHAT_ID_PATTERN),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    service: WhatsAppService = Depends(get_service),
) -> dict:
    # Fetch enough history to cover the requested page
    messages = await service.get_messages(chat_id, limit * page)
    return ok(paginate(messages, page, limit), "Messages retrieved")


@router.post("/{message_id}/react")
async def react_to_message(
    message_id: MessageId,
    req: ReactRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.react_to_message(message_id, req.reaction)
    return ok(message="Reaction sent")


@router.post("/{message_id}/forward")
async def forward_message(
    message_id: MessageId,
    req: ForwardRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.forward_message(message_id, req.to)
    return ok(message="Message forwarded")


@router.delete("/{message_id}")
async def delete_message(
    message_id: MessageId,
    everyone: bool = Query(False),
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.delete_message(message_id, everyone)
    return ok(message="Message deleted")


@router.post("/{message_id}/star")
async def star_message(
    message_id: MessageId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.star_message(message_id)
    return ok(message="Message starred")


@router.post("/{message_id}/unstar")
async def unstar_message(
    message_id: MessageId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.unstar_message(message_id)
    return ok(message="Message unstarred")


@router.get("/{message_id}/download")
async def download_media(
    message_id: MessageId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    media = await service.download_media(message_id)
    return ok(media.to_dict(), "Media downloaded")
