"""Contact endpoints and the chat operations addressed by contact id.

GET    /contacts                          -> paginated, searchable, filterable
GET    /contacts/{id}
GET    /contacts/{id}/profile-picture
POST   /contacts/{id}/block | /unblock
GET    /contacts/{id}/chat
POST   /contacts/{id}/chat/mark-read | mute | unmute | archive | unarchive | pin | unpin
DELETE /contacts/{id}/chat
"""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Body, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from mariflow.api.auth import require_api_key
from mariflow.api.deps import get_service
from mariflow.api.envelope import ok
from mariflow.api.schemas import (
    CHAT_ID_PATTERN,
    CONTACT_ID_PATTERN,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
)
from mariflow.whatsapp.descriptors import matches_search, paginate
from mariflow.whatsapp.service import WhatsAppService

router = APIRouter(
    prefix="/contacts",
    tags=["contacts"],
    dependencies=[Depends(require_api_key)],
)

ContactFilter = Literal["all", "blocked", "business", "groups", "individuals"]

ContactId = Annotated[str, Path(pattern=CONTACT_ID_PATTERN)]
ChatId = Annotated[str, Path(pattern=CHAT_ID_PATTERN)]

MAX_MUTE_SECONDS = 365 * 24 * 3600


class MuteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Seconds; omitted means muted until explicitly unmuted
    duration: int | None = Field(default=None, ge=1, le=MAX_MUTE_SECONDS)


_FILTERS = {
    "all": lambda c: True,
    "blocked": lambda c: c["isBlocked"],
    "business": lambda c: c["isBusiness"],
    "groups": lambda c: c["isGroup"],
    "individuals": lambda c: not c["isGroup"],
}


@router.get("")
async def list_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    search: str | None = Query(None, min_length=1, max_length=100),
    filter: ContactFilter = Query("all"),
    service: WhatsAppService = Depends(get_service),
) -> dict:
    contacts = [c for c in await service.get_contacts() if _FILTERS[filter](c)]
    if search:
        contacts = [c for c in contacts if matches_search((c["name"], c["number"]), search)]
    return ok(paginate(contacts, page, limit), "Contacts retrieved")


@router.get("/{contact_id}")
async def get_contact(
    contact_id: ContactId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    return ok(await service.get_contact(contact_id), "Contact retrieved")


@router.get("/{contact_id}/profile-picture")
async def get_profile_picture(
    contact_id: ContactId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    url = await service.get_profile_picture(contact_id)
    return ok({"contactId": contact_id, "profilePicUrl": url}, "Profile picture retrieved")


@router.post("/{contact_id}/block")
async def block_contact(
    contact_id: ContactId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.block_contact(contact_id)
    return ok(message="Contact blocked")


@router.post("/{contact_id}/unblock")
async def unblock_contact(
    contact_id: ContactId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.unblock_contact(contact_id)
    return ok(message="Contact unblocked")


# ── Chat operations ───────────────────────────────────────────────────────────


@router.get("/{chat_id}/chat")
async def get_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    return ok(await service.get_chat(chat_id), "Chat retrieved")


@router.post("/{chat_id}/chat/mark-read")
async def mark_as_read(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.mark_as_read(chat_id)
    return ok(message="Chat marked as read")


@router.post("/{chat_id}/chat/mute")
async def mute_chat(
    chat_id: ChatId,
    req: MuteRequest | None = Body(None),
    service: WhatsAppService = Depends(get_service),
) -> dict:
    duration = req.duration if req is not None else None
    await service.set_chat_muted(chat_id, duration)
    return ok({"duration": duration}, "Chat muted")


@router.post("/{chat_id}/chat/unmute")
async def unmute_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.unmute_chat(chat_id)
    return ok(message="Chat unmuted")


@router.post("/{chat_id}/chat/archive")
async def archive_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.archive_chat(chat_id)
    return ok(message="Chat archived")


@router.post("/{chat_id}/chat/unarchive")
async def unarchive_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.unarchive_chat(chat_id)
    return ok(message="Chat unarchived")


@router.post("/{chat_id}/chat/pin")
async def pin_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.pin_chat(chat_id)
    return ok(message="Chat pinned")


@router.post("/{chat_id}/chat/unpin")
async def unpin_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.unpin_chat(chat_id)
    return ok(message="Chat unpinned")


@router.delete("/{chat_id}/chat")
async def delete_chat(
    chat_id: ChatId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.delete_chat(chat_id)
    return ok(message="Chat deleted")
