"""Group endpoints.

GET  /groups                                  -> paginated, searchable
POST /groups                                  -> create
POST /groups/join                             -> accept invite
GET  /groups/{id}
GET  /groups/{id}/invite-link
POST /groups/{id}/participants/{action}       -> add | remove | promote | demote
POST /groups/{id}/leave
PUT  /groups/{id}/name | /description
POST /groups/{id}/settings/{setting}          -> messages-admins-only | info-admins-only
                                                 | add-members-admins-only
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from mariflow.api.auth import require_api_key
from mariflow.api.deps import get_service
from mariflow.api.envelope import ok
from mariflow.api.schemas import (
    DEFAULT_PAGE_LIMIT,
    GROUP_ID_PATTERN,
    INVITE_CODE_PATTERN,
    MAX_PAGE_LIMIT,
    MAX_PARTICIPANTS,
    AdminsOnlyRequest,
    ParticipantId,
    ParticipantsRequest,
)
from mariflow.observability.logging import get_logger
from mariflow.whatsapp.descriptors import matches_search, paginate
from mariflow.whatsapp.service import WhatsAppService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/groups",
    tags=["groups"],
    dependencies=[Depends(require_api_key)],
)

GroupId = Annotated[str, Path(pattern=GROUP_ID_PATTERN)]


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateGroupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=25)
    participants: list[ParticipantId] = Field(min_length=1, max_length=MAX_PARTICIPANTS)


class JoinGroupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    invite_code: str = Field(alias="inviteCode", min_length=1, pattern=INVITE_CODE_PATTERN)


class SetNameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=25)


class SetDescriptionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str = Field(default="", max_length=512)


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get("")
async def list_groups(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    search: str | None = Query(None, min_length=1, max_length=100),
    service: WhatsAppService = Depends(get_service),
) -> dict:
    groups = await service.get_groups()
    if search:
        groups = [g for g in groups if matches_search((g["name"], g["description"]), search)]
    return ok(paginate(groups, page, limit), "Groups retrieved")


@router.post("")
async def create_group(
    req: CreateGroupRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    group = await service.create_group(req.name, list(dict.fromkeys(req.participants)))
    logger.info(
        "group created",
        extra={"extra_fields": {"participants": len(req.participants)}},
    )
    return ok(group, "Group created")


@router.post("/join")
async def join_group(
    req: JoinGroupRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    group_id = await service.join_group(req.invite_code)
    return ok({"groupId": group_id}, "Joined group")


@router.get("/{group_id}")
async def get_group(
    group_id: GroupId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    return ok(await service.get_group(group_id), "Group retrieved")


@router.get("/{group_id}/invite-link")
async def get_invite_link(
    group_id: GroupId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    link = await service.get_group_invite_link(group_id)
    return ok({"inviteLink": link}, "Invite link retrieved")


@router.post("/{group_id}/participants/add")
async def add_participants(
    group_id: GroupId,
    req: ParticipantsRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.add_participants(group_id, req.ids())
    return ok({"participants": req.ids()}, "Participants added")


@router.post("/{group_id}/participants/remove")
async def remove_participants(
    group_id: GroupId,
    req: ParticipantsRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.remove_participants(group_id, req.ids())
    return ok({"participants": req.ids()}, "Participants removed")


@router.post("/{group_id}/participants/promote")
async def promote_participants(
    group_id: GroupId,
    req: ParticipantsRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.promote_participants(group_id, req.ids())
    return ok({"participants": req.ids()}, "Participants promoted")


@router.post("/{group_id}/participants/demote")
async def demote_participants(
    group_id: GroupId,
    req: ParticipantsRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.demote_participants(group_id, req.ids())
    return ok({"participants": req.ids()}, "Participants demoted")


@router.post("/{group_id}/leave")
async def leave_group(
    group_id: GroupId,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.leave_group(group_id)
    return ok(message="Left group")


@router.put("/{group_id}/name")
async def set_group_name(
    group_id: GroupId,
    req: SetNameRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_group_name(group_id, req.name)
    return ok({"name": req.name}, "Group name updated")


@router.put("/{group_id}/description")
async def set_group_description(
    group_id: GroupId,
    req: SetDescriptionRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_group_description(group_id, req.description)
    return ok({"description": req.description}, "Group description updated")


@router.post("/{group_id}/settings/messages-admins-only")
async def set_messages_admins_only(
    group_id: GroupId,
    req: AdminsOnlyRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_messages_admins_only(group_id, req.admins_only)
    return ok({"adminsOnly": req.admins_only}, "Group settings updated")


@router.post("/{group_id}/settings/info-admins-only")
async def set_info_admins_only(
    group_id: GroupId,
    req: AdminsOnlyRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_info_admins_only(group_id, req.admins_only)
    return ok({"adminsOnly": req.admins_only}, "Group settings updated")


@router.post("/{group_id}/settings/add-members-admins-only")
async def set_add_members_admins_only(
    group_id: GroupId,
    req: AdminsOnlyRequest,
    service: WhatsAppService = Depends(get_service),
) -> dict:
    await service.set_add_members_admins_only(group_id, req.admins_only)
    return ok({"adminsOnly": req.admins_only}, "Group settings updated")
