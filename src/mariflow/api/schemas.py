"""Shared request models and identifier patterns for the /api/v1 routes."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# Individual chat / contact: 5511999999999@c.us
CONTACT_ID_PATTERN = r"^[0-9]+@c\.us$"
# Group: 120363123456789012@g.us (legacy ids carry a creator prefix: 5511...-1612345678@g.us)
GROUP_ID_PATTERN = r"^[0-9]+(-[0-9]+)?@g\.us$"
CHAT_ID_PATTERN = r"^[0-9]+(-[0-9]+)?@[cg]\.us$"
# Serialized message id: true_5511999999999@c.us_3EB0C767D26A1D8E
MESSAGE_ID_PATTERN = r"^[A-Za-z0-9_@.\-]+$"
INVITE_CODE_PATTERN = r"^[A-Za-z0-9_\-]+$"

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
MAX_PARTICIPANTS = 256

ParticipantId = Annotated[str, StringConstraints(pattern=CONTACT_ID_PATTERN)]


class ParticipantsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    participants: list[ParticipantId] = Field(min_length=1, max_length=MAX_PARTICIPANTS)

    def ids(self) -> list[str]:
        return list(dict.fromkeys(self.participants))


class AdminsOnlyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    admins_only: bool = Field(default=True, alias="adminsOnly")
