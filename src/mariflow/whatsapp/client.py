"""Underlying messaging client protocol.

The facade only talks to the client through these coroutines. Raw objects
returned by the client are plain dicts in the whatsapp-web.js JSON shape;
they are turned into descriptors by ``descriptors.py`` and never leak past
the facade.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Protocol

from .models import MediaPayload

RawEventListener = Callable[[str, Any], None]


class WhatsAppClient(Protocol):
    """Capabilities the command facade and event normalizer rely on."""

    # Lifecycle

    async def initialize(self) -> None: ...

    async def destroy(self) -> None: ...

    async def logout(self) -> None: ...

    @property
    def info(self) -> dict[str, Any] | None:
        """Identity of the paired account (``wid``, ``pushname``, ``platform``)."""
        ...

    def add_listener(self, listener: RawEventListener) -> Callable[[], None]:
        """Register a raw event listener. Returns a callable that removes it."""
        ...

    # Messages

    async def send_message(self, to: str, content: str) -> dict[str, Any]: ...

    async def send_media(
        self, to: str, media: MediaPayload, caption: str | None = None
    ) -> dict[str, Any]: ...

    async def get_message_by_id(self, message_id: str) -> dict[str, Any] | None: ...

    async def react(self, message_id: str, reaction: str) -> None: ...

    async def forward_message(self, message_id: str, to: str) -> None: ...

    async def delete_message(self, message_id: str, everyone: bool) -> None: ...

    async def star_message(self, message_id: str) -> None: ...

    async def unstar_message(self, message_id: str) -> None: ...

    async def download_media(self, message_id: str) -> MediaPayload | None: ...

    # Contacts

    async def get_contacts(self) -> list[dict[str, Any]]: ...

    async def get_contact_by_id(self, contact_id: str) -> dict[str, Any] | None: ...

    async def get_profile_pic_url(self, contact_id: str) -> str | None: ...

    async def block_contact(self, contact_id: str) -> None: ...

    async def unblock_contact(self, contact_id: str) -> None: ...

    # Chats

    async def get_chats(self) -> list[dict[str, Any]]: ...

    async def get_chat_by_id(self, chat_id: str) -> dict[str, Any] | None: ...

    async def fetch_messages(self, chat_id: str, limit: int) -> list[dict[str, Any]]: ...

    async def send_seen(self, chat_id: str) -> None: ...

    async def mute_chat(self, chat_id: str, unmute_at: datetime | None) -> None: ...

    async def unmute_chat(self, chat_id: str) -> None: ...

    async def archive_chat(self, chat_id: str) -> None: ...

    async def unarchive_chat(self, chat_id: str) -> None: ...

    async def pin_chat(self, chat_id: str) -> None: ...

    async def unpin_chat(self, chat_id: str) -> None: ...

    async def delete_chat(self, chat_id: str) -> None: ...

    # Groups

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]: ...

    async def accept_invite(self, invite_code: str) -> str: ...

    async def get_invite_code(self, group_id: str) -> str: ...

    async def add_participants(self, group_id: str, participants: list[str]) -> None: ...

    async def remove_participants(self, group_id: str, participants: list[str]) -> None: ...

    async def promote_participants(self, group_id: str, participants: list[str]) -> None: ...

    async def demote_participants(self, group_id: str, participants: list[str]) -> None: ...

    async def leave_group(self, group_id: str) -> None: ...

    async def set_group_subject(self, group_id: str, subject: str) -> None: ...

    async def set_group_description(self, group_id: str, description: str) -> None: ...

    async def set_messages_admins_only(self, group_id: str, admins_only: bool) -> None: ...

    async def set_info_admins_only(self, group_id: str, admins_only: bool) -> None: ...

    async def set_add_members_admins_only(self, group_id: str, admins_only: bool) -> None: ...

    # Profile

    async def set_status(self, text: str) -> None: ...
