"""Command facade over the underlying messaging client.

WhatsAppService owns the client, the session state holder, the event
normalizer and the fan-out. Every messaging operation:

1. Requires the session to be READY (SessionNotReady otherwise, and the
   client is not called).
2. Delegates to the client.
3. Returns a normalized descriptor, never the raw client object.
4. Re-raises any client failure as UnderlyingClientError with the
   operation's stable code.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from mariflow.infra.time import to_epoch_ms, utc_now
from mariflow.observability.logging import get_logger

from .broadcaster import EventBroadcaster
from .client import WhatsAppClient
from .descriptors import (
    chat_descriptor,
    contact_descriptor,
    group_descriptor,
    is_group_chat,
    message_descriptor,
    serialize_id,
)
from .errors import (
    NotAGroupError,
    NotFound,
    SessionNotReady,
    UnderlyingClientError,
    ValidationError,
    WhatsAppError,
)
from .models import MediaPayload, SessionStatus
from .normalizer import EventNormalizer, identity_from_info
from .state import SessionStateHolder

logger = get_logger(__name__)

T = TypeVar("T")

INVITE_LINK_PREFIX = "https://chat.whatsapp.com/"
DEFAULT_RESTART_DELAY = 2.0


class WhatsAppService:
    """Single-session facade. One instance per process, built by the app factory."""

    def __init__(
        self,
        client: WhatsAppClient,
        *,
        state: SessionStateHolder | None = None,
        broadcaster: EventBroadcaster | None = None,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.state = state or SessionStateHolder()
        self.broadcaster = broadcaster or EventBroadcaster()
        self.normalizer = EventNormalizer(client, self.state, self.broadcaster)
        self.normalizer.attach()
        self.restart_delay = restart_delay
        self._sleep = sleep
        self._started_at = time.monotonic()

    # ── Internals ────────────────────────────────────────────────────────────

    def _require_ready(self) -> None:
        if not self.state.snapshot().ready:
            raise SessionNotReady()

    async def _invoke(
        self,
        code: str,
        action: str,
        call: Callable[[], Awaitable[T]],
        *,
        mutates: bool = False,
    ) -> T:
        """Run ``call`` against a READY session and translate its failures."""
        self._require_ready()
        try:
            result = await call()
        except WhatsAppError:
            raise
        except Exception as exc:
            logger.error(
                "client operation failed",
                extra={
                    "extra_fields": {
                        "code": code,
                        "error_type": type(exc).__name__,
                    }
                },
            )
            raise UnderlyingClientError(code, f"Failed to {action}", detail=str(exc)) from exc
        if mutates:
            self.state.touch()
        return result

    async def _require_chat(self, chat_id: str) -> dict[str, Any]:
        chat = await self.client.get_chat_by_id(chat_id)
        if chat is None:
            raise NotFound("Chat not found", code="CHAT_NOT_FOUND")
        return chat

    async def _require_group(self, group_id: str) -> dict[str, Any]:
        chat = await self.client.get_chat_by_id(group_id)
        if chat is None:
            raise NotFound("Group not found", code="GROUP_NOT_FOUND")
        if not is_group_chat(chat):
            raise NotAGroupError()
        return chat

    async def _require_message(self, message_id: str) -> dict[str, Any]:
        message = await self.client.get_message_by_id(message_id)
        if message is None:
            raise NotFound("Message not found", code="MESSAGE_NOT_FOUND")
        return message

    @staticmethod
    def _require_participants(participant_ids: list[str]) -> list[str]:
        ids = [p for p in participant_ids if p]
        if not ids:
            raise ValidationError("At least one participant is required")
        return ids

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def status(self) -> SessionStatus:
        return self.state.snapshot()

    async def initialize(self) -> None:
        logger.info("initializing whatsapp client")
        try:
            await self.client.initialize()
        except WhatsAppError:
            raise
        except Exception as exc:
            logger.error(
                "client initialization failed",
                extra={"extra_fields": {"error_type": type(exc).__name__}},
            )
            raise UnderlyingClientError(
                "INIT_ERROR", "Failed to initialize WhatsApp client", detail=str(exc)
            ) from exc

    async def destroy(self) -> None:
        """Best-effort teardown. Always leaves the holder in its initial state."""
        try:
            await self.client.destroy()
        except Exception as exc:
            logger.warning(
                "client destroy failed",
                extra={"extra_fields": {"error_type": type(exc).__name__}},
            )
        finally:
            self.state.reset()
        logger.info("whatsapp client destroyed")

    async def logout(self) -> None:
        try:
            await self.client.logout()
        except Exception as exc:
            logger.error(
                "client logout failed",
                extra={"extra_fields": {"error_type": type(exc).__name__}},
            )
            raise UnderlyingClientError("LOGOUT_ERROR", "Failed to log out", detail=str(exc)) from exc
        self.state.reset()
        logger.info("whatsapp client logged out")

    async def restart(self) -> None:
        """Destroy, reset, wait the settling delay, then initialize again."""
        logger.info(
            "restarting whatsapp client",
            extra={"extra_fields": {"delay_seconds": self.restart_delay}},
        )
        await self.destroy()
        await self._sleep(self.restart_delay)
        try:
            await self.initialize()
        except WhatsAppError as exc:
            raise UnderlyingClientError(
                "RESTART_ERROR", "Failed to restart WhatsApp client", detail=exc.detail or exc.message
            ) from exc

    # ── Messages ─────────────────────────────────────────────────────────────

    async def send_message(self, to: str, body: str) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return message_descriptor(await self.client.send_message(to, body))

        return await self._invoke("SEND_ERROR", "send message", call, mutates=True)

    async def send_media(
        self, to: str, media: MediaPayload, caption: str | None = None
    ) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return message_descriptor(await self.client.send_media(to, media, caption))

        return await self._invoke("SEND_MEDIA_ERROR", "send media", call, mutates=True)

    async def get_messages(self, chat_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async def call() -> list[dict[str, Any]]:
            await self._require_chat(chat_id)
            messages = await self.client.fetch_messages(chat_id, limit)
            return [message_descriptor(m) for m in messages]

        return await self._invoke("GET_MESSAGES_ERROR", "get messages", call)

    async def react_to_message(self, message_id: str, reaction: str) -> None:
        async def call() -> None:
            await self._require_message(message_id)
            await self.client.react(message_id, reaction)

        await self._invoke("REACT_ERROR", "react to message", call, mutates=True)

    async def forward_message(self, message_id: str, to: str) -> None:
        async def call() -> None:
            await self._require_message(message_id)
            await self.client.forward_message(message_id, to)

        await self._invoke("FORWARD_ERROR", "forward message", call, mutates=True)

    async def delete_message(self, message_id: str, everyone: bool = False) -> None:
        async def call() -> None:
            await self._require_message(message_id)
            await self.client.delete_message(message_id, everyone)

        await self._invoke("DELETE_MESSAGE_ERROR", "delete message", call, mutates=True)

    async def star_message(self, message_id: str) -> None:
        async def call() -> None:
            await self._require_message(message_id)
            await self.client.star_message(message_id)

        await self._invoke("STAR_MESSAGE_ERROR", "star message", call, mutates=True)

    async def unstar_message(self, message_id: str) -> None:
        async def call() -> None:
            await self._require_message(message_id)
            await self.client.unstar_message(message_id)

        await self._invoke("UNSTAR_MESSAGE_ERROR", "unstar message", call, mutates=True)

    async def download_media(self, message_id: str) -> MediaPayload:
        async def call() -> MediaPayload:
            message = await self._require_message(message_id)
            if message.get("hasMedia") is not True:
                raise ValidationError("Message has no media", code="NO_MEDIA")
            media = await self.client.download_media(message_id)
            if media is None:
                raise NotFound("Media is no longer available", code="MEDIA_NOT_FOUND")
            return media

        return await self._invoke("DOWNLOAD_MEDIA_ERROR", "download media", call)

    # ── Contacts ─────────────────────────────────────────────────────────────

    async def get_contacts(self) -> list[dict[str, Any]]:
        async def call() -> list[dict[str, Any]]:
            return [contact_descriptor(c) for c in await self.client.get_contacts()]

        return await self._invoke("GET_CONTACTS_ERROR", "get contacts", call)

    async def get_contact(self, contact_id: str) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            contact = await self.client.get_contact_by_id(contact_id)
            if contact is None:
                raise NotFound("Contact not found", code="CONTACT_NOT_FOUND")
            try:
                picture = await self.client.get_profile_pic_url(contact_id)
            except Exception:
                # Privacy settings make the picture unavailable; not a failure
                picture = None
            return contact_descriptor(contact, profile_pic_url=picture)

        return await self._invoke("GET_CONTACT_ERROR", "get contact", call)

    async def get_profile_picture(self, contact_id: str) -> str | None:
        return await self._invoke(
            "GET_PROFILE_PICTURE_ERROR",
            "get profile picture",
            lambda: self.client.get_profile_pic_url(contact_id),
        )

    async def block_contact(self, contact_id: str) -> None:
        await self._invoke(
            "BLOCK_CONTACT_ERROR",
            "block contact",
            lambda: self.client.block_contact(contact_id),
            mutates=True,
        )

    async def unblock_contact(self, contact_id: str) -> None:
        await self._invoke(
            "UNBLOCK_CONTACT_ERROR",
            "unblock contact",
            lambda: self.client.unblock_contact(contact_id),
            mutates=True,
        )

    # ── Chats ────────────────────────────────────────────────────────────────

    async def get_chats(self) -> list[dict[str, Any]]:
        async def call() -> list[dict[str, Any]]:
            return [chat_descriptor(c) for c in await self.client.get_chats()]

        return await self._invoke("GET_CHATS_ERROR", "get chats", call)

    async def get_chat(self, chat_id: str) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return chat_descriptor(await self._require_chat(chat_id))

        return await self._invoke("GET_CHAT_ERROR", "get chat", call)

    async def _chat_action(
        self,
        code: str,
        action: str,
        chat_id: str,
        operation: Callable[[], Awaitable[None]],
    ) -> None:
        async def call() -> None:
            await self._require_chat(chat_id)
            await operation()

        await self._invoke(code, action, call, mutates=True)

    async def mark_as_read(self, chat_id: str) -> None:
        await self._chat_action(
            "MARK_READ_ERROR", "mark chat as read", chat_id,
            lambda: self.client.send_seen(chat_id),
        )

    async def set_chat_muted(self, chat_id: str, duration_seconds: int | None = None) -> None:
        """Mute a chat for ``duration_seconds`` (forever when None)."""
        self._require_ready()
        if duration_seconds is not None and duration_seconds <= 0:
            raise ValidationError("Mute duration must be positive")
        unmute_at = (
            utc_now() + timedelta(seconds=duration_seconds)
            if duration_seconds is not None
            else None
        )
        await self._chat_action(
            "MUTE_CHAT_ERROR", "mute chat", chat_id,
            lambda: self.client.mute_chat(chat_id, unmute_at),
        )

    async def unmute_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "UNMUTE_CHAT_ERROR", "unmute chat", chat_id,
            lambda: self.client.unmute_chat(chat_id),
        )

    async def archive_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "ARCHIVE_CHAT_ERROR", "archive chat", chat_id,
            lambda: self.client.archive_chat(chat_id),
        )

    async def unarchive_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "UNARCHIVE_CHAT_ERROR", "unarchive chat", chat_id,
            lambda: self.client.unarchive_chat(chat_id),
        )

    async def pin_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "PIN_CHAT_ERROR", "pin chat", chat_id,
            lambda: self.client.pin_chat(chat_id),
        )

    async def unpin_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "UNPIN_CHAT_ERROR", "unpin chat", chat_id,
            lambda: self.client.unpin_chat(chat_id),
        )

    async def delete_chat(self, chat_id: str) -> None:
        await self._chat_action(
            "DELETE_CHAT_ERROR", "delete chat", chat_id,
            lambda: self.client.delete_chat(chat_id),
        )

    # ── Groups ───────────────────────────────────────────────────────────────

    async def get_groups(self) -> list[dict[str, Any]]:
        async def call() -> list[dict[str, Any]]:
            chats = await self.client.get_chats()
            return [group_descriptor(c) for c in chats if is_group_chat(c)]

        return await self._invoke("GET_GROUPS_ERROR", "get groups", call)

    async def get_group(self, group_id: str) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            return group_descriptor(await self._require_group(group_id))

        return await self._invoke("GET_GROUP_ERROR", "get group", call)

    async def create_group(self, name: str, participant_ids: list[str]) -> dict[str, Any]:
        self._require_ready()
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        participants = self._require_participants(participant_ids)

        async def call() -> dict[str, Any]:
            created = await self.client.create_group(name, participants)
            group_id = serialize_id(created.get("gid") or created.get("id"))
            chat = await self.client.get_chat_by_id(group_id) if group_id else None
            if chat is None:
                # Sidecar may not have synced the new chat yet
                chat = {
                    "id": group_id,
                    "name": name,
                    "isGroup": True,
                    "participants": [{"id": p} for p in participants],
                }
            return group_descriptor(chat)

        return await self._invoke("CREATE_GROUP_ERROR", "create group", call, mutates=True)

    async def get_group_invite_link(self, group_id: str) -> str:
        async def call() -> str:
            await self._require_group(group_id)
            code = await self.client.get_invite_code(group_id)
            return f"{INVITE_LINK_PREFIX}{code}"

        return await self._invoke("GET_INVITE_ERROR", "get invite link", call)

    async def join_group(self, invite_code: str) -> str:
        """Accept an invite (bare code or full link). Returns the group id."""
        self._require_ready()
        code = (invite_code or "").strip()
        if code.startswith(INVITE_LINK_PREFIX):
            code = code[len(INVITE_LINK_PREFIX):]
        if not code:
            raise ValidationError("Invite code is required")
        return await self._invoke(
            "JOIN_GROUP_ERROR", "join group",
            lambda: self.client.accept_invite(code),
            mutates=True,
        )

    async def _group_action(
        self,
        code: str,
        action: str,
        group_id: str,
        operation: Callable[[], Awaitable[None]],
    ) -> None:
        async def call() -> None:
            await self._require_group(group_id)
            await operation()

        await self._invoke(code, action, call, mutates=True)

    async def add_participants(self, group_id: str, participant_ids: list[str]) -> None:
        self._require_ready()
        ids = self._require_participants(participant_ids)
        await self._group_action(
            "ADD_PARTICIPANTS_ERROR", "add participants", group_id,
            lambda: self.client.add_participants(group_id, ids),
        )

    async def remove_participants(self, group_id: str, participant_ids: list[str]) -> None:
        self._require_ready()
        ids = self._require_participants(participant_ids)
        await self._group_action(
            "REMOVE_PARTICIPANTS_ERROR", "remove participants", group_id,
            lambda: self.client.remove_participants(group_id, ids),
        )

    async def promote_participants(self, group_id: str, participant_ids: list[str]) -> None:
        self._require_ready()
        ids = self._require_participants(participant_ids)
        await self._group_action(
            "PROMOTE_PARTICIPANTS_ERROR", "promote participants", group_id,
            lambda: self.client.promote_participants(group_id, ids),
        )

    async def demote_participants(self, group_id: str, participant_ids: list[str]) -> None:
        self._require_ready()
        ids = self._require_participants(participant_ids)
        await self._group_action(
            "DEMOTE_PARTICIPANTS_ERROR", "demote participants", group_id,
            lambda: self.client.demote_participants(group_id, ids),
        )

    async def leave_group(self, group_id: str) -> None:
        await self._group_action(
            "LEAVE_GROUP_ERROR", "leave group", group_id,
            lambda: self.client.leave_group(group_id),
        )

    async def set_group_name(self, group_id: str, name: str) -> None:
        self._require_ready()
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        await self._group_action(
            "SET_GROUP_NAME_ERROR", "set group name", group_id,
            lambda: self.client.set_group_subject(group_id, name),
        )

    async def set_group_description(self, group_id: str, description: str) -> None:
        await self._group_action(
            "SET_GROUP_DESCRIPTION_ERROR", "set group description", group_id,
            lambda: self.client.set_group_description(group_id, description),
        )

    async def set_messages_admins_only(self, group_id: str, admins_only: bool = True) -> None:
        await self._group_action(
            "SET_GROUP_SETTING_ERROR", "update group settings", group_id,
            lambda: self.client.set_messages_admins_only(group_id, admins_only),
        )

    async def set_info_admins_only(self, group_id: str, admins_only: bool = True) -> None:
        await self._group_action(
            "SET_GROUP_SETTING_ERROR", "update group settings", group_id,
            lambda: self.client.set_info_admins_only(group_id, admins_only),
        )

    async def set_add_members_admins_only(self, group_id: str, admins_only: bool = True) -> None:
        await self._group_action(
            "SET_GROUP_SETTING_ERROR", "update group settings", group_id,
            lambda: self.client.set_add_members_admins_only(group_id, admins_only),
        )

    # ── Profile / info ───────────────────────────────────────────────────────

    async def set_status(self, text: str) -> None:
        self._require_ready()
        if not text or not text.strip():
            raise ValidationError("Status text is required")
        await self._invoke(
            "SET_STATUS_ERROR", "set status",
            lambda: self.client.set_status(text),
            mutates=True,
        )

    async def get_client_info(self) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            info = self.client.info
            if info is None:
                raise NotFound("Client info not available", code="INFO_NOT_FOUND")
            phone, name = identity_from_info(info)
            return {
                "wid": serialize_id(info.get("wid")),
                "phoneNumber": phone,
                "pushname": name,
                "platform": info.get("platform"),
            }

        return await self._invoke("GET_CLIENT_INFO_ERROR", "get client info", call)

    async def get_stats(self) -> dict[str, Any]:
        async def call() -> dict[str, Any]:
            contacts = await self.client.get_contacts()
            chats = await self.client.get_chats()
            groups = [c for c in chats if is_group_chat(c)]
            unread = sum(chat_descriptor(c)["unreadCount"] for c in chats)
            return {
                "totalContacts": len(contacts),
                "totalChats": len(chats),
                "totalGroups": len(groups),
                "unreadMessages": unread,
                "uptime": round(time.monotonic() - self._started_at, 3),
                "lastActivity": to_epoch_ms(self.state.snapshot().last_activity_at),
                "subscribers": self.broadcaster.subscriber_count,
            }

        return await self._invoke("GET_STATS_ERROR", "get stats", call)
