"""In-process messaging client for local development and tests.

Keeps contacts, chats and messages in memory and emits the same raw events
as whatsapp-web.js. ``initialize()`` issues a QR challenge; ``pair()``
stands in for scanning it. Selected with WHATSAPP_BACKEND=inline.

With a session path, the paired identity is stored in
``<session_path>/<session_id>.json`` so a later process comes back READY
without a new QR, and ``logout()`` removes the file.
"""

from __future__ import annotations

import copy
import json
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from mariflow.observability.logging import get_logger

from .client import RawEventListener
from .descriptors import serialize_id
from .models import MediaPayload

logger = get_logger(__name__)

_MEDIA_TYPES = {"image": "image", "video": "video", "audio": "audio"}


def _wid(serialized: str) -> dict[str, str]:
    user, _, server = serialized.partition("@")
    return {"user": user, "server": server, "_serialized": serialized}


def _media_type(mimetype: str) -> str:
    return _MEDIA_TYPES.get(mimetype.split("/", 1)[0], "document")


class InlineClient:
    """Memory-backed implementation of the WhatsAppClient protocol."""

    def __init__(self, session_path: str | None = None, session_id: str = "mariflow") -> None:
        self._credentials_file = (
            Path(session_path) / f"{session_id}.json" if session_path else None
        )
        self._listeners: list[RawEventListener] = []
        self._started = False
        self._paired = False
        self._info: dict[str, Any] | None = None
        self._contacts: dict[str, dict[str, Any]] = {}
        self._chats: dict[str, dict[str, Any]] = {}
        self._messages: dict[str, dict[str, Any]] = {}
        self._chat_messages: dict[str, list[str]] = {}
        self._media: dict[str, MediaPayload] = {}
        self._invites: dict[str, str] = {}
        self.status_text: str | None = None
        self.current_qr: str | None = None
        self._load_credentials()

    # ── Events ───────────────────────────────────────────────────────────────

    def add_listener(self, listener: RawEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def emit(self, event_name: str, payload: Any = None) -> None:
        """Deliver a raw event to every listener, in registration order."""
        for listener in list(self._listeners):
            try:
                listener(event_name, payload)
            except Exception:
                logger.exception(
                    "raw event listener failed",
                    extra={"extra_fields": {"event": event_name}},
                )

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def info(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._info)

    async def initialize(self) -> None:
        self._started = True
        if self._paired and self._info is not None:
            # Stored credentials: the session comes back without a QR round-trip
            self.emit("ready")
            return
        self.current_qr = f"2@{secrets.token_urlsafe(24)}"
        self.emit("qr", self.current_qr)

    def pair(self, phone_number: str, pushname: str | None = None, platform: str = "inline") -> None:
        """Simulate the QR scan: authenticated, then ready."""
        if not self._started:
            raise RuntimeError("client not started")
        self._paired = True
        self.current_qr = None
        self._info = {
            "wid": _wid(f"{phone_number}@c.us"),
            "pushname": pushname,
            "platform": platform,
        }
        self._save_credentials()
        self.emit("authenticated")
        self.emit("ready")

    async def destroy(self) -> None:
        self._started = False
        self.current_qr = None

    async def logout(self) -> None:
        self._ensure_started()
        self._paired = False
        self._info = None
        self._started = False
        if self._credentials_file is not None:
            self._credentials_file.unlink(missing_ok=True)

    # ── Credentials ──────────────────────────────────────────────────────────

    def _load_credentials(self) -> None:
        if self._credentials_file is None or not self._credentials_file.exists():
            return
        try:
            info = json.loads(self._credentials_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("stored session unreadable - pairing again")
            return
        if isinstance(info, dict) and info.get("wid"):
            self._info = info
            self._paired = True

    def _save_credentials(self) -> None:
        if self._credentials_file is None:
            return
        self._credentials_file.parent.mkdir(parents=True, exist_ok=True)
        self._credentials_file.write_text(json.dumps(self._info), encoding="utf-8")

    def _ensure_started(self) -> None:
        if not self._started:
            raise RuntimeError("client not started")

    @property
    def _own_id(self) -> str:
        if self._info is None:
            raise RuntimeError("client not paired")
        return self._info["wid"]["_serialized"]

    # ── Seeding / simulation ─────────────────────────────────────────────────

    def add_contact(
        self,
        contact_id: str,
        name: str | None = None,
        *,
        pushname: str | None = None,
        is_business: bool = False,
        is_blocked: bool = False,
        profile_pic_url: str | None = None,
    ) -> dict[str, Any]:
        contact = {
            "id": _wid(contact_id),
            "name": name,
            "pushname": pushname,
            "number": contact_id.split("@", 1)[0],
            "isGroup": contact_id.endswith("@g.us"),
            "isBusiness": is_business,
            "isBlocked": is_blocked,
            "profilePicUrl": profile_pic_url,
        }
        self._contacts[contact_id] = contact
        return copy.deepcopy(contact)

    def add_chat(self, chat_id: str, name: str | None = None, **fields: Any) -> dict[str, Any]:
        chat = {
            "id": _wid(chat_id),
            "name": name,
            "isGroup": chat_id.endswith("@g.us"),
            "isReadOnly": False,
            "unreadCount": 0,
            "timestamp": int(time.time()),
            "archived": False,
            "pinned": False,
            "isMuted": False,
            "muteExpiration": 0,
        }
        chat.update(fields)
        self._chats[chat_id] = chat
        self._chat_messages.setdefault(chat_id, [])
        return copy.deepcopy(chat)

    def receive_message(self, from_id: str, body: str, **fields: Any) -> dict[str, Any]:
        """Simulate an incoming message and emit ``message``."""
        message = self._store_message(
            chat_id=from_id, from_id=from_id, to_id=self._own_id, body=body, from_me=False, **fields
        )
        self._chats[from_id]["unreadCount"] += 1
        self.emit("message", copy.deepcopy(message))
        return copy.deepcopy(message)

    def _ensure_chat(self, chat_id: str) -> dict[str, Any]:
        if chat_id not in self._chats:
            contact = self._contacts.get(chat_id)
            self.add_chat(chat_id, contact.get("name") if contact else None)
        return self._chats[chat_id]

    def _store_message(
        self,
        *,
        chat_id: str,
        from_id: str,
        to_id: str,
        body: str,
        from_me: bool,
        type: str = "chat",
        has_media: bool = False,
        is_forwarded: bool = False,
    ) -> dict[str, Any]:
        chat = self._ensure_chat(chat_id)
        serialized = f"{str(from_me).lower()}_{chat_id}_{secrets.token_hex(10).upper()}"
        now = int(time.time())
        message = {
            "id": {"fromMe": from_me, "remote": chat_id, "_serialized": serialized},
            "from": from_id,
            "to": to_id,
            "body": body,
            "timestamp": now,
            "type": type,
            "hasMedia": has_media,
            "isForwarded": is_forwarded,
            "fromMe": from_me,
            "isStarred": False,
            "ack": 1 if from_me else 0,
        }
        self._messages[serialized] = message
        self._chat_messages[chat_id].append(serialized)
        chat["timestamp"] = now
        return message

    def _message(self, message_id: str) -> dict[str, Any]:
        try:
            return self._messages[message_id]
        except KeyError:
            raise ValueError(f"message not found: {message_id}")

    def _chat(self, chat_id: str) -> dict[str, Any]:
        try:
            return self._chats[chat_id]
        except KeyError:
            raise ValueError(f"chat not found: {chat_id}")

    def _group(self, group_id: str) -> dict[str, Any]:
        chat = self._chat(group_id)
        if not chat.get("isGroup"):
            raise ValueError(f"not a group: {group_id}")
        return chat

    # ── Messages ─────────────────────────────────────────────────────────────

    async def send_message(self, to: str, content: str) -> dict[str, Any]:
        self._ensure_started()
        message = self._store_message(
            chat_id=to, from_id=self._own_id, to_id=to, body=content, from_me=True
        )
        self.emit("message_create", copy.deepcopy(message))
        return copy.deepcopy(message)

    async def send_media(
        self, to: str, media: MediaPayload, caption: str | None = None
    ) -> dict[str, Any]:
        self._ensure_started()
        message = self._store_message(
            chat_id=to,
            from_id=self._own_id,
            to_id=to,
            body=caption or "",
            from_me=True,
            type=_media_type(media.mimetype),
            has_media=True,
        )
        self._media[message["id"]["_serialized"]] = media
        self.emit("message_create", copy.deepcopy(message))
        return copy.deepcopy(message)

    async def get_message_by_id(self, message_id: str) -> dict[str, Any] | None:
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message is not None else None

    async def react(self, message_id: str, reaction: str) -> None:
        message = self._message(message_id)
        self.emit(
            "message_reaction",
            {
                "msgId": copy.deepcopy(message["id"]),
                "reaction": reaction,
                "senderId": self._own_id,
                "timestamp": int(time.time()),
            },
        )

    async def forward_message(self, message_id: str, to: str) -> None:
        original = self._message(message_id)
        message = self._store_message(
            chat_id=to,
            from_id=self._own_id,
            to_id=to,
            body=original["body"],
            from_me=True,
            type=original["type"],
            has_media=original["hasMedia"],
            is_forwarded=True,
        )
        media = self._media.get(message_id)
        if media is not None:
            self._media[message["id"]["_serialized"]] = media
        self.emit("message_create", copy.deepcopy(message))

    async def delete_message(self, message_id: str, everyone: bool) -> None:
        message = self._message(message_id)
        if everyone and not message["fromMe"]:
            raise ValueError("only own messages can be deleted for everyone")
        del self._messages[message_id]
        self._media.pop(message_id, None)
        chat_id = message["id"]["remote"]
        self._chat_messages[chat_id].remove(message_id)

    async def star_message(self, message_id: str) -> None:
        self._message(message_id)["isStarred"] = True

    async def unstar_message(self, message_id: str) -> None:
        self._message(message_id)["isStarred"] = False

    async def download_media(self, message_id: str) -> MediaPayload | None:
        self._message(message_id)
        return self._media.get(message_id)

    # ── Contacts ─────────────────────────────────────────────────────────────

    async def get_contacts(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(c) for c in self._contacts.values()]

    async def get_contact_by_id(self, contact_id: str) -> dict[str, Any] | None:
        contact = self._contacts.get(contact_id)
        return copy.deepcopy(contact) if contact is not None else None

    async def get_profile_pic_url(self, contact_id: str) -> str | None:
        contact = self._contacts.get(contact_id)
        return contact.get("profilePicUrl") if contact else None

    def _contact(self, contact_id: str) -> dict[str, Any]:
        try:
            return self._contacts[contact_id]
        except KeyError:
            raise ValueError(f"contact not found: {contact_id}")

    async def block_contact(self, contact_id: str) -> None:
        self._contact(contact_id)["isBlocked"] = True

    async def unblock_contact(self, contact_id: str) -> None:
        self._contact(contact_id)["isBlocked"] = False

    # ── Chats ────────────────────────────────────────────────────────────────

    async def get_chats(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(c) for c in self._chats.values()]

    async def get_chat_by_id(self, chat_id: str) -> dict[str, Any] | None:
        chat = self._chats.get(chat_id)
        return copy.deepcopy(chat) if chat is not None else None

    async def fetch_messages(self, chat_id: str, limit: int) -> list[dict[str, Any]]:
        self._chat(chat_id)
        ids = self._chat_messages.get(chat_id, [])[-limit:] if limit > 0 else []
        return [copy.deepcopy(self._messages[i]) for i in ids]

    async def send_seen(self, chat_id: str) -> None:
        self._chat(chat_id)["unreadCount"] = 0

    async def mute_chat(self, chat_id: str, unmute_at: datetime | None) -> None:
        chat = self._chat(chat_id)
        chat["isMuted"] = True
        chat["muteExpiration"] = int(unmute_at.timestamp()) if unmute_at is not None else -1

    async def unmute_chat(self, chat_id: str) -> None:
        chat = self._chat(chat_id)
        chat["isMuted"] = False
        chat["muteExpiration"] = 0

    async def archive_chat(self, chat_id: str) -> None:
        self._chat(chat_id)["archived"] = True

    async def unarchive_chat(self, chat_id: str) -> None:
        self._chat(chat_id)["archived"] = False

    async def pin_chat(self, chat_id: str) -> None:
        self._chat(chat_id)["pinned"] = True

    async def unpin_chat(self, chat_id: str) -> None:
        self._chat(chat_id)["pinned"] = False

    async def delete_chat(self, chat_id: str) -> None:
        self._chat(chat_id)
        del self._chats[chat_id]
        for message_id in self._chat_messages.pop(chat_id, []):
            self._messages.pop(message_id, None)
            self._media.pop(message_id, None)

    # ── Groups ───────────────────────────────────────────────────────────────

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]:
        self._ensure_started()
        group_id = f"120363{secrets.randbelow(10**12):012d}@g.us"
        members = [{"id": _wid(self._own_id), "isAdmin": True, "isSuperAdmin": True}]
        members += [{"id": _wid(p), "isAdmin": False, "isSuperAdmin": False} for p in participants]
        self.add_chat(
            group_id,
            name,
            isGroup=True,
            owner=_wid(self._own_id),
            description=None,
            participants=members,
            groupMetadata={"announce": False, "restrict": False, "memberAddMode": "all_member_add"},
        )
        self.emit(
            "group_join",
            {"chatId": group_id, "author": self._own_id, "recipientIds": list(participants), "type": "create"},
        )
        return {"gid": _wid(group_id), "title": name, "missingParticipants": {}}

    async def get_invite_code(self, group_id: str) -> str:
        self._group(group_id)
        for code, target in self._invites.items():
            if target == group_id:
                return code
        code = secrets.token_urlsafe(16)
        self._invites[code] = group_id
        return code

    async def accept_invite(self, invite_code: str) -> str:
        group_id = self._invites.get(invite_code)
        if group_id is None or group_id not in self._chats:
            raise ValueError("invalid invite code")
        group = self._chats[group_id]
        own = self._own_id
        if all(serialize_id(p["id"]) != own for p in group["participants"]):
            group["participants"].append({"id": _wid(own), "isAdmin": False, "isSuperAdmin": False})
        group["isReadOnly"] = False
        return group_id

    def _set_participants(self, group_id: str, ids: list[str], **flags: bool) -> None:
        group = self._group(group_id)
        wanted = set(ids)
        for participant in group["participants"]:
            if serialize_id(participant["id"]) in wanted:
                participant.update(flags)

    async def add_participants(self, group_id: str, participants: list[str]) -> None:
        group = self._group(group_id)
        present = {serialize_id(p["id"]) for p in group["participants"]}
        added = [p for p in participants if p not in present]
        group["participants"] += [
            {"id": _wid(p), "isAdmin": False, "isSuperAdmin": False} for p in added
        ]
        if added:
            self.emit(
                "group_join",
                {"chatId": group_id, "author": self._own_id, "recipientIds": added, "type": "add"},
            )

    async def remove_participants(self, group_id: str, participants: list[str]) -> None:
        group = self._group(group_id)
        removed = set(participants)
        group["participants"] = [
            p for p in group["participants"] if serialize_id(p["id"]) not in removed
        ]
        self.emit(
            "group_leave",
            {"chatId": group_id, "author": self._own_id, "recipientIds": list(participants), "type": "remove"},
        )

    async def promote_participants(self, group_id: str, participants: list[str]) -> None:
        self._set_participants(group_id, participants, isAdmin=True)

    async def demote_participants(self, group_id: str, participants: list[str]) -> None:
        self._set_participants(group_id, participants, isAdmin=False, isSuperAdmin=False)

    async def leave_group(self, group_id: str) -> None:
        group = self._group(group_id)
        own = self._own_id
        group["participants"] = [p for p in group["participants"] if serialize_id(p["id"]) != own]
        group["isReadOnly"] = True
        self.emit(
            "group_leave",
            {"chatId": group_id, "author": own, "recipientIds": [own], "type": "leave"},
        )

    async def set_group_subject(self, group_id: str, subject: str) -> None:
        self._group(group_id)["name"] = subject

    async def set_group_description(self, group_id: str, description: str) -> None:
        self._group(group_id)["description"] = description

    async def set_messages_admins_only(self, group_id: str, admins_only: bool) -> None:
        self._group(group_id)["groupMetadata"]["announce"] = admins_only

    async def set_info_admins_only(self, group_id: str, admins_only: bool) -> None:
        self._group(group_id)["groupMetadata"]["restrict"] = admins_only

    async def set_add_members_admins_only(self, group_id: str, admins_only: bool) -> None:
        mode = "admin_add" if admins_only else "all_member_add"
        self._group(group_id)["groupMetadata"]["memberAddMode"] = mode

    # ── Profile ──────────────────────────────────────────────────────────────

    async def set_status(self, text: str) -> None:
        self._ensure_started()
        self.status_text = text
