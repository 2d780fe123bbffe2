"""Binding to a whatsapp-web.js sidecar speaking the wwebjs-api REST contract.

Commands go out as ``POST <base>/<group>/<action>/<sessionId>`` with the
``x-api-key`` header. Raw events come back through the sidecar's webhook
(see api/routes/webhooks_bridge.py), which hands them to ``dispatch()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import httpx

from mariflow.config import Settings
from mariflow.observability.logging import get_logger

from .client import RawEventListener
from .models import MediaPayload

logger = get_logger(__name__)


class BridgeError(Exception):
    """Sidecar call failed (transport error, non-2xx, or success=false)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def chat_id_from_message_id(message_id: str) -> str | None:
    """Serialized message ids look like ``true_<chatId>_<hash>``."""
    parts = message_id.split("_")
    if len(parts) >= 3 and "@" in parts[1]:
        return parts[1]
    return None


class BridgeClient:
    """Async HTTP implementation of the WhatsAppClient protocol."""

    def __init__(
        self,
        base_url: str,
        session_id: str,
        api_key: str = "",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.session_id = session_id
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"x-api-key": api_key} if api_key else {},
        )
        self._listeners: list[RawEventListener] = []
        self._info: dict[str, Any] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BridgeClient":
        return cls(
            base_url=settings.bridge_url,
            session_id=settings.session_id,
            api_key=settings.bridge_api_key,
            timeout=settings.bridge_timeout,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport ────────────────────────────────────────────────────────────

    async def _request(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        method: str = "POST",
    ) -> dict[str, Any]:
        url = f"/{endpoint}/{self.session_id}"
        try:
            if method == "GET":
                response = await self._http.get(url)
            else:
                response = await self._http.post(url, json=data or {})
        except httpx.HTTPError as exc:
            logger.error(
                "bridge request failed",
                extra={"extra_fields": {"endpoint": endpoint, "error_type": type(exc).__name__}},
            )
            raise BridgeError(f"{endpoint}: {exc}") from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"result": body}

        if response.status_code >= 400 or body.get("success") is False:
            message = body.get("error") or body.get("message") or response.reason_phrase
            logger.warning(
                "bridge request rejected",
                extra={"extra_fields": {"endpoint": endpoint, "status": response.status_code}},
            )
            raise BridgeError(f"{endpoint}: {message}", status_code=response.status_code)
        return body

    # ── Events ───────────────────────────────────────────────────────────────

    def add_listener(self, listener: RawEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    async def dispatch(self, data_type: str, data: Any) -> None:
        """Feed one webhook event to the listeners.

        ``ready`` refreshes the cached account info first so listeners
        reading ``info`` see the paired identity.
        """
        if data_type == "ready":
            await self.refresh_info()
        elif data_type in ("disconnected", "auth_failure"):
            self._info = None
        for listener in list(self._listeners):
            try:
                listener(data_type, data)
            except Exception:
                logger.exception(
                    "raw event listener failed",
                    extra={"extra_fields": {"event": data_type}},
                )

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def info(self) -> dict[str, Any] | None:
        return self._info

    async def refresh_info(self) -> dict[str, Any] | None:
        try:
            body = await self._request("client/getClassInfo", method="GET")
        except BridgeError:
            return self._info
        info = body.get("sessionInfo")
        self._info = info if isinstance(info, dict) else None
        return self._info

    async def initialize(self) -> None:
        await self._request("session/start", method="GET")

    async def destroy(self) -> None:
        self._info = None
        await self._request("session/stop", method="GET")

    async def logout(self) -> None:
        await self._request("session/terminate", method="GET")
        self._info = None

    # ── Messages ─────────────────────────────────────────────────────────────

    async def send_message(self, to: str, content: str) -> dict[str, Any]:
        body = await self._request(
            "client/sendMessage",
            {"chatId": to, "contentType": "string", "content": content},
        )
        return body.get("message") or {}

    async def send_media(
        self, to: str, media: MediaPayload, caption: str | None = None
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chatId": to,
            "contentType": "MessageMedia",
            "content": media.to_dict(),
        }
        if caption:
            data["options"] = {"caption": caption}
        body = await self._request("client/sendMessage", data)
        return body.get("message") or {}

    async def _message_call(self, endpoint: str, message_id: str, **extra: Any) -> dict[str, Any]:
        chat_id = chat_id_from_message_id(message_id)
        if chat_id is None:
            message = await self.get_message_by_id(message_id) or {}
            chat_id = message.get("to") if message.get("fromMe") else message.get("from")
        data = {"chatId": chat_id, "messageId": message_id}
        data.update(extra)
        return await self._request(endpoint, data)

    async def get_message_by_id(self, message_id: str) -> dict[str, Any] | None:
        data: dict[str, Any] = {"messageId": message_id}
        chat_id = chat_id_from_message_id(message_id)
        if chat_id:
            data["chatId"] = chat_id
        try:
            body = await self._request("message/getMessageById", data)
        except BridgeError as exc:
            if exc.status_code == 404:
                return None
            raise
        message = body.get("message")
        return message if isinstance(message, dict) else None

    async def react(self, message_id: str, reaction: str) -> None:
        await self._message_call("message/react", message_id, reaction=reaction)

    async def forward_message(self, message_id: str, to: str) -> None:
        await self._message_call("message/forward", message_id, destinationChatId=to)

    async def delete_message(self, message_id: str, everyone: bool) -> None:
        await self._message_call("message/delete", message_id, everyone=everyone)

    async def star_message(self, message_id: str) -> None:
        await self._message_call("message/star", message_id)

    async def unstar_message(self, message_id: str) -> None:
        await self._message_call("message/unstar", message_id)

    async def download_media(self, message_id: str) -> MediaPayload | None:
        body = await self._message_call("message/downloadMedia", message_id)
        media = body.get("messageMedia")
        if not isinstance(media, dict) or not media.get("data"):
            return None
        return MediaPayload(
            mimetype=media.get("mimetype") or "application/octet-stream",
            data=media["data"],
            filename=media.get("filename"),
        )

    # ── Contacts ─────────────────────────────────────────────────────────────

    async def get_contacts(self) -> list[dict[str, Any]]:
        body = await self._request("client/getContacts", method="GET")
        return list(body.get("contacts") or [])

    async def get_contact_by_id(self, contact_id: str) -> dict[str, Any] | None:
        try:
            body = await self._request("client/getContactById", {"contactId": contact_id})
        except BridgeError as exc:
            if exc.status_code == 404:
                return None
            raise
        contact = body.get("contact")
        return contact if isinstance(contact, dict) else None

    async def get_profile_pic_url(self, contact_id: str) -> str | None:
        body = await self._request("client/getProfilePicUrl", {"contactId": contact_id})
        result = body.get("result")
        return result if isinstance(result, str) and result else None

    async def block_contact(self, contact_id: str) -> None:
        await self._request("contact/block", {"contactId": contact_id})

    async def unblock_contact(self, contact_id: str) -> None:
        await self._request("contact/unblock", {"contactId": contact_id})

    # ── Chats ────────────────────────────────────────────────────────────────

    async def get_chats(self) -> list[dict[str, Any]]:
        body = await self._request("client/getChats", method="GET")
        return list(body.get("chats") or [])

    async def get_chat_by_id(self, chat_id: str) -> dict[str, Any] | None:
        try:
            body = await self._request("client/getChatById", {"chatId": chat_id})
        except BridgeError as exc:
            if exc.status_code == 404:
                return None
            raise
        chat = body.get("chat")
        return chat if isinstance(chat, dict) else None

    async def fetch_messages(self, chat_id: str, limit: int) -> list[dict[str, Any]]:
        body = await self._request(
            "chat/fetchMessages", {"chatId": chat_id, "searchOptions": {"limit": limit}}
        )
        return list(body.get("messages") or [])

    async def send_seen(self, chat_id: str) -> None:
        await self._request("chat/sendSeen", {"chatId": chat_id})

    async def mute_chat(self, chat_id: str, unmute_at: datetime | None) -> None:
        data: dict[str, Any] = {"chatId": chat_id}
        if unmute_at is not None:
            data["unmuteDate"] = unmute_at.isoformat()
        await self._request("client/muteChat", data)

    async def unmute_chat(self, chat_id: str) -> None:
        await self._request("client/unmuteChat", {"chatId": chat_id})

    async def archive_chat(self, chat_id: str) -> None:
        await self._request("client/archiveChat", {"chatId": chat_id})

    async def unarchive_chat(self, chat_id: str) -> None:
        await self._request("client/unarchiveChat", {"chatId": chat_id})

    async def pin_chat(self, chat_id: str) -> None:
        await self._request("client/pinChat", {"chatId": chat_id})

    async def unpin_chat(self, chat_id: str) -> None:
        await self._request("client/unpinChat", {"chatId": chat_id})

    async def delete_chat(self, chat_id: str) -> None:
        await self._request("chat/delete", {"chatId": chat_id})

    # ── Groups ───────────────────────────────────────────────────────────────

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]:
        body = await self._request(
            "client/createGroup", {"title": name, "participants": participants}
        )
        response = body.get("response")
        return response if isinstance(response, dict) else {}

    async def accept_invite(self, invite_code: str) -> str:
        body = await self._request("client/acceptInvite", {"inviteCode": invite_code})
        return str(body.get("acceptInvite") or "")

    async def get_invite_code(self, group_id: str) -> str:
        body = await self._request("groupChat/getInviteCode", {"chatId": group_id})
        return str(body.get("inviteCode") or "")

    async def _participants_call(self, endpoint: str, group_id: str, participants: list[str]) -> None:
        await self._request(endpoint, {"chatId": group_id, "participantIds": participants})

    async def add_participants(self, group_id: str, participants: list[str]) -> None:
        await self._participants_call("groupChat/addParticipants", group_id, participants)

    async def remove_participants(self, group_id: str, participants: list[str]) -> None:
        await self._participants_call("groupChat/removeParticipants", group_id, participants)

    async def promote_participants(self, group_id: str, participants: list[str]) -> None:
        await self._participants_call("groupChat/promoteParticipants", group_id, participants)

    async def demote_participants(self, group_id: str, participants: list[str]) -> None:
        await self._participants_call("groupChat/demoteParticipants", group_id, participants)

    async def leave_group(self, group_id: str) -> None:
        await self._request("groupChat/leave", {"chatId": group_id})

    async def set_group_subject(self, group_id: str, subject: str) -> None:
        await self._request("groupChat/setSubject", {"chatId": group_id, "subject": subject})

    async def set_group_description(self, group_id: str, description: str) -> None:
        await self._request(
            "groupChat/setDescription", {"chatId": group_id, "description": description}
        )

    async def set_messages_admins_only(self, group_id: str, admins_only: bool) -> None:
        await self._request(
            "groupChat/setMessagesAdminsOnly", {"chatId": group_id, "adminsOnly": admins_only}
        )

    async def set_info_admins_only(self, group_id: str, admins_only: bool) -> None:
        await self._request(
            "groupChat/setInfoAdminsOnly", {"chatId": group_id, "adminsOnly": admins_only}
        )

    async def set_add_members_admins_only(self, group_id: str, admins_only: bool) -> None:
        await self._request(
            "groupChat/setAddMembersAdminsOnly", {"chatId": group_id, "adminsOnly": admins_only}
        )

    # ── Profile ──────────────────────────────────────────────────────────────

    async def set_status(self, text: str) -> None:
        await self._request("client/setStatus", {"status": text})
