"""Build normalized descriptors from raw client objects.

Raw objects follow the whatsapp-web.js JSON shape (``id._serialized``,
``hasMedia``, ``groupMetadata`` ...). Parsing is lenient: missing or
malformed fields become None/False instead of raising, so one bad
payload never aborts a listing or the event pipeline.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

from .models import MessagePayload

UNKNOWN_CONTACT_NAME = "Unknown"


def serialize_id(value: Any) -> str | None:
    """Return the serialized id from ``{"_serialized": ...}`` or a plain string."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        serialized = value.get("_serialized")
        if isinstance(serialized, str) and serialized:
            return serialized
        user, server = value.get("user"), value.get("server")
        if isinstance(user, str) and isinstance(server, str):
            return f"{user}@{server}"
    return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and not math.isnan(value):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _as_bool(value: Any) -> bool:
    return value is True


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def message_payload(raw: Any) -> MessagePayload:
    """Parse a raw message into the event/descriptor payload."""
    data = _as_dict(raw)
    return MessagePayload(
        id=serialize_id(data.get("id")),
        from_=_as_str(data.get("from")),
        to=_as_str(data.get("to")),
        body=_as_str(data.get("body")),
        timestamp=_as_int(data.get("timestamp")),
        type=_as_str(data.get("type")),
        has_media=_as_bool(data.get("hasMedia")),
        is_forwarded=_as_bool(data.get("isForwarded")),
        from_me=_as_bool(data.get("fromMe")),
    )


def message_descriptor(raw: Any) -> dict[str, Any]:
    return message_payload(raw).to_dict()


def contact_descriptor(raw: Any, profile_pic_url: str | None = None) -> dict[str, Any]:
    data = _as_dict(raw)
    name = _as_str(data.get("name")) or _as_str(data.get("pushname")) or UNKNOWN_CONTACT_NAME
    return {
        "id": serialize_id(data.get("id")),
        "name": name,
        "number": _as_str(data.get("number")) or "",
        "isGroup": _as_bool(data.get("isGroup")),
        "isBlocked": _as_bool(data.get("isBlocked")),
        "isBusiness": _as_bool(data.get("isBusiness")),
        "profilePicUrl": profile_pic_url,
    }


def is_group_chat(raw: Any) -> bool:
    data = _as_dict(raw)
    if data.get("isGroup") is True:
        return True
    chat_id = serialize_id(data.get("id")) or ""
    return chat_id.endswith("@g.us")


def chat_descriptor(raw: Any) -> dict[str, Any]:
    data = _as_dict(raw)
    return {
        "id": serialize_id(data.get("id")),
        "name": _as_str(data.get("name")),
        "isGroup": is_group_chat(data),
        "isReadOnly": _as_bool(data.get("isReadOnly")),
        "unreadCount": _as_int(data.get("unreadCount")) or 0,
        "timestamp": _as_int(data.get("timestamp")),
        "archived": _as_bool(data.get("archived")),
        "pinned": _as_bool(data.get("pinned")),
        "isMuted": _as_bool(data.get("isMuted")),
        "muteExpiration": _as_int(data.get("muteExpiration")),
    }


def _participants(data: dict[str, Any]) -> list[dict[str, Any]]:
    raw_participants = data.get("participants")
    if not isinstance(raw_participants, list):
        raw_participants = _as_dict(data.get("groupMetadata")).get("participants")
    if not isinstance(raw_participants, list):
        return []

    participants = []
    for item in raw_participants:
        entry = _as_dict(item)
        participant_id = serialize_id(entry.get("id"))
        if participant_id is None:
            continue
        participants.append(
            {
                "id": participant_id,
                "isAdmin": _as_bool(entry.get("isAdmin")),
                "isSuperAdmin": _as_bool(entry.get("isSuperAdmin")),
            }
        )
    return participants


def group_descriptor(raw: Any) -> dict[str, Any]:
    data = _as_dict(raw)
    metadata = _as_dict(data.get("groupMetadata"))
    participants = _participants(data)
    description = data.get("description")
    if description is None:
        description = metadata.get("desc")
    created_at = data.get("timestamp")
    if created_at is None:
        created_at = metadata.get("creation")
    return {
        "id": serialize_id(data.get("id")),
        "name": _as_str(data.get("name")) or _as_str(metadata.get("subject")),
        "description": _as_str(description),
        "participants": participants,
        "owner": serialize_id(data.get("owner") or metadata.get("owner")) or "",
        "admins": [p["id"] for p in participants if p["isAdmin"] or p["isSuperAdmin"]],
        "isReadOnly": _as_bool(data.get("isReadOnly")),
        "createdAt": _as_int(created_at),
    }


def paginate(items: list[dict[str, Any]], page: int, limit: int) -> dict[str, Any]:
    """Slice an already-filtered list into the paginated response shape."""
    offset = (page - 1) * limit
    total = len(items)
    return {
        "data": items[offset:offset + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    }


def matches_search(values: Iterable[str | None], term: str) -> bool:
    """Case-insensitive substring match against any non-empty value."""
    needle = term.lower()
    return any(value and needle in value.lower() for value in values)
