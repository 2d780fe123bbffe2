"""WhatsApp session and event models.

Everything here is plain data: immutable, serializable, and free of
references to the underlying client's objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from mariflow.infra.time import to_epoch_ms, utc_now


class SessionPhase(str, Enum):
    """Lifecycle phase of the single underlying client session."""

    UNINITIALIZED = "UNINITIALIZED"
    AWAITING_QR = "AWAITING_QR"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    DISCONNECTED = "DISCONNECTED"


@dataclass(frozen=True)
class SessionStatus:
    """Immutable snapshot of the session state holder.

    ``ready`` and ``authenticated`` are derived from ``phase`` so that
    ready implies authenticated for every snapshot.
    """

    phase: SessionPhase = SessionPhase.UNINITIALIZED
    qr_challenge: str | None = None
    phone_number: str | None = None
    display_name: str | None = None
    last_activity_at: datetime | None = None

    @property
    def ready(self) -> bool:
        return self.phase is SessionPhase.READY

    @property
    def authenticated(self) -> bool:
        return self.phase in (SessionPhase.AUTHENTICATED, SessionPhase.READY)

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by HTTP responses and socket pushes."""
        return {
            "isReady": self.ready,
            "isAuthenticated": self.authenticated,
            "qrCode": self.qr_challenge,
            "phoneNumber": self.phone_number,
            "name": self.display_name,
            "lastSeen": to_epoch_ms(self.last_activity_at),
            "state": self.phase.value,
        }


@dataclass(frozen=True)
class MediaPayload:
    """Media attachment passed to / returned from the client (base64 body)."""

    mimetype: str
    data: str
    filename: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"mimetype": self.mimetype, "data": self.data, "filename": self.filename}


# ── Event payloads ────────────────────────────────────────────────────────────


def _wire(name: str, default: Any = None) -> Any:
    """Dataclass field with a wire (camelCase) name."""
    return field(default=default, metadata={"wire": name})


class _Payload:
    """Shared dict conversion for event payload dataclasses."""

    def to_dict(self) -> dict[str, Any]:
        return {
            f.metadata.get("wire", f.name): getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        kwargs = {}
        for f in fields(cls):  # type: ignore[arg-type]
            key = f.metadata.get("wire", f.name)
            if key in data:
                kwargs[f.name] = data[key]
        return cls(**kwargs)


@dataclass(frozen=True)
class QrPayload(_Payload):
    qr_code: str | None = _wire("qrCode")


@dataclass(frozen=True)
class AuthenticatedPayload(_Payload):
    pass


@dataclass(frozen=True)
class AuthFailurePayload(_Payload):
    message: str | None = None


@dataclass(frozen=True)
class ReadyPayload(_Payload):
    phone_number: str | None = _wire("phoneNumber")
    name: str | None = None


@dataclass(frozen=True)
class DisconnectedPayload(_Payload):
    reason: str | None = None


@dataclass(frozen=True)
class MessagePayload(_Payload):
    id: str | None = None
    from_: str | None = _wire("from")
    to: str | None = None
    body: str | None = None
    timestamp: int | None = None
    type: str | None = None
    has_media: bool = _wire("hasMedia", False)
    is_forwarded: bool = _wire("isForwarded", False)
    from_me: bool = _wire("fromMe", False)


@dataclass(frozen=True)
class MessageAckPayload(_Payload):
    message_id: str | None = _wire("messageId")
    ack: int | None = None


@dataclass(frozen=True)
class ReactionPayload(_Payload):
    message_id: str | None = _wire("messageId")
    reaction: str | None = None
    sender_id: str | None = _wire("senderId")
    timestamp: int | None = None


@dataclass(frozen=True)
class GroupMembershipPayload(_Payload):
    chat_id: str | None = _wire("chatId")
    author: str | None = None
    recipient_ids: tuple[str, ...] = _wire("recipientIds", ())
    type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["recipientIds"] = list(self.recipient_ids)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupMembershipPayload":
        return cls(
            chat_id=data.get("chatId"),
            author=data.get("author"),
            recipient_ids=tuple(data.get("recipientIds") or ()),
            type=data.get("type"),
        )


@dataclass(frozen=True)
class BatteryPayload(_Payload):
    battery: int | None = None
    plugged: bool | None = None


@dataclass(frozen=True)
class StateChangedPayload(_Payload):
    state: str | None = None


class EventKind(str, Enum):
    """Normalized event kinds. Values double as raw client event names."""

    QR = "qr"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    MESSAGE_CREATE = "message_create"
    MESSAGE_ACK = "message_ack"
    MESSAGE_REACTION = "message_reaction"
    GROUP_JOIN = "group_join"
    GROUP_LEAVE = "group_leave"
    BATTERY_CHANGED = "battery_changed"
    STATE_CHANGED = "state_changed"

    @property
    def channel(self) -> str:
        """Socket/stream event name, e.g. ``whatsapp:message``."""
        return f"whatsapp:{self.value}"


PAYLOAD_TYPES: dict[EventKind, type[_Payload]] = {
    EventKind.QR: QrPayload,
    EventKind.AUTHENTICATED: AuthenticatedPayload,
    EventKind.AUTH_FAILURE: AuthFailurePayload,
    EventKind.READY: ReadyPayload,
    EventKind.DISCONNECTED: DisconnectedPayload,
    EventKind.MESSAGE: MessagePayload,
    EventKind.MESSAGE_CREATE: MessagePayload,
    EventKind.MESSAGE_ACK: MessageAckPayload,
    EventKind.MESSAGE_REACTION: ReactionPayload,
    EventKind.GROUP_JOIN: GroupMembershipPayload,
    EventKind.GROUP_LEAVE: GroupMembershipPayload,
    EventKind.BATTERY_CHANGED: BatteryPayload,
    EventKind.STATE_CHANGED: StateChangedPayload,
}


@dataclass(frozen=True)
class NormalizedEvent:
    """One normalized client event, ready for fan-out.

    Attributes:
        kind: Event kind (tag of the union).
        payload: Kind-specific payload dataclass.
        occurred_at: When the event was normalized.
    """

    CHANNEL_PREFIX: ClassVar[str] = "whatsapp:"

    kind: EventKind
    payload: Any
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire dict."""
        return {
            "event": self.kind.channel,
            "data": self.payload.to_dict(),
            "timestamp": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedEvent":
        """Parse the wire dict produced by ``to_dict``.

        Raises:
            ValueError: If the event name is unknown.
        """
        name = str(data.get("event", ""))
        if not name.startswith(cls.CHANNEL_PREFIX):
            raise ValueError(f"Unsupported event: {name}")
        kind = EventKind(name[len(cls.CHANNEL_PREFIX):])
        payload = PAYLOAD_TYPES[kind].from_dict(data.get("data") or {})
        return cls(
            kind=kind,
            payload=payload,
            occurred_at=datetime.fromisoformat(data["timestamp"]),
        )
