"""Raw client event -> NormalizedEvent, plus the session state transition.

Raw payload shapes differ between client variants (the in-process client
passes bare objects, the sidecar webhook wraps them: ``{"message": {...}}``,
``{"qr": "..."}``, ``{"batteryInfo": {...}}``). Every field is read
leniently; a malformed payload degrades to nulls and is still emitted.
"""

from __future__ import annotations

from typing import Any, Callable

from mariflow.observability.logging import get_logger
from mariflow.observability.redaction import safe_log_context

from .broadcaster import EventBroadcaster
from .client import WhatsAppClient
from .descriptors import message_payload, serialize_id
from .models import (
    AuthenticatedPayload,
    AuthFailurePayload,
    BatteryPayload,
    DisconnectedPayload,
    EventKind,
    GroupMembershipPayload,
    MessageAckPayload,
    NormalizedEvent,
    QrPayload,
    ReactionPayload,
    ReadyPayload,
    SessionPhase,
    StateChangedPayload,
)
from .state import SessionStateHolder

logger = get_logger(__name__)

# Raw names used by whatsapp-web.js that differ from the normalized kind
_RAW_ALIASES = {
    "change_battery": EventKind.BATTERY_CHANGED,
    "change_state": EventKind.STATE_CHANGED,
}


def _kind_for(event_name: str) -> EventKind | None:
    if event_name in _RAW_ALIASES:
        return _RAW_ALIASES[event_name]
    try:
        return EventKind(event_name)
    except ValueError:
        return None


def _unwrap(raw: Any, key: str) -> Any:
    """Return ``raw[key]`` when the payload is wrapped, else ``raw`` itself."""
    if isinstance(raw, dict) and isinstance(raw.get(key), dict):
        return raw[key]
    return raw


def _text(raw: Any, key: str) -> str | None:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        value = raw.get(key)
        return value if isinstance(value, str) else None
    return None


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def identity_from_info(info: Any) -> tuple[str | None, str | None]:
    """Extract (phone number, display name) from the client's info object."""
    if not isinstance(info, dict):
        return None, None
    wid = info.get("wid") or info.get("me")
    phone = None
    if isinstance(wid, dict) and isinstance(wid.get("user"), str):
        phone = wid["user"]
    else:
        serialized = serialize_id(wid)
        if serialized:
            phone = serialized.split("@", 1)[0]
    name = info.get("pushname")
    return phone, name if isinstance(name, str) else None


def _message_ack(raw: Any) -> MessageAckPayload:
    message = _unwrap(raw, "message")
    message_id = serialize_id(message.get("id")) if isinstance(message, dict) else None
    ack = raw.get("ack") if isinstance(raw, dict) else None
    if ack is None and isinstance(message, dict):
        ack = message.get("ack")
    return MessageAckPayload(message_id=message_id, ack=_int(ack))


def _reaction(raw: Any) -> ReactionPayload:
    data = _unwrap(raw, "reaction")
    if not isinstance(data, dict):
        return ReactionPayload()
    return ReactionPayload(
        message_id=serialize_id(data.get("msgId")),
        reaction=data.get("reaction") if isinstance(data.get("reaction"), str) else None,
        sender_id=serialize_id(data.get("senderId")),
        timestamp=_int(data.get("timestamp")),
    )


def _group_membership(raw: Any) -> GroupMembershipPayload:
    data = _unwrap(raw, "notification")
    if not isinstance(data, dict):
        return GroupMembershipPayload()
    chat_id = serialize_id(data.get("chatId"))
    if chat_id is None and isinstance(data.get("id"), dict):
        chat_id = serialize_id(data["id"].get("remote"))
    recipients = data.get("recipientIds")
    recipient_ids = tuple(
        rid for rid in (serialize_id(r) for r in recipients or ()) if rid
    ) if isinstance(recipients, list) else ()
    return GroupMembershipPayload(
        chat_id=chat_id,
        author=serialize_id(data.get("author")),
        recipient_ids=recipient_ids,
        type=data.get("type") if isinstance(data.get("type"), str) else None,
    )


def _battery(raw: Any) -> BatteryPayload:
    data = _unwrap(raw, "batteryInfo")
    if not isinstance(data, dict):
        return BatteryPayload()
    plugged = data.get("plugged")
    return BatteryPayload(
        battery=_int(data.get("battery")),
        plugged=plugged if isinstance(plugged, bool) else None,
    )


class EventNormalizer:
    """Consumes the client's raw event stream.

    For every raw event: build the payload, apply the state transition,
    publish. Exactly one event per raw event (two for a ``ready`` that
    skipped ``authenticated``), in arrival order.
    """

    def __init__(
        self,
        client: WhatsAppClient,
        state: SessionStateHolder,
        broadcaster: EventBroadcaster,
    ) -> None:
        self._client = client
        self._state = state
        self._broadcaster = broadcaster
        self._remove_listener: Callable[[], None] | None = None

    def attach(self) -> None:
        if self._remove_listener is None:
            self._remove_listener = self._client.add_listener(self.handle)

    def detach(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    def handle(self, event_name: str, raw: Any = None) -> list[NormalizedEvent]:
        """Listener entry point. Never raises into the client."""
        kind = _kind_for(event_name)
        if kind is None:
            logger.debug(
                "ignoring unsupported client event",
                extra={"extra_fields": {"event": event_name}},
            )
            return []
        try:
            events = self._apply(kind, raw)
        except Exception:
            logger.exception(
                "failed to normalize client event",
                extra={"extra_fields": safe_log_context(event=event_name, raw=raw)},
            )
            return []

        for event in events:
            self._broadcaster.publish(event)
        return events

    def _apply(self, kind: EventKind, raw: Any) -> list[NormalizedEvent]:
        state = self._state

        if kind is EventKind.QR:
            challenge = _text(raw, "qr")
            state.await_qr(challenge)
            logger.info("qr challenge received")
            return [NormalizedEvent(kind, QrPayload(qr_code=challenge))]

        if kind is EventKind.AUTHENTICATED:
            state.authenticate()
            logger.info("client authenticated")
            return [NormalizedEvent(kind, AuthenticatedPayload())]

        if kind is EventKind.AUTH_FAILURE:
            message = _text(raw, "msg") or _text(raw, "message")
            state.keep_awaiting_qr()
            logger.warning("client authentication failed")
            return [NormalizedEvent(kind, AuthFailurePayload(message=message))]

        if kind is EventKind.READY:
            events = []
            if state.phase is not SessionPhase.AUTHENTICATED:
                # Restored sessions can skip the authenticated event
                state.authenticate()
                events.append(NormalizedEvent(EventKind.AUTHENTICATED, AuthenticatedPayload()))
            phone, name = identity_from_info(self._client.info)
            state.mark_ready(phone, name)
            logger.info("client ready")
            events.append(NormalizedEvent(kind, ReadyPayload(phone_number=phone, name=name)))
            return events

        if kind is EventKind.DISCONNECTED:
            reason = _text(raw, "reason")
            state.disconnect()
            logger.warning(
                "client disconnected",
                extra={"extra_fields": {"reason": reason}},
            )
            return [NormalizedEvent(kind, DisconnectedPayload(reason=reason))]

        if kind in (EventKind.MESSAGE, EventKind.MESSAGE_CREATE):
            payload = message_payload(_unwrap(raw, "message"))
            state.touch()
            return [NormalizedEvent(kind, payload)]

        if kind is EventKind.MESSAGE_ACK:
            return [NormalizedEvent(kind, _message_ack(raw))]

        if kind is EventKind.MESSAGE_REACTION:
            return [NormalizedEvent(kind, _reaction(raw))]

        if kind in (EventKind.GROUP_JOIN, EventKind.GROUP_LEAVE):
            return [NormalizedEvent(kind, _group_membership(raw))]

        if kind is EventKind.BATTERY_CHANGED:
            return [NormalizedEvent(kind, _battery(raw))]

        # STATE_CHANGED
        return [NormalizedEvent(kind, StateChangedPayload(state=_text(raw, "state")))]
