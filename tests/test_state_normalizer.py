"""Tests for the session state holder and the event normalizer."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, PropertyMock

import pytest

from mariflow.whatsapp.broadcaster import EventBroadcaster
from mariflow.whatsapp.models import EventKind, SessionPhase
from mariflow.whatsapp.normalizer import EventNormalizer, identity_from_info
from mariflow.whatsapp.state import SessionStateHolder

OWN_INFO = {
    "wid": {"user": "5511900000000", "server": "c.us", "_serialized": "5511900000000@c.us"},
    "pushname": "Mari",
    "platform": "android",
}


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def holder():
    return SessionStateHolder(clock=FakeClock())


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def raw_client():
    client = MagicMock()
    client.info = dict(OWN_INFO)
    return client


@pytest.fixture
def normalizer(raw_client, holder, broadcaster):
    return EventNormalizer(raw_client, holder, broadcaster)


class TestSessionStateHolder:
    def test_starts_uninitialized(self, holder):
        status = holder.snapshot()
        assert status.phase is SessionPhase.UNINITIALIZED
        assert status.last_activity_at is None

    def test_authenticate_clears_qr(self, holder):
        holder.await_qr("2@abc")
        assert holder.snapshot().qr_challenge == "2@abc"
        holder.authenticate()
        assert holder.snapshot().qr_challenge is None
        assert holder.snapshot().authenticated

    def test_disconnect_keeps_identity(self, holder):
        holder.mark_ready("5511900000000", "Mari")
        holder.disconnect()
        status = holder.snapshot()
        assert status.phase is SessionPhase.DISCONNECTED
        assert not status.ready
        assert not status.authenticated
        assert status.phone_number == "5511900000000"

    def test_disconnect_only_from_connected_phases(self, holder):
        holder.disconnect()
        assert holder.phase is SessionPhase.UNINITIALIZED
        holder.await_qr("2@abc")
        holder.disconnect()
        assert holder.phase is SessionPhase.AWAITING_QR
        assert holder.snapshot().qr_challenge == "2@abc"

    def test_keep_awaiting_qr_only_while_pairing(self, holder):
        holder.keep_awaiting_qr()
        assert holder.phase is SessionPhase.UNINITIALIZED
        holder.authenticate()
        holder.keep_awaiting_qr()
        assert holder.phase is SessionPhase.AUTHENTICATED

    def test_touch_advances_activity_only(self, holder):
        holder.mark_ready("1", "A")
        before = holder.snapshot()
        after = holder.touch()
        assert after.last_activity_at > before.last_activity_at
        assert after.phase is SessionPhase.READY

    def test_reset(self, holder):
        holder.mark_ready("1", "A")
        holder.reset()
        assert holder.snapshot().phase is SessionPhase.UNINITIALIZED
        assert holder.snapshot().phone_number is None

    def test_snapshots_are_stable(self, holder):
        first = holder.snapshot()
        holder.await_qr("x")
        assert first.phase is SessionPhase.UNINITIALIZED


class TestIdentityFromInfo:
    def test_from_wid(self):
        assert identity_from_info(OWN_INFO) == ("5511900000000", "Mari")

    def test_from_serialized_string(self):
        assert identity_from_info({"wid": "5511@c.us"}) == ("5511", None)

    def test_missing(self):
        assert identity_from_info(None) == (None, None)


class TestEventNormalizer:
    def test_attach_registers_once(self, normalizer, raw_client):
        normalizer.attach()
        normalizer.attach()
        raw_client.add_listener.assert_called_once_with(normalizer.handle)

    def test_detach_calls_remove(self, normalizer, raw_client):
        normalizer.attach()
        remove = raw_client.add_listener.return_value
        normalizer.detach()
        remove.assert_called_once_with()

    def test_qr_sets_challenge(self, normalizer, holder):
        events = normalizer.handle("qr", "2@challenge")
        assert [e.kind for e in events] == [EventKind.QR]
        assert events[0].payload.qr_code == "2@challenge"
        assert holder.phase is SessionPhase.AWAITING_QR
        assert holder.snapshot().qr_challenge == "2@challenge"

    def test_qr_wrapped_by_sidecar(self, normalizer, holder):
        normalizer.handle("qr", {"qr": "2@wrapped"})
        assert holder.snapshot().qr_challenge == "2@wrapped"

    def test_full_pairing_sequence(self, normalizer, holder):
        normalizer.handle("qr", "2@abc")
        normalizer.handle("authenticated")
        events = normalizer.handle("ready")
        assert [e.kind for e in events] == [EventKind.READY]
        status = holder.snapshot()
        assert status.ready and status.authenticated
        assert status.qr_challenge is None
        assert status.phone_number == "5511900000000"
        assert status.display_name == "Mari"
        assert events[0].payload.to_dict() == {"phoneNumber": "5511900000000", "name": "Mari"}

    def test_ready_without_authenticated_synthesizes_it(self, normalizer, holder):
        events = normalizer.handle("ready")
        assert [e.kind for e in events] == [EventKind.AUTHENTICATED, EventKind.READY]
        assert holder.snapshot().ready

    @pytest.mark.parametrize(
        "sequence",
        [
            ["qr", "authenticated", "ready", "disconnected", "qr", "ready"],
            ["ready", "auth_failure", "qr", "authenticated"],
            ["qr", "auth_failure", "auth_failure", "ready", "message"],
            ["disconnected", "ready", "change_state", "disconnected"],
        ],
    )
    def test_ready_always_implies_authenticated(self, normalizer, holder, sequence):
        for name in sequence:
            normalizer.handle(name, {})
            status = holder.snapshot()
            if status.ready:
                assert status.authenticated

    def test_auth_failure_returns_to_awaiting_qr(self, normalizer, holder):
        normalizer.handle("qr", "2@abc")
        events = normalizer.handle("auth_failure", {"msg": "bad creds"})
        assert events[0].payload.message == "bad creds"
        assert holder.phase is SessionPhase.AWAITING_QR
        assert holder.snapshot().qr_challenge == "2@abc"

    def test_disconnected_clears_flags(self, normalizer, holder):
        normalizer.handle("ready")
        events = normalizer.handle("disconnected", "NAVIGATION")
        assert events[0].payload.reason == "NAVIGATION"
        status = holder.snapshot()
        assert not status.ready
        assert not status.authenticated

    @pytest.mark.parametrize("setup", [[], ["qr"]])
    def test_disconnected_before_authentication_keeps_phase(self, normalizer, holder, setup):
        for name in setup:
            normalizer.handle(name, "2@abc")
        before = holder.snapshot()
        events = normalizer.handle("disconnected", {"reason": "NAVIGATION"})
        assert [e.kind for e in events] == [EventKind.DISCONNECTED]
        assert holder.snapshot() == before

    def test_late_disconnect_after_reset_is_ignored(self, normalizer, holder):
        normalizer.handle("ready")
        holder.reset()
        normalizer.handle("disconnected", {"reason": "LOGOUT"})
        assert holder.phase is SessionPhase.UNINITIALIZED
        normalizer.handle("qr", "2@fresh")
        assert holder.phase is SessionPhase.AWAITING_QR

    def test_auth_failure_outside_pairing_keeps_phase(self, normalizer, holder):
        normalizer.handle("ready")
        events = normalizer.handle("auth_failure", {"msg": "stale"})
        assert events[0].kind is EventKind.AUTH_FAILURE
        assert holder.phase is SessionPhase.READY
        assert holder.snapshot().ready

    def test_message_touches_activity(self, normalizer, holder):
        normalizer.handle("ready")
        before = holder.snapshot().last_activity_at
        events = normalizer.handle(
            "message",
            {"id": {"_serialized": "false_1@c.us_A"}, "from": "1@c.us", "body": "oi"},
        )
        assert events[0].payload.id == "false_1@c.us_A"
        assert holder.snapshot().last_activity_at > before

    def test_sidecar_wrapped_message(self, normalizer):
        events = normalizer.handle("message_create", {"message": {"id": "x", "body": "b"}})
        assert events[0].kind is EventKind.MESSAGE_CREATE
        assert events[0].payload.body == "b"

    def test_message_ack(self, normalizer):
        events = normalizer.handle("message_ack", {"message": {"id": {"_serialized": "m1"}}, "ack": 3})
        assert events[0].payload.to_dict() == {"messageId": "m1", "ack": 3}

    def test_reaction(self, normalizer):
        events = normalizer.handle(
            "message_reaction",
            {"msgId": {"_serialized": "m1"}, "reaction": "👍", "senderId": "2@c.us", "timestamp": 5},
        )
        assert events[0].payload.to_dict() == {
            "messageId": "m1",
            "reaction": "👍",
            "senderId": "2@c.us",
            "timestamp": 5,
        }

    def test_group_join(self, normalizer):
        events = normalizer.handle(
            "group_join",
            {"notification": {"id": {"remote": "1@g.us"}, "recipientIds": ["2@c.us"], "type": "add"}},
        )
        payload = events[0].payload
        assert payload.chat_id == "1@g.us"
        assert payload.recipient_ids == ("2@c.us",)

    def test_battery_alias(self, normalizer):
        events = normalizer.handle("change_battery", {"batteryInfo": {"battery": 80, "plugged": True}})
        assert events[0].kind is EventKind.BATTERY_CHANGED
        assert events[0].payload.battery == 80

    def test_state_alias(self, normalizer):
        events = normalizer.handle("change_state", "CONNECTED")
        assert events[0].kind is EventKind.STATE_CHANGED
        assert events[0].payload.state == "CONNECTED"

    def test_unknown_event_is_ignored(self, normalizer, holder, broadcaster):
        sub = broadcaster.subscribe()
        assert normalizer.handle("loading_screen", {"percent": 10}) == []
        assert sub.pending() == 0
        assert holder.phase is SessionPhase.UNINITIALIZED

    def test_malformed_payloads_still_emit(self, normalizer, broadcaster):
        sub = broadcaster.subscribe()
        for name in ("message", "message_ack", "message_reaction", "group_leave", "change_battery"):
            events = normalizer.handle(name, 12345)
            assert len(events) == 1
        assert sub.pending() == 5

    def test_failure_is_swallowed(self, normalizer, raw_client):
        type(raw_client).info = PropertyMock(side_effect=RuntimeError("boom"))
        assert normalizer.handle("ready") == []

    def test_events_are_published_in_order(self, normalizer, broadcaster):
        sub = broadcaster.subscribe()
        normalizer.handle("qr", "a")
        normalizer.handle("authenticated")
        normalizer.handle("ready")
        kinds = [sub._queue.get_nowait().kind for _ in range(sub.pending())]
        assert kinds == [EventKind.QR, EventKind.AUTHENTICATED, EventKind.READY]
