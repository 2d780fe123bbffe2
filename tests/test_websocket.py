"""Tests for the /ws push channel."""

from fastapi.testclient import TestClient

from .helpers import ALICE


class TestWebSocket:
    def test_status_pushed_on_connect(self, app):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                frame = ws.receive_json()
        assert frame["event"] == "whatsapp:status"
        assert frame["data"]["isReady"] is True
        assert "timestamp" in frame

    def test_get_status_on_request(self, app):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"event": "whatsapp:get_status"})
                frame = ws.receive_json()
        assert frame["event"] == "whatsapp:status"
        assert frame["data"]["state"] == "READY"

    def test_client_events_are_pushed(self, app, inline_client):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                client.portal.call(inline_client.receive_message, ALICE, "ping")
                frame = ws.receive_json()
        assert frame["event"] == "whatsapp:message"
        assert frame["data"]["from"] == ALICE
        assert frame["data"]["body"] == "ping"

    def test_invalid_frames(self, app):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_text("not json")
                invalid = ws.receive_json()
                ws.send_json({"event": "whatsapp:dance"})
                unsupported = ws.receive_json()
        assert invalid["event"] == "error"
        assert invalid["data"]["message"] == "Invalid JSON"
        assert unsupported["data"]["message"] == "Unsupported event: whatsapp:dance"

    def test_two_consumers_and_one_detaches(self, app, inline_client, ready_service):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as staying:
                staying.receive_json()
                with client.websocket_connect("/ws") as leaving:
                    leaving.receive_json()
                    client.portal.call(inline_client.receive_message, ALICE, "first")
                    assert staying.receive_json()["data"]["body"] == "first"
                    assert leaving.receive_json()["data"]["body"] == "first"

                client.portal.call(inline_client.receive_message, ALICE, "second")
                assert staying.receive_json()["data"]["body"] == "second"
