"""Tests for the app factory, public routes and response envelope."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from mariflow.api.factory import build_client, create_app
from mariflow.config import Settings
from mariflow.version import __version__
from mariflow.whatsapp.bridge_client import BridgeClient
from mariflow.whatsapp.inline_client import InlineClient
from mariflow.whatsapp.models import SessionPhase

from .helpers import TEST_API_KEY, run


class TestBuildClient:
    def test_inline_backend(self, tmp_path):
        settings = Settings(backend="inline", session_path=str(tmp_path), session_id="s1")
        with patch("mariflow.api.factory.logger") as log:
            client = build_client(settings)
        assert isinstance(client, InlineClient)
        log.warning.assert_called_once()
        run(client.initialize())
        client.pair("5511900000000")
        assert (tmp_path / "s1.json").exists()

    def test_bridge_backend_does_not_warn(self):
        with patch("mariflow.api.factory.logger") as log:
            build_client(Settings(backend="bridge"))
        log.warning.assert_not_called()

    def test_bridge_backend(self):
        client = build_client(Settings(backend="bridge", session_id="s1"))
        assert isinstance(client, BridgeClient)
        assert client.session_id == "s1"


class TestPublicRoutes:
    def test_health(self, app):
        response = TestClient(app).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_root_lists_endpoints(self, app):
        body = TestClient(app).get("/").json()
        assert body["name"] == "MariFlow WhatsApp API"
        assert body["version"] == __version__
        assert body["endpoints"]["socket"] == "/ws"


class TestCorrelationId:
    """Tests for correlation ID middleware."""

    def test_generates_correlation_id(self, app):
        response = TestClient(app).get("/health")
        assert "X-Correlation-ID" in response.headers
        assert len(response.headers["X-Correlation-ID"]) == 36  # UUID format

    def test_propagates_correlation_id(self, app):
        response = TestClient(app).get("/health", headers={"X-Correlation-ID": "test-cid-123"})
        assert response.headers["X-Correlation-ID"] == "test-cid-123"


class TestEnvelope:
    def test_success_shape(self, client):
        body = client.get("/api/v1/whatsapp/status").json()
        assert body["success"] is True
        assert body["message"] == "Status retrieved"
        assert body["timestamp"].endswith("Z")

    def test_unknown_route(self, client):
        response = client.get("/api/v1/does-not-exist")
        assert response.status_code == 404
        body = response.json()
        assert body == {
            "success": False,
            "error": "Route not found",
            "code": "NOT_FOUND",
            "timestamp": body["timestamp"],
        }

    def test_method_not_allowed(self, client):
        response = client.delete("/api/v1/whatsapp/status")
        assert response.status_code == 405
        assert response.json()["code"] == "METHOD_NOT_ALLOWED"

    def test_validation_error(self, client):
        response = client.post("/api/v1/messages/send", json={"to": "not-a-jid", "message": "hi"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request data"
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"][0]["field"] == "to"

    def test_unexpected_error_is_masked(self, app, ready_service):
        client = TestClient(
            app, headers={"X-API-Key": TEST_API_KEY}, raise_server_exceptions=False
        )
        with patch.object(ready_service, "status", side_effect=RuntimeError("db password=hunter2")):
            response = client.get("/api/v1/whatsapp/status")
        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text


class TestLifespan:
    def test_auto_initialize_on_startup(self, service):
        settings = Settings(api_key=TEST_API_KEY, auto_initialize=True)
        app = create_app(settings, service=service)
        with TestClient(app) as client:
            status = client.get(
                "/api/v1/whatsapp/status", headers={"X-API-Key": TEST_API_KEY}
            ).json()["data"]
        assert status["state"] == SessionPhase.AWAITING_QR.value
        assert status["qrCode"]

    def test_shutdown_destroys_client(self, settings, service):
        app = create_app(settings, service=service)
        with patch.object(service, "destroy", new=AsyncMock()) as destroy:
            with TestClient(app):
                pass
        destroy.assert_awaited_once()

    def test_init_failure_keeps_api_up(self, service, inline_client):
        settings = Settings(api_key=TEST_API_KEY, auto_initialize=True)
        app = create_app(settings, service=service)
        with patch.object(inline_client, "initialize", new=AsyncMock(side_effect=RuntimeError("no chrome"))):
            with TestClient(app) as client:
                assert client.get("/health").status_code == 200
