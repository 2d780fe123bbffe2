"""Tests for static API key authentication."""

from fastapi.testclient import TestClient

from mariflow.api.auth import verify_api_key

from .helpers import TEST_API_KEY


class TestVerifyApiKey:
    def test_exact_match(self):
        assert verify_api_key("secret", "secret")

    def test_mismatch(self):
        assert not verify_api_key("secret", "Secret")
        assert not verify_api_key("secret ", "secret")

    def test_empty_values(self):
        assert not verify_api_key(None, "secret")
        assert not verify_api_key("", "secret")
        assert not verify_api_key("secret", "")


class TestRequireApiKey:
    def test_missing_key(self, app):
        response = TestClient(app).get("/api/v1/whatsapp/status")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "API key is required"
        assert body["code"] == "UNAUTHORIZED"
        assert "timestamp" in body

    def test_wrong_key(self, app):
        response = TestClient(app).get(
            "/api/v1/whatsapp/status", headers={"X-API-Key": "nope"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid API key"

    def test_x_api_key_header(self, app):
        response = TestClient(app).get(
            "/api/v1/whatsapp/status", headers={"X-API-Key": TEST_API_KEY}
        )
        assert response.status_code == 200

    def test_bearer_token(self, app):
        response = TestClient(app).get(
            "/api/v1/contacts", headers={"Authorization": f"Bearer {TEST_API_KEY}"}
        )
        assert response.status_code == 200

    def test_malformed_authorization_header(self, app):
        response = TestClient(app).get(
            "/api/v1/contacts", headers={"Authorization": f"Token {TEST_API_KEY}"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "API key is required"

    def test_every_router_is_guarded(self, app):
        client = TestClient(app)
        for method, path in (
            ("get", "/api/v1/whatsapp/events"),
            ("post", "/api/v1/messages/send"),
            ("get", "/api/v1/contacts/5511911111111@c.us"),
            ("get", "/api/v1/groups"),
        ):
            response = getattr(client, method)(path)
            assert response.status_code == 401, path

    def test_public_routes_do_not_need_a_key(self, app):
        client = TestClient(app)
        assert client.get("/health").status_code == 200
        assert client.get("/").status_code == 200
