"""Shared pytest fixtures for MariFlow tests."""
import sys

sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from mariflow.api.factory import create_app  # noqa: E402
from mariflow.config import Settings  # noqa: E402
from mariflow.whatsapp.inline_client import InlineClient  # noqa: E402
from mariflow.whatsapp.service import WhatsAppService  # noqa: E402

from .helpers import (  # noqa: E402
    ALICE,
    BOB,
    CAROL,
    OWN_NUMBER,
    TEST_API_KEY,
    TEST_WEBHOOK_SECRET,
    no_sleep,
    run,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_key=TEST_API_KEY,
        auto_initialize=False,
        webhook_secret=TEST_WEBHOOK_SECRET,
        restart_delay=0.0,
        heartbeat_interval=0.05,
        max_file_size=1024,
    )


@pytest.fixture
def inline_client() -> InlineClient:
    client = InlineClient()
    client.add_contact(ALICE, "Alice", profile_pic_url="https://pps.example/alice.jpg")
    client.add_contact(BOB, None, pushname="Bobby", is_business=True)
    client.add_contact(CAROL, "Carol", is_blocked=True)
    return client


@pytest.fixture
def service(inline_client: InlineClient) -> WhatsAppService:
    """Service over the inline client, not yet initialized."""
    return WhatsAppService(inline_client, sleep=no_sleep, restart_delay=0.0)


@pytest.fixture
def ready_service(service: WhatsAppService, inline_client: InlineClient) -> WhatsAppService:
    """Service whose session went through qr -> authenticated -> ready."""
    run(service.initialize())
    inline_client.pair(OWN_NUMBER, "MariFlow Test")
    assert service.status().ready
    return service


@pytest.fixture
def app(settings: Settings, ready_service: WhatsAppService):
    return create_app(settings, service=ready_service)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, headers={"X-API-Key": TEST_API_KEY})


@pytest.fixture
def cold_app(settings: Settings, service: WhatsAppService):
    """App whose session was never initialized."""
    return create_app(settings, service=service)


@pytest.fixture
def cold_client(cold_app) -> TestClient:
    return TestClient(cold_app, headers={"X-API-Key": TEST_API_KEY})
