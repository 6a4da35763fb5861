import pytest
from fastapi.testclient import TestClient

from fakes import SITE, make_relay
from pierre_chat.api.chat import get_chat_service
from pierre_chat.config import Settings, get_settings
from pierre_chat.main import app
from pierre_chat.services.chat import ChatService
from pierre_chat.services.order_sink import InMemoryOrderSink


@pytest.fixture
def settings():
    return Settings(
        allowed_origins=(SITE, "http://localhost:5173", "http://localhost:3000"),
        openai_api_key="sk-test",
        order_sink="memory",
    )


@pytest.fixture
def sink():
    return InMemoryOrderSink()


@pytest.fixture
def make_client(settings, sink):
    """Build a TestClient whose chat service uses the given fake completion client."""

    def _make(fake=None, relay_mode="reply", relay=None):
        if relay is None and fake is not None:
            relay = make_relay(fake)
        service = ChatService(sink, relay, relay_mode=relay_mode)
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_chat_service] = lambda: service
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
