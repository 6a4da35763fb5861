import pytest
from pydantic import ValidationError

from pierre_chat.api.cors import pick_origin
from pierre_chat.config import DEFAULT_SITE_ORIGIN, Settings


def test_defaults_from_empty_environment(monkeypatch):
    for var in ("PUBLIC_SITE_ORIGIN", "EXTRA_ALLOWED_ORIGINS", "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_FALLBACK_MODEL",
                "LLM_TIMEOUT_SECONDS", "ORDER_SINK"):
        monkeypatch.delenv(var, raising=False)
    settings = Settings.from_env()

    assert settings.allowed_origins == (DEFAULT_SITE_ORIGIN, "http://localhost:5173", "http://localhost:3000")
    assert settings.openai_api_key is None
    assert settings.model_chain == ("gpt-4o-mini", "gpt-3.5-turbo")
    assert settings.llm_timeout_seconds == 15
    assert settings.order_sink == "supabase"


def test_environment_overrides(monkeypatch):
    monkeypatch.delenv("OPENAI_MODEL", raising=False)
    monkeypatch.setenv("PUBLIC_SITE_ORIGIN", "https://shop.example")
    monkeypatch.setenv("EXTRA_ALLOWED_ORIGINS", " http://localhost:5173 , https://shop.example,")
    monkeypatch.setenv("OPENAI_FALLBACK_MODEL", "")
    monkeypatch.setenv("RELAY_MODE", "Intent")
    settings = Settings.from_env()

    assert settings.allowed_origins == ("https://shop.example", "http://localhost:5173")
    assert settings.model_chain == ("gpt-4o-mini",)
    assert settings.relay_mode == "intent"


def test_settings_are_immutable():
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.openai_model = "other"


def test_pick_origin():
    allowed = ("https://a.example", "http://localhost:5173")
    assert pick_origin("http://localhost:5173", allowed) == "http://localhost:5173"
    assert pick_origin("http://localhost:5174", allowed) == "https://a.example"
    assert pick_origin(None, allowed) == "https://a.example"
