import pytest

from indigo_core.domain.models import ChatUsage
from indigo_core.providers import create_provider
from indigo_core.providers.openai_client import OpenAICompatClient
from indigo_core.providers.registry import VERTEX_CONFIG, estimate_cost, get_provider_config
from indigo_core.providers.vertex_client import VertexClient


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "vertex"

    monkeypatch.setattr("indigo_core.providers.settings", DummySettings())
    assert isinstance(create_provider(), VertexClient)


def test_create_provider_explicit(monkeypatch):
    class DummySettings:
        default_provider = "vertex"

    monkeypatch.setattr("indigo_core.providers.settings", DummySettings())
    assert isinstance(create_provider("OpenAI"), OpenAICompatClient)


def test_registry_lookup_is_case_insensitive():
    assert get_provider_config("VERTEX") is VERTEX_CONFIG
    assert VERTEX_CONFIG.model("indigo-chat").provider_model == "gemini-3-pro-preview"


def test_unknown_model_raises_key_error():
    try:
        VERTEX_CONFIG.model("nope")
    except KeyError as exc:
        assert "nope" in str(exc)
    else:
        raise AssertionError("expected KeyError")


def test_estimate_cost():
    cfg = VERTEX_CONFIG.model("gemini-2.5-pro")
    usage = ChatUsage(prompt_tokens=1_000_000, completion_tokens=200_000, total_tokens=1_200_000)
    assert round(estimate_cost(usage, cfg), 4) == 2.25
    assert estimate_cost(None, cfg) == 0.0


def test_create_provider_unknown_name(monkeypatch):
    class DummySettings:
        default_provider = "glm"

    monkeypatch.setattr("indigo_core.providers.settings", DummySettings())
    with pytest.raises(KeyError):
        create_provider()
    with pytest.raises(KeyError):
        create_provider("anthropic")
