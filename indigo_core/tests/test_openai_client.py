import pytest

from indigo_core.domain.exceptions import ApiError, AuthenticationError
from indigo_core.domain.models import ChatMessage, ChatRequest
from indigo_core.providers.openai_client import OpenAICompatClient


class SettingsStub:
    openai_api_key = "k"
    openai_base_url = "https://llm.example.com/v1/"
    http_timeout = 1.0


def _req():
    return ChatRequest(provider="openai", model="indigo-chat", messages=[ChatMessage(role="user", content="hi")])


def _install(monkeypatch, resp, seen):
    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, **kw):
            seen.append((url, kw))
            return resp

    monkeypatch.setattr("httpx.AsyncClient", Client)


@pytest.mark.asyncio
async def test_openai_client_basic(monkeypatch):
    class Resp:
        status_code = 200
        text = ""

        def json(self):
            return {
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
            }

    seen = []
    _install(monkeypatch, Resp(), seen)
    res = await OpenAICompatClient(SettingsStub()).chat(_req())
    assert res.text == "ok"
    assert res.usage.total_tokens == 2
    url, kw = seen[0]
    assert url == "https://llm.example.com/v1/chat/completions"
    assert kw["json"]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_openai_client_requires_key():
    class NoKey(SettingsStub):
        openai_api_key = None

    with pytest.raises(AuthenticationError) as exc:
        await OpenAICompatClient(NoKey()).chat(_req())
    assert exc.value.code == "MISSING_API_KEY"


@pytest.mark.asyncio
async def test_openai_client_empty_choices(monkeypatch):
    class Resp:
        status_code = 200
        text = "{}"

        def json(self):
            return {"choices": []}

    _install(monkeypatch, Resp(), [])
    with pytest.raises(ApiError):
        await OpenAICompatClient(SettingsStub()).chat(_req())
