"""OpenAI 兼容 Provider 适配器。

使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本实现只依赖公共字段：model/messages/temperature/max_tokens/top_p。
"""

from typing import Any, Dict

import httpx

from indigo_core.config.settings import settings
from indigo_core.domain.exceptions import ApiError, AuthenticationError, NetworkError
from indigo_core.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from indigo_core.providers.base import raise_for_model_status
from indigo_core.providers.registry import OPENAI_CONFIG, ModelConfig


class OpenAICompatClient:
    """OpenAI 兼容接口的 Provider 客户端实现。"""

    name = "openai"

    def __init__(self, cfg=settings):
        self._settings = cfg

    async def chat(self, req: ChatRequest) -> ChatResult:
        if not getattr(self._settings, "openai_api_key", None):
            raise AuthenticationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        model_cfg = OPENAI_CONFIG.model(req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base.rstrip('/')}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.openai_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        raise_for_model_status(resp, self.name)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="INVALID_RESPONSE", message="Provider returned a non-JSON body", provider=self.name)
        return self._parse_response(data, req)

    # ---- 辅助方法 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        return {
            "model": model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
        }

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            choices.append(
                ChatChoice(
                    index=i,
                    message=ChatMessage(role="assistant", content=msg.get("content") or ""),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        if not choices:
            raise ApiError(code="EMPTY_RESPONSE", message="Provider returned no choices", provider=self.name)
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)
