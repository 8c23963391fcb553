"""Vertex AI (Gemini) Provider 适配器。

- URL: https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}
       /publishers/google/models/{model}:generateContent
  预览模型（如 gemini-3-pro-preview）只在 global 端点提供，使用
  https://aiplatform.googleapis.com/v1/projects/{project}/locations/global/...
- 认证: Authorization: Bearer <access_token>
  token 来源：配置中的 vertex_access_token，或用 gcloud application-default
  凭证文件中的 refresh_token 向 oauth2.googleapis.com 换取（缓存到过期前）。

Gemini 只有 user/model 两种角色，system 消息按 user 发送。
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from indigo_core.config.settings import settings
from indigo_core.domain.exceptions import ApiError, AuthenticationError, NetworkError
from indigo_core.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from indigo_core.providers.base import raise_for_model_status
from indigo_core.providers.registry import VERTEX_CONFIG, VERTEX_GLOBAL_BASE_URL, ModelConfig

TOKEN_URL = "https://oauth2.googleapis.com/token"
TOP_K = 40
# 提前刷新，避免 token 在请求途中过期
TOKEN_EXPIRY_MARGIN = 60.0


class VertexClient:
    """Vertex AI Gemini Provider 客户端实现。"""

    name = "vertex"

    def __init__(self, cfg=settings):
        self._settings = cfg
        self._token: Optional[str] = None
        self._token_expiry = 0.0

    async def chat(self, req: ChatRequest) -> ChatResult:
        model_cfg = VERTEX_CONFIG.model(req.model)
        url = self.endpoint(model_cfg)
        payload = self._build_payload(req, model_cfg)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                token = await self._access_token(client)
                resp = await client.post(
                    url,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 401:
            # token 可能被提前吊销，下次调用重新换取
            self._token = None
        raise_for_model_status(resp, self.name)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="INVALID_RESPONSE", message="Vertex AI returned a non-JSON body", provider=self.name)
        return self._parse_response(data, req)

    def endpoint(self, model_cfg: ModelConfig) -> str:
        project = getattr(self._settings, "vertex_project_id", None)
        if not project:
            raise AuthenticationError(code="MISSING_CREDENTIALS", message="VERTEX_PROJECT_ID not set")
        if model_cfg.uses_global_region:
            base, location = VERTEX_GLOBAL_BASE_URL, "global"
        else:
            location = self._settings.vertex_region
            base = VERTEX_CONFIG.base_url.format(region=location)
        return (
            f"{base}/projects/{project}/locations/{location}"
            f"/publishers/google/models/{model_cfg.provider_model}:generateContent"
        )

    # ---- 认证 ----

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        explicit = getattr(self._settings, "vertex_access_token", None)
        if explicit:
            return explicit
        if self._token and time.monotonic() < self._token_expiry:
            return self._token
        creds = self._load_credentials()
        resp = await client.post(
            TOKEN_URL,
            data={
                "client_id": creds["client_id"],
                "client_secret": creds["client_secret"],
                "refresh_token": creds["refresh_token"],
                "grant_type": "refresh_token",
            },
        )
        if resp.status_code >= 400:
            raise AuthenticationError(
                code="AUTHENTICATION_FAILED",
                message=f"Token refresh failed ({resp.status_code}); run `gcloud auth application-default login`",
                http_status=resp.status_code,
                provider=self.name,
            )
        body = resp.json()
        self._token = body.get("access_token")
        if not self._token:
            raise AuthenticationError(code="AUTHENTICATION_FAILED", message="Token endpoint returned no access_token")
        self._token_expiry = time.monotonic() + float(body.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN
        return self._token

    def _load_credentials(self) -> Dict[str, str]:
        path = Path(self._settings.vertex_credentials_file).expanduser()
        try:
            creds = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise AuthenticationError(
                code="MISSING_CREDENTIALS",
                message=f"Cannot read Google credentials at {path}: {exc}",
            )
        missing = [k for k in ("client_id", "client_secret", "refresh_token") if not creds.get(k)]
        if missing:
            raise AuthenticationError(
                code="MISSING_CREDENTIALS",
                message=f"Credentials file {path} lacks {', '.join(missing)}",
            )
        return creds

    # ---- 辅助方法 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        contents: List[Dict[str, Any]] = []
        for m in req.messages:
            if not m.content:
                continue
            role = "model" if m.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": m.content}]})
        return {
            "contents": contents,
            "generationConfig": {
                "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
                "topP": req.top_p,
                "topK": TOP_K,
                "maxOutputTokens": req.max_tokens or model_cfg.max_tokens,
            },
        }

    def _parse_response(self, data: Any, req: ChatRequest) -> ChatResult:
        # generateContent 返回单个对象；streamGenerateContent 返回对象数组，两者都兼容
        chunks = data if isinstance(data, list) else [data]
        texts: List[str] = []
        finish_reason = None
        usage = None
        seen_candidate = False
        for chunk in chunks:
            if not isinstance(chunk, dict):
                continue
            if chunk.get("error"):
                raise ApiError(
                    code="API_ERROR",
                    message=str(chunk["error"].get("message") or chunk["error"]),
                    provider=self.name,
                )
            candidates = chunk.get("candidates") or []
            if candidates:
                seen_candidate = True
                first = candidates[0]
                for part in (first.get("content") or {}).get("parts", []):
                    if part.get("text"):
                        texts.append(part["text"])
                finish_reason = first.get("finishReason") or finish_reason
            meta = chunk.get("usageMetadata")
            if meta:
                prompt = int(meta.get("promptTokenCount", 0))
                completion = int(meta.get("candidatesTokenCount", 0))
                usage = ChatUsage(
                    prompt_tokens=prompt,
                    completion_tokens=completion,
                    total_tokens=int(meta.get("totalTokenCount", prompt + completion)),
                )
        if not seen_candidate:
            raise ApiError(code="EMPTY_RESPONSE", message="Vertex AI returned no candidates", provider=self.name)
        message = ChatMessage(role="assistant", content="".join(texts))
        return ChatResult(
            provider=self.name,
            model=req.model,
            choices=[ChatChoice(index=0, message=message, finish_reason=finish_reason)],
            usage=usage,
            raw=data if isinstance(data, dict) else {"chunks": data},
        )
