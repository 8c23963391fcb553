"""Provider 抽象接口。

上层 Agent 循环不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 VertexClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把响应 JSON 解析为 ChatResult。
- 失败时抛出 ModelError 的子类（NetworkError / AuthenticationError /
  RateLimitError / ApiError），不在内部静默吞掉。
"""

from typing import Protocol
from indigo_core.domain.exceptions import ApiError, AuthenticationError, RateLimitError
from indigo_core.domain.models import ChatRequest, ChatResult


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat(req): 执行一次非流式对话调用，返回统一的 ChatResult。
    """

    name: str

    async def chat(self, req: ChatRequest) -> ChatResult:
        ...


def raise_for_model_status(resp, provider: str) -> None:
    """把 HTTP 状态码映射为 ModelError 子类（2xx 直接返回）。"""

    status = resp.status_code
    if status < 400:
        return
    if status in (401, 403):
        raise AuthenticationError(
            code="AUTHENTICATION_FAILED",
            message=f"{provider} rejected the credentials ({status})",
            http_status=status,
            provider=provider,
        )
    if status == 429:
        raise RateLimitError(
            code="RATE_LIMIT",
            message=f"{provider} rate limit or quota exceeded",
            http_status=status,
            provider=provider,
        )
    raise ApiError(code="API_ERROR", message=resp.text[:500], http_status=status, provider=provider)
