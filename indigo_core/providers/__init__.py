"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (如 vertex_client、openai_client)。
"""

from typing import Optional

from indigo_core.config.settings import settings
from indigo_core.providers.base import ProviderClient
from indigo_core.providers.openai_client import OpenAICompatClient
from indigo_core.providers.vertex_client import VertexClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider；未知名称抛出 KeyError。"""

    provider_name = (name or getattr(settings, "default_provider", "vertex")).lower()
    if provider_name == "openai":
        return OpenAICompatClient(settings)
    if provider_name == "vertex":
        return VertexClient(settings)
    raise KeyError(f"Unknown provider: {provider_name!r}")
