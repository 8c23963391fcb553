"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "indigo-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gemini-3-pro-preview"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置，便于后续升级或切换。"""

from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional

from indigo_core.domain.models import ChatUsage


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float
    uses_global_region: bool = False  # 仅 Vertex：预览模型只在 global 端点提供
    input_cost_per_million: float = 0.0  # 美元
    output_cost_per_million: float = 0.0


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]

    def model(self, logical_name: str) -> ModelConfig:
        try:
            return self.models[logical_name]
        except KeyError:
            raise KeyError(f"Unknown model {logical_name!r} for provider {self.name!r}") from None


_GEMINI_3_PRO = ModelConfig(
    logical_name="gemini-3-pro-preview",
    provider_model="gemini-3-pro-preview",
    max_tokens=2048,
    default_temperature=0.7,
    uses_global_region=True,
    input_cost_per_million=1.25,
    output_cost_per_million=5.00,
)

_GEMINI_25_PRO = ModelConfig(
    logical_name="gemini-2.5-pro",
    provider_model="gemini-2.5-pro",
    max_tokens=2048,
    default_temperature=0.7,
    input_cost_per_million=1.25,
    output_cost_per_million=5.00,
)

# Vertex AI 配置（默认使用 gemini-3-pro-preview 作为 indigo-chat 逻辑模型）
VERTEX_CONFIG = ProviderConfig(
    name="vertex",
    base_url="https://{region}-aiplatform.googleapis.com/v1",
    models={
        "indigo-chat": replace(_GEMINI_3_PRO, logical_name="indigo-chat"),
        "gemini-3-pro-preview": _GEMINI_3_PRO,
        "gemini-2.5-pro": _GEMINI_25_PRO,
    },
)

VERTEX_GLOBAL_BASE_URL = "https://aiplatform.googleapis.com/v1"

# OpenAI 兼容接口配置
OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    models={
        "indigo-chat": ModelConfig(
            logical_name="indigo-chat",
            provider_model="gpt-4o",
            max_tokens=2048,
            default_temperature=0.7,
            input_cost_per_million=2.50,
            output_cost_per_million=10.00,
        )
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "vertex": VERTEX_CONFIG,
    "openai": OPENAI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def estimate_cost(usage: Optional[ChatUsage], model_cfg: ModelConfig) -> float:
    """按每百万 token 单价估算一次调用的费用（美元）。"""

    if usage is None:
        return 0.0
    return (
        usage.prompt_tokens / 1_000_000 * model_cfg.input_cost_per_million
        + usage.completion_tokens / 1_000_000 * model_cfg.output_cost_per_million
    )
