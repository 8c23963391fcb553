"""统一的对话与结果数据模型。

本模块定义了 Agent 内部在不同 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。

动作（ACTION）以纯文本协议嵌在模型回复中，由 flows.parser 解析，
因此这里不携带厂商私有的 function calling 字段。
所有 Provider 适配器（如 VertexClient）都必须只依赖这些模型。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Any, Dict, List


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志与 UI 展示。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    """Agent 循环每一步发给模型的请求。

    messages 由 ContextBuilder 生成：system prompt、近期会话，最后是本步的上下文。
    """

    provider: str  # 逻辑 Provider 名，如 "vertex"
    model: str  # 逻辑模型名，如 "indigo-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """token 用量；支持相加，用于累计整个 Turn 的消耗。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def __add__(self, other: "ChatUsage") -> "ChatUsage":
        return ChatUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class ChatChoice:
    """候选回答；循环只读取 index=0。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """Provider 解析后的模型回复。

    raw 保留原始响应（Vertex 分块响应包装为 {"chunks": [...]}），仅用于排查问题。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        """首个候选回答的文本，没有候选时返回空串。"""

        if not self.choices:
            return ""
        return self.choices[0].message.content or ""
