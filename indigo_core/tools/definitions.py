"""工具数据结构定义。

这些类型描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDef / ToolParam）。
- 在 Agent 循环中执行模型提出的动作并记录结果（Tool / ToolResult）。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from indigo_core.tools.arguments import ToolArguments


class ParamType(str, Enum):
    """参数类型，与 JSON Schema 的 type 一一对应。"""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ToolRisk(str, Enum):
    """工具的风险等级，供 ConfirmationGuard 查表。"""

    READ_ONLY = "read_only"
    MUTATING = "mutating"
    DESTRUCTIVE = "destructive"


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    type: ParamType = ParamType.STRING
    required: bool = True
    items: Optional[ParamType] = None  # 仅 ARRAY 使用

    def schema(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type.value, "description": self.description}
        if self.type is ParamType.ARRAY:
            out["items"] = {"type": (self.items or ParamType.STRING).value}
        return out


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]

    def to_schema(self) -> Dict[str, Any]:
        """输出 JSON Schema 风格的工具描述（参数按声明顺序）。"""

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {name: p.schema() for name, p in self.params.items()},
                "required": [name for name, p in self.params.items() if p.required],
            },
        }


@dataclass(frozen=True)
class ToolResult:
    """工具执行结果。

    一次工具调用只产生一个 ToolResult，创建后不可修改。
    """

    success: bool
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(success=True, message=message, data=dict(data or {}))

    @classmethod
    def failure(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(success=False, message=message, data=dict(data or {}))


class Tool(ABC):
    """所有具体工具的基类。

    子类声明 name/description/params/risk，并实现异步的 invoke()。
    参数校验在 invoke 内通过 ToolArguments 的访问器完成，
    缺参或类型错误会抛出 ToolArgumentError，由 ToolCatalog 转为失败结果。
    """

    name: ClassVar[str]
    description: ClassVar[str]
    params: ClassVar[Sequence[ToolParam]] = ()
    risk: ClassVar[ToolRisk] = ToolRisk.READ_ONLY

    def definition(self) -> ToolDef:
        return ToolDef(
            name=self.name,
            description=self.description,
            params={p.name: p for p in self.params},
        )

    @abstractmethod
    async def invoke(self, args: "ToolArguments") -> ToolResult:
        ...
