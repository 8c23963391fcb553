"""工具目录：按名称注册并执行工具。

目录由调用方显式构造并注入编排器，不存在进程级的全局单例。
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from indigo_core.domain.exceptions import DuplicateToolError, JiraError, ToolArgumentError
from indigo_core.infrastructure.logging.logger import logger
from indigo_core.tools.arguments import ToolArguments
from indigo_core.tools.definitions import Tool, ToolDef, ToolResult, ToolRisk


ACTION_FORMAT = 'ACTION: {"tool": "tool_name", "args": {"param1": "value1"}}'


class ToolCatalog:
    def __init__(self, tools: Optional[List[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(
                code="DUPLICATE_TOOL",
                message=f"Tool already registered: {tool.name}",
                tool=tool.name,
            )
        self._tools[tool.name] = tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def describe(self) -> List[ToolDef]:
        """按注册顺序返回全部工具定义。"""

        return [tool.definition() for tool in self._tools.values()]

    def risk_of(self, name: str) -> Optional[ToolRisk]:
        tool = self._tools.get(name)
        return tool.risk if tool else None

    def prompt_section(self) -> str:
        """生成系统提示词中的工具说明段落。"""

        lines = ["## Available Tools", ""]
        for tool_def in self.describe():
            lines.append(f"**{tool_def.name}**")
            lines.append(tool_def.description)
            if tool_def.params:
                lines.append("Parameters:")
                for param in tool_def.params.values():
                    kind = param.type.value
                    if param.items is not None:
                        kind = f"array of {param.items.value}"
                    flag = "required" if param.required else "optional"
                    lines.append(f"- `{param.name}` ({kind}, {flag}): {param.description}")
            lines.append("")
        lines.append("To use a tool, write one line per action in exactly this format:")
        lines.append(ACTION_FORMAT)
        lines.append("You can use multiple tools by writing multiple ACTION lines.")
        return "\n".join(lines)

    async def execute(self, name: str, args: Mapping[str, Any]) -> ToolResult:
        """执行工具。任何失败都以 ToolResult 返回，不向外抛异常。"""

        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", extra={"extra": {"tool": name}})
            return ToolResult.failure(f"Unknown tool: {name}", data={"error": "UNKNOWN_TOOL"})
        try:
            result = await tool.invoke(ToolArguments(args))
        except (ToolArgumentError, JiraError) as exc:
            logger.log(
                logging.WARNING,
                "Tool failed",
                extra={"extra": {"tool": name, "code": exc.code, "error": exc.message}},
            )
            return ToolResult.failure(exc.message, data={"error": exc.code})
        except Exception as exc:  # noqa: BLE001 - 需要把异常转换为工具错误反馈给模型
            logger.exception(
                "Tool raised unexpectedly",
                extra={"extra": {"tool": name, "args": json.dumps(dict(args), ensure_ascii=False, default=str)}},
            )
            return ToolResult.failure(f"Tool execution failed: {exc}", data={"error": "TOOL_EXECUTION_FAILED"})
        logger.info(
            "Tool executed",
            extra={"extra": {"tool": name, "success": result.success, "message": result.message}},
        )
        return result
