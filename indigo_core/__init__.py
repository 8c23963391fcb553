"""Indigo Core 顶层包。

该包提供 Jira 桌面客户端中 AI 助手的核心实现：
配置加载、领域模型、Provider 适配、Jira 工具系统，
以及“构建上下文 → 调用模型 → 解析动作 → 风险确认 → 执行 → 观察”的 Agent 循环。
"""

from indigo_core.agents.indigo_agent import IndigoAgent
from indigo_core.agents.loop_engine import AgenticLoopEngine

__all__ = ["IndigoAgent", "AgenticLoopEngine"]
