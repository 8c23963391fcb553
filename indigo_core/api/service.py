"""对外 API 服务模块。

提供简化的函数接口供上层应用（桌面 UI、脚本）调用。
"""

from typing import Any, Dict, Mapping, Optional

from indigo_core.agents.indigo_agent import IndigoAgent
from indigo_core.flows.context import ExternalState
from indigo_core.infrastructure.logging.logger import logger


_agent: Optional[IndigoAgent] = None


def get_default_agent() -> IndigoAgent:
    """获取默认的 Indigo Agent 实例（单例）。"""
    global _agent
    if _agent is None:
        _agent = IndigoAgent()
    return _agent


def _outcome_to_dict(outcome) -> Dict[str, Any]:
    return {
        "status": outcome.status,
        "reason": outcome.reason,
        "message": outcome.message,
        "iterations": outcome.iterations,
        "trace_id": outcome.trace_id,
        "replies": list(outcome.replies),
        "actions": [
            {
                "tool": entry.action.tool,
                "args": dict(entry.action.args),
                "success": entry.result.success,
                "message": entry.result.message,
                "data": dict(entry.result.data),
            }
            for entry in outcome.history
        ],
        "usage": (
            {
                "prompt_tokens": outcome.usage.prompt_tokens,
                "completion_tokens": outcome.usage.completion_tokens,
                "total_tokens": outcome.usage.total_tokens,
            }
            if outcome.usage
            else None
        ),
    }


async def run_goal(
    goal: str,
    conversation_id: str = "default",
    state: Optional[Mapping[str, Any]] = None,
    agent: Optional[IndigoAgent] = None,
) -> Dict[str, Any]:
    """运行一个 Jira 目标。

    Args:
        goal: 用户目标
        conversation_id: 会话ID
        state: UI 状态快照字典（selection / filters / visibleItems / availableOptions）
        agent: 指定 Agent（可选，默认使用单例）

    Returns:
        包含状态、最终消息、已执行动作和 token 统计的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    snapshot = ExternalState.from_mapping(state)
    try:
        outcome = await (agent or get_default_agent()).run(goal, conversation_id, lambda: snapshot)
    except Exception as e:
        logger.error(f"Goal failed: {e}", extra={"extra": {
            "conversation_id": conversation_id,
            "error": str(e),
        }})
        raise
    return _outcome_to_dict(outcome)


def cancel_goal(conversation_id: str = "default", agent: Optional[IndigoAgent] = None) -> bool:
    """取消会话中正在进行的目标。"""
    return (agent or get_default_agent()).cancel(conversation_id)


def confirm_actions(approved: bool, conversation_id: str = "default", agent: Optional[IndigoAgent] = None) -> bool:
    """对等待确认的一批动作给出决定。"""
    return (agent or get_default_agent()).confirm(approved, conversation_id)
