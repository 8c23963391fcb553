"""Agent 循环的领域模型。

- Action: 从模型回复中解析出的一次工具调用请求。
- ActionHistoryEntry: (Action, ToolResult) 对，按执行顺序追加，只增不改。
- LoopPhase: 循环状态机的各个状态。
- LoopState: 一个目标（Turn）的全部可变状态，只由编排器修改。
- TurnOutcome: Turn 结束后返回给调用方的结果摘要。
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple
from uuid import uuid4

from indigo_core.domain.models import ChatUsage
from indigo_core.tools.definitions import ToolResult


@dataclass(frozen=True)
class Action:
    """模型提出的一次工具调用（解析时不做 schema 校验）。"""

    tool: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionHistoryEntry:
    """一次已执行动作及其结果。"""

    action: Action
    result: ToolResult
    iteration: int = 0


class LoopPhase(str, Enum):
    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    AWAITING_MODEL = "awaiting_model"
    PARSING_RESPONSE = "parsing_response"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING_ACTIONS = "executing_actions"
    CHECKING_COMPLETION = "checking_completion"
    COMPLETE = "complete"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (LoopPhase.COMPLETE, LoopPhase.ABORTED)


@dataclass
class PendingConfirmation:
    """等待用户确认的一批动作。

    future 由 ConfirmationGate 创建，通过 LoopState.resolve_confirmation 推入结果。
    """

    reason: str
    detail: str
    future: "asyncio.Future[bool]"


AbortReason = Literal["cancelled", "safety_limit", "model_error", "superseded"]


@dataclass
class LoopState:
    """单个 Turn 的状态。

    Turn 开始时创建，结束（完成、取消或出错）后丢弃，不做持久化。
    """

    conversation_id: str
    original_goal: str
    history: List[ActionHistoryEntry] = field(default_factory=list)
    iteration: int = 0
    complete: bool = False
    cancelled: bool = False
    phase: LoopPhase = LoopPhase.IDLE
    observations: List[str] = field(default_factory=list)
    replies: List[str] = field(default_factory=list)
    pending_confirmation: Optional[PendingConfirmation] = None
    abort_reason: Optional[AbortReason] = None
    error: Optional[Exception] = None
    usage: ChatUsage = field(default_factory=lambda: ChatUsage(0, 0, 0))
    trace_id: str = field(default_factory=lambda: f"tr-{uuid4().hex}")

    def transition(self, phase: LoopPhase) -> None:
        if self.phase.terminal:
            return
        self.phase = phase
        if phase is LoopPhase.COMPLETE:
            self.complete = True

    def abort(self, reason: AbortReason, error: Optional[Exception] = None) -> None:
        if self.phase.terminal:
            return
        self.abort_reason = reason
        self.error = error
        self.phase = LoopPhase.ABORTED

    def request_cancel(self) -> None:
        """设置取消标记；若正在等待确认，立即唤醒等待方。"""

        self.cancelled = True
        self.resolve_confirmation(False)

    def resolve_confirmation(self, approved: bool) -> bool:
        """推入用户的确认结果，返回是否确实有待确认的批次。"""

        pending = self.pending_confirmation
        if pending is None or pending.future.done():
            return False
        pending.future.set_result(bool(approved))
        return True


@dataclass(frozen=True)
class TurnOutcome:
    """一个 Turn 的最终结果。"""

    status: Literal["complete", "aborted"]
    reason: str
    message: str
    iterations: int
    history: Tuple[ActionHistoryEntry, ...]
    replies: Tuple[str, ...] = ()
    usage: Optional[ChatUsage] = None
    trace_id: Optional[str] = None

    @classmethod
    def from_state(cls, state: LoopState, message: str) -> "TurnOutcome":
        if state.phase is LoopPhase.COMPLETE:
            status, reason = "complete", "completed"
        else:
            status, reason = "aborted", state.abort_reason or "cancelled"
        return cls(
            status=status,
            reason=reason,
            message=message,
            iterations=state.iteration,
            history=tuple(state.history),
            replies=tuple(state.replies),
            usage=state.usage,
            trace_id=state.trace_id,
        )
