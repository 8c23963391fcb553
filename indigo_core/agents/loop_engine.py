"""Agent 循环引擎。

每个会话同一时刻只有一个活跃的 LoopState。一次 run_turn 即一个目标（Turn）：
构建上下文 → 调用模型 → 解析 → 风险确认 → 顺序执行动作 → 检查完成，
直到 Complete 或 Aborted。状态机本身由 flows.graph 中的 LangGraph 驱动。
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional

from indigo_core.config.settings import settings
from indigo_core.domain.exceptions import TurnInProgressError, ValidationError
from indigo_core.domain.loop import LoopPhase, LoopState, TurnOutcome
from indigo_core.domain.models import ChatMessage
from indigo_core.flows.confirmation import ConfirmationGate, ConfirmationRequester
from indigo_core.flows.context import ContextBuilder
from indigo_core.flows.graph import LoopNodes, STOPPED_MESSAGE, build_graph, recursion_limit, safety_limit_message
from indigo_core.flows.guard import ConfirmationGuard
from indigo_core.flows.state import LoopConfig, LoopGraphState, ProgressSink, StateProvider
from indigo_core.infrastructure.logging.logger import logger
from indigo_core.providers.base import ProviderClient
from indigo_core.tools.catalog import ToolCatalog


def config_from_settings(provider: str, cfg=settings) -> LoopConfig:
    """用全局配置生成 LoopConfig。"""

    return LoopConfig(
        provider=provider,
        model=cfg.default_model,
        max_iterations=cfg.max_iterations,
        bulk_threshold=cfg.bulk_confirmation_threshold,
        confirmation_timeout=cfg.confirmation_timeout,
        temperature=cfg.model_temperature,
        max_output_tokens=cfg.max_output_tokens,
        max_context_messages=cfg.max_context_messages,
        max_visible_items=cfg.max_visible_items,
        turn_conflict_policy=cfg.turn_conflict_policy,
    )


class AgenticLoopEngine:
    def __init__(
        self,
        provider_client: ProviderClient,
        catalog: ToolCatalog,
        guard: Optional[ConfirmationGuard] = None,
        context_builder: Optional[ContextBuilder] = None,
        config: Optional[LoopConfig] = None,
        progress: Optional[ProgressSink] = None,
        confirmation_requester: Optional[ConfirmationRequester] = None,
    ):
        self._config = config or config_from_settings(getattr(provider_client, "name", "vertex"))
        self._catalog = catalog
        self._guard = guard or ConfirmationGuard.from_catalog(catalog, self._config.bulk_threshold)
        self._builder = context_builder or ContextBuilder(
            catalog.prompt_section(),
            max_visible_items=self._config.max_visible_items,
            max_iterations=self._config.max_iterations,
        )
        self._nodes = LoopNodes(
            provider=provider_client,
            catalog=catalog,
            guard=self._guard,
            builder=self._builder,
            gate=ConfirmationGate(self._config.confirmation_timeout, confirmation_requester),
            config=self._config,
            progress=progress,
        )
        self._graph = build_graph(self._nodes)
        self._active: Dict[str, LoopState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._generations: Dict[str, int] = {}
        self._memory: Dict[str, Deque[ChatMessage]] = {}

    @property
    def config(self) -> LoopConfig:
        return self._config

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    async def run_turn(
        self,
        conversation_id: str,
        goal: str,
        state_provider: Optional[StateProvider] = None,
    ) -> TurnOutcome:
        """执行一个目标直到完成或中止。

        Args:
            conversation_id: 会话ID，同一会话同一时刻只有一个活跃 Turn
            goal: 用户目标（自然语言）
            state_provider: 每次迭代开始时调用，返回当前 UI 状态快照（可为协程函数）

        Returns:
            TurnOutcome

        Raises:
            ValidationError: 目标为空
            TurnInProgressError: 冲突策略为 reject 且已有进行中的 Turn
        """
        goal = (goal or "").strip()
        if not goal:
            raise ValidationError(code="EMPTY_GOAL", message="Goal must not be empty")

        active = self._active.get(conversation_id)
        if active is not None:
            if self._config.turn_conflict_policy == "reject":
                raise TurnInProgressError(
                    code="TURN_IN_PROGRESS",
                    message="A request is already running in this conversation",
                    http_status=409,
                    conversation_id=conversation_id,
                )
            self._log(logging.INFO, "Replacing active turn", active)
            active.request_cancel()

        generation = self._generations.get(conversation_id, 0) + 1
        self._generations[conversation_id] = generation
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        async with lock:
            state = LoopState(conversation_id=conversation_id, original_goal=goal)
            if self._generations[conversation_id] != generation:
                # 排队期间又来了更新的目标
                state.abort("superseded")
                return TurnOutcome.from_state(state, "Superseded by a newer request")
            self._active[conversation_id] = state
            try:
                await self._run(state, state_provider)
            finally:
                self._active.pop(conversation_id, None)
            outcome = TurnOutcome.from_state(state, self._final_message(state))
            self._remember(conversation_id, goal, outcome)
            return outcome

    def cancel(self, conversation_id: str) -> bool:
        """请求取消会话中的活跃 Turn；返回是否存在活跃 Turn。

        排队等待中的 Turn 也会随之作废，开始时以 superseded 中止。
        """

        if conversation_id in self._generations:
            self._generations[conversation_id] += 1
        state = self._active.get(conversation_id)
        if state is None:
            return False
        self._log(logging.INFO, "Cancellation requested", state)
        state.request_cancel()
        return True

    def resolve_confirmation(self, conversation_id: str, approved: bool) -> bool:
        """推入用户对待确认批次的决定；没有待确认批次时返回 False。"""

        state = self._active.get(conversation_id)
        if state is None:
            return False
        return state.resolve_confirmation(approved)

    def active_state(self, conversation_id: str) -> Optional[LoopState]:
        return self._active.get(conversation_id)

    def clear_conversation(self, conversation_id: str) -> None:
        self._memory.pop(conversation_id, None)

    def conversation(self, conversation_id: str) -> list[ChatMessage]:
        return list(self._memory.get(conversation_id, ()))

    # ---- 内部实现 ----

    async def _run(self, state: LoopState, state_provider: Optional[StateProvider]) -> None:
        self._log(logging.INFO, "Turn started", state, goal=state.original_goal)
        state.transition(LoopPhase.BUILDING_CONTEXT)
        graph_input: LoopGraphState = {
            "loop": state,
            "snapshot": state_provider,
            "conversation": tuple(self._memory.get(state.conversation_id, ())),
        }
        try:
            await self._graph.ainvoke(
                graph_input,
                config={"recursion_limit": recursion_limit(self._config.max_iterations)},
            )
        except asyncio.CancelledError:
            state.cancelled = True
            state.abort("cancelled")
            raise
        self._log(
            logging.INFO,
            "Turn finished",
            state,
            iterations=state.iteration,
            actions=len(state.history),
            reason=state.abort_reason,
            total_tokens=state.usage.total_tokens,
        )

    def _final_message(self, state: LoopState) -> str:
        if state.phase is LoopPhase.COMPLETE:
            return state.replies[-1] if state.replies else "Done."
        if state.abort_reason == "safety_limit":
            return safety_limit_message(self._config.max_iterations)
        if state.abort_reason == "model_error" and state.error is not None:
            return f"The model request failed: {getattr(state.error, 'message', state.error)}"
        return STOPPED_MESSAGE

    def _remember(self, conversation_id: str, goal: str, outcome: TurnOutcome) -> None:
        limit = self._config.max_context_messages
        memory = self._memory.setdefault(conversation_id, deque(maxlen=limit))
        memory.append(ChatMessage(role="user", content=goal))
        summary = "\n\n".join(outcome.replies) or outcome.message
        memory.append(ChatMessage(role="assistant", content=summary))

    @staticmethod
    def _log(level: int, message: str, state: LoopState, **fields: Any) -> None:
        payload: Dict[str, Any] = {
            "trace_id": state.trace_id,
            "conversation_id": state.conversation_id,
        }
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
