"""LangGraph construction and node implementations for the agentic loop.

Each non-terminal LoopPhase is one node. Every node finishes by moving
``LoopState.phase`` forward and a single router follows that phase, so the
state machine lives in LoopState rather than in the edge layout.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from indigo_core.domain.exceptions import ApiError, CancellationError, ModelError, SafetyLimitError
from indigo_core.domain.loop import ActionHistoryEntry, LoopPhase, LoopState
from indigo_core.domain.models import ChatRequest
from indigo_core.flows.confirmation import ConfirmationGate
from indigo_core.flows.context import ContextBuilder, ExternalState
from indigo_core.flows.guard import ConfirmationGuard
from indigo_core.flows.parser import parse_reply
from indigo_core.flows.state import LoopConfig, LoopGraphState, ProgressKind, ProgressSink, StateProvider
from indigo_core.infrastructure.logging.logger import logger
from indigo_core.providers.base import ProviderClient
from indigo_core.providers.registry import estimate_cost, get_provider_config
from indigo_core.tools.catalog import ToolCatalog

STOPPED_MESSAGE = "Stopped"


def safety_limit_message(max_iterations: int) -> str:
    return f"Reached maximum steps ({max_iterations}) before the goal was complete."


class LoopNodes:
    """Graph nodes; collaborators are injected, per-turn data lives in the graph state."""

    def __init__(
        self,
        provider: ProviderClient,
        catalog: ToolCatalog,
        guard: ConfirmationGuard,
        builder: ContextBuilder,
        gate: ConfirmationGate,
        config: LoopConfig,
        progress: Optional[ProgressSink] = None,
    ):
        self._provider = provider
        self._catalog = catalog
        self._guard = guard
        self._builder = builder
        self._gate = gate
        self._config = config
        self._progress = progress

    # ---- nodes ----

    async def build_context(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        if self._stop_if_cancelled(loop):
            return {"loop": loop}
        cap = self._config.max_iterations
        if loop.iteration >= cap:
            message = safety_limit_message(cap)
            loop.abort("safety_limit", SafetyLimitError(code="MAX_ITERATIONS", message=message))
            self._log(logging.WARNING, "Safety limit reached", loop, max_iterations=cap)
            self.emit(message, "error")
            return {"loop": loop}
        loop.iteration += 1
        external = await self._snapshot(state.get("snapshot"))
        context = self._builder.build(
            loop.original_goal,
            loop.history,
            external,
            iteration=loop.iteration,
            max_iterations=cap,
            observations=loop.observations,
            conversation=state.get("conversation", ()),
        )
        self.emit(f"Thinking... (step {loop.iteration}/{cap})", "processing")
        loop.transition(LoopPhase.AWAITING_MODEL)
        return {"loop": loop, "context": context, "reply": None, "parsed": None, "decision": None, "declined": False}

    async def call_model(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        if self._stop_if_cancelled(loop):
            return {"loop": loop}
        req = ChatRequest(
            provider=self._config.provider,
            model=self._config.model,
            messages=state["context"].to_messages(),
            temperature=self._config.temperature,
            max_tokens=self._config.max_output_tokens,
        )
        try:
            result = await self._provider.chat(req)
        except ModelError as exc:
            self._model_failed(loop, exc)
            return {"loop": loop}
        except Exception as exc:  # noqa: BLE001 - 未分类的 Provider 异常同样按模型错误中止
            logger.exception("Provider raised unexpectedly", extra={"extra": {"trace_id": loop.trace_id}})
            self._model_failed(loop, ApiError(code="MODEL_ERROR", message=str(exc) or type(exc).__name__))
            return {"loop": loop}
        if self._stop_if_cancelled(loop):
            # reply discarded unparsed
            return {"loop": loop}
        if result.usage is not None:
            loop.usage = loop.usage + result.usage
        self._log(
            logging.INFO,
            "Model replied",
            loop,
            iteration=loop.iteration,
            prompt_tokens=result.usage.prompt_tokens if result.usage else None,
            completion_tokens=result.usage.completion_tokens if result.usage else None,
            cost_usd=self._cost(result.usage),
        )
        loop.transition(LoopPhase.PARSING_RESPONSE)
        return {"loop": loop, "reply": result.text}

    async def parse_response(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        parsed = parse_reply(state.get("reply") or "")
        for error in parsed.errors:
            loop.observations.append(f"Step {loop.iteration}: skipped a malformed ACTION ({error})")
        if parsed.display_text:
            loop.replies.append(parsed.display_text)
            self.emit(parsed.display_text, "info")
        self._log(
            logging.INFO,
            "Reply parsed",
            loop,
            actions=[a.tool for a in parsed.actions],
            task_complete=parsed.task_complete,
            malformed=len(parsed.errors),
        )
        if not parsed.actions:
            loop.transition(LoopPhase.CHECKING_COMPLETION)
            return {"loop": loop, "parsed": parsed}
        decision = self._guard.evaluate(parsed.actions)
        if decision.needs_confirmation:
            loop.transition(LoopPhase.AWAITING_CONFIRMATION)
        else:
            loop.transition(LoopPhase.EXECUTING_ACTIONS)
        return {"loop": loop, "parsed": parsed, "decision": decision}

    async def await_confirmation(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        decision = state["decision"]
        if self._stop_if_cancelled(loop):
            return {"loop": loop}
        self.emit(f"Confirmation required: {decision.reason}", "warning")
        self._log(logging.INFO, "Awaiting confirmation", loop, kind=decision.kind)
        approved = await self._gate.wait(loop, decision)
        if self._stop_if_cancelled(loop):
            return {"loop": loop}
        if approved:
            self.emit("Confirmed", "info")
            loop.transition(LoopPhase.EXECUTING_ACTIONS)
            return {"loop": loop}
        loop.observations.append(
            f"Step {loop.iteration}: the user declined the proposed batch, so none of it ran. "
            f"{decision.reason}\n{decision.detail}"
        )
        self.emit("Declined. Asking for an alternative.", "warning")
        self._log(logging.INFO, "Batch declined", loop, kind=decision.kind)
        loop.transition(LoopPhase.CHECKING_COMPLETION)
        return {"loop": loop, "declined": True}

    async def execute_actions(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        for action in state["parsed"].actions:
            if self._stop_if_cancelled(loop):
                return {"loop": loop}
            self.emit(f"Executing: {action.tool}", "processing")
            result = await self._catalog.execute(action.tool, action.args)
            loop.history.append(ActionHistoryEntry(action=action, result=result, iteration=loop.iteration))
            if result.success:
                self.emit(result.message or f"{action.tool} succeeded", "success")
            else:
                self.emit(result.message or f"{action.tool} failed", "error")
        loop.transition(LoopPhase.CHECKING_COMPLETION)
        return {"loop": loop}

    async def check_completion(self, state: LoopGraphState) -> Dict[str, Any]:
        loop = state["loop"]
        if self._stop_if_cancelled(loop):
            return {"loop": loop}
        parsed = state.get("parsed")
        if state.get("declined"):
            loop.transition(LoopPhase.BUILDING_CONTEXT)
        elif parsed is not None and (parsed.task_complete or not parsed.actions):
            loop.transition(LoopPhase.COMPLETE)
            self._log(logging.INFO, "Turn complete", loop, iterations=loop.iteration, actions=len(loop.history))
            self.emit("Task complete", "success")
        else:
            loop.transition(LoopPhase.BUILDING_CONTEXT)
        return {"loop": loop}

    # ---- helpers ----

    def emit(self, message: str, kind: ProgressKind) -> None:
        if self._progress is None:
            return
        try:
            self._progress(message, kind)
        except Exception:  # noqa: BLE001 - 进度回调只是单向通知，失败不影响循环
            logger.exception("Progress sink failed", extra={"extra": {"kind": kind}})

    def _stop_if_cancelled(self, loop: LoopState) -> bool:
        if not loop.cancelled:
            return False
        loop.abort("cancelled", CancellationError(code="CANCELLED", message=STOPPED_MESSAGE))
        self._log(logging.INFO, "Turn cancelled", loop, iteration=loop.iteration)
        self.emit(STOPPED_MESSAGE, "info")
        return True

    def _model_failed(self, loop: LoopState, exc: ModelError) -> None:
        loop.abort("model_error", exc)
        self._log(logging.ERROR, "Model call failed", loop, code=exc.code, error=exc.message)
        self.emit(f"The model request failed: {exc.message}", "error")

    async def _snapshot(self, provider: Optional[StateProvider]) -> ExternalState:
        if provider is None:
            return ExternalState.empty()
        snapshot = provider()
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        return snapshot

    def _cost(self, usage) -> Optional[float]:
        try:
            model_cfg = get_provider_config(self._config.provider).model(self._config.model)
        except KeyError:
            return None
        return round(estimate_cost(usage, model_cfg), 6)

    @staticmethod
    def _log(level: int, message: str, loop: LoopState, **fields: Any) -> None:
        payload = {"trace_id": loop.trace_id, "conversation_id": loop.conversation_id, "phase": loop.phase.value}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


NODE_PHASES = (
    LoopPhase.BUILDING_CONTEXT,
    LoopPhase.AWAITING_MODEL,
    LoopPhase.PARSING_RESPONSE,
    LoopPhase.AWAITING_CONFIRMATION,
    LoopPhase.EXECUTING_ACTIONS,
    LoopPhase.CHECKING_COMPLETION,
)

PHASE_ROUTES: Dict[str, str] = {phase.value: phase.value for phase in NODE_PHASES}
PHASE_ROUTES[LoopPhase.COMPLETE.value] = END
PHASE_ROUTES[LoopPhase.ABORTED.value] = END


def phase_router(state: LoopGraphState) -> str:
    return state["loop"].phase.value


def build_graph(nodes: LoopNodes) -> CompiledStateGraph:
    graph = StateGraph(LoopGraphState)
    graph.add_node(LoopPhase.BUILDING_CONTEXT.value, nodes.build_context)
    graph.add_node(LoopPhase.AWAITING_MODEL.value, nodes.call_model)
    graph.add_node(LoopPhase.PARSING_RESPONSE.value, nodes.parse_response)
    graph.add_node(LoopPhase.AWAITING_CONFIRMATION.value, nodes.await_confirmation)
    graph.add_node(LoopPhase.EXECUTING_ACTIONS.value, nodes.execute_actions)
    graph.add_node(LoopPhase.CHECKING_COMPLETION.value, nodes.check_completion)
    graph.set_entry_point(LoopPhase.BUILDING_CONTEXT.value)
    for phase in NODE_PHASES:
        graph.add_conditional_edges(phase.value, phase_router, PHASE_ROUTES)
    return graph.compile()


def recursion_limit(max_iterations: int) -> int:
    """Upper bound on graph steps for one turn (six nodes per iteration plus the final abort)."""

    return max_iterations * len(NODE_PHASES) + 10
