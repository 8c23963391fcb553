"""State and configuration shared by the loop graph nodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional, Tuple, TypedDict, Union

from indigo_core.domain.loop import LoopState
from indigo_core.domain.models import ChatMessage
from indigo_core.flows.context import Context, ExternalState
from indigo_core.flows.guard import GuardDecision
from indigo_core.flows.parser import ParsedReply

ProgressKind = Literal["info", "success", "warning", "error", "processing"]
ProgressSink = Callable[[str, ProgressKind], None]
StateProvider = Callable[[], Union[ExternalState, Awaitable[ExternalState]]]


@dataclass
class LoopConfig:
    provider: str
    model: str
    max_iterations: int = 5
    bulk_threshold: int = 5
    confirmation_timeout: float = 300.0
    temperature: float = 0.7
    max_output_tokens: Optional[int] = None
    max_context_messages: int = 10
    max_visible_items: int = 20
    turn_conflict_policy: Literal["replace", "reject"] = "replace"


class LoopGraphState(TypedDict, total=False):
    """State passed between LangGraph nodes for one turn."""

    loop: LoopState
    snapshot: Optional[StateProvider]
    conversation: Tuple[ChatMessage, ...]
    context: Optional[Context]
    reply: Optional[str]
    parsed: Optional[ParsedReply]
    decision: Optional[GuardDecision]
    declined: bool
