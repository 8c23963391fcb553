"""Suspend a turn until the user approves or declines a flagged batch."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from indigo_core.domain.loop import LoopPhase, LoopState, PendingConfirmation
from indigo_core.flows.guard import GuardDecision
from indigo_core.infrastructure.logging.logger import logger

ConfirmationRequester = Callable[[str, str], Awaitable[bool]]


class ConfirmationGate:
    """Parks the decision future on LoopState and waits for it.

    The decision arrives through ``LoopState.resolve_confirmation`` (or the
    optional requester coroutine). Timeout counts as a decline; cancellation
    resolves the future with ``False`` and the caller checks ``cancelled``.
    """

    def __init__(self, timeout: float, requester: Optional[ConfirmationRequester] = None):
        self._timeout = timeout
        self._requester = requester

    async def wait(self, state: LoopState, decision: GuardDecision) -> bool:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bool] = loop.create_future()
        state.pending_confirmation = PendingConfirmation(decision.reason, decision.detail, future)
        state.transition(LoopPhase.AWAITING_CONFIRMATION)
        if state.cancelled:
            future.set_result(False)
        ask: Optional[asyncio.Task] = None
        if self._requester is not None and not future.done():
            ask = asyncio.ensure_future(self._requester(decision.reason, decision.detail))
            ask.add_done_callback(lambda task: self._forward(task, state))
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Confirmation timed out",
                extra={"extra": {"trace_id": state.trace_id, "timeout": self._timeout}},
            )
            return False
        finally:
            state.pending_confirmation = None
            if ask is not None and not ask.done():
                ask.cancel()

    @staticmethod
    def _forward(task: asyncio.Task, state: LoopState) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Confirmation requester failed",
                extra={"extra": {"trace_id": state.trace_id, "error": str(exc)}},
            )
            state.resolve_confirmation(False)
            return
        state.resolve_confirmation(bool(task.result()))
