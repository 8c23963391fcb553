"""Extract ACTION payloads and the completion sentinel from a model reply."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import List, Tuple

from indigo_core.domain.exceptions import ParseError
from indigo_core.domain.loop import Action
from indigo_core.infrastructure.logging.logger import logger

ACTION_MARKER = "ACTION:"
COMPLETION_SENTINEL = "TASK_COMPLETE"

_MARKER_RE = re.compile(r"\bACTION:\s*")
_FENCE_RE = re.compile(r"^\s*`{3}\w*\s*$")
_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class ParsedReply:
    display_text: str
    actions: Tuple[Action, ...] = ()
    task_complete: bool = False
    errors: Tuple[str, ...] = field(default=(), compare=False)


def _decode_action(text: str, start: int) -> Tuple[Action, int]:
    """Decode the JSON object at ``start``; return the action and the end offset."""

    try:
        payload, end = _decoder.raw_decode(text, start)
    except json.JSONDecodeError as exc:
        raise ParseError(code="INVALID_JSON", message=f"invalid JSON after ACTION marker: {exc.msg}")
    if not isinstance(payload, dict):
        raise ParseError(code="INVALID_ACTION", message="ACTION payload is not an object")
    tool = payload.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        raise ParseError(code="INVALID_ACTION", message="ACTION payload has no tool name")
    args = payload.get("args", payload.get("arguments", {}))
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ParseError(code="INVALID_ACTION", message=f"args for {tool} is not an object")
    return Action(tool=tool.strip(), args=args), end


def _clean_display(text: str) -> str:
    lines = []
    for line in text.splitlines():
        if _FENCE_RE.match(line):
            continue
        stripped = line.rstrip()
        if not stripped and (not lines or not lines[-1]):
            continue
        lines.append(stripped)
    return "\n".join(lines).strip()


def parse_reply(text: str) -> ParsedReply:
    """Split a raw reply into display text, actions and the completion flag.

    Malformed payloads are skipped and logged; they never fail the parse.
    """

    raw = text or ""
    actions: List[Action] = []
    errors: List[str] = []
    kept: List[str] = []
    cursor = 0
    for match in _MARKER_RE.finditer(raw):
        if match.start() < cursor:
            # marker inside an already consumed payload
            continue
        try:
            action, end = _decode_action(raw, match.end())
        except ParseError as exc:
            snippet = raw[match.start():match.start() + 120].splitlines()[0]
            errors.append(f"{exc.message}: {snippet}")
            logger.warning("Skipped malformed action", extra={"extra": {"code": exc.code, "snippet": snippet}})
            continue
        actions.append(action)
        kept.append(raw[cursor:match.start()])
        cursor = end
    kept.append(raw[cursor:])
    display = "".join(kept)
    task_complete = COMPLETION_SENTINEL in raw
    if task_complete:
        display = display.replace(COMPLETION_SENTINEL, "")
    return ParsedReply(
        display_text=_clean_display(display),
        actions=tuple(actions),
        task_complete=task_complete,
        errors=tuple(errors),
    )
