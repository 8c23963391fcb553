"""Per-iteration context snapshot handed to the model."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from indigo_core.domain.loop import ActionHistoryEntry
from indigo_core.domain.models import ChatMessage
from indigo_core.prompts import render_system_prompt

_ISSUE_BASE_FIELDS = ("key", "summary", "status", "assignee")


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


@dataclass(frozen=True)
class ExternalState:
    """Read-only snapshot of what the user currently sees in the client."""

    current_user: str = ""
    selection: Tuple[Mapping[str, Any], ...] = ()
    filters: Mapping[str, Sequence[str]] = field(default_factory=dict)
    visible_items: Tuple[Mapping[str, Any], ...] = ()
    available_options: Mapping[str, Sequence[str]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ExternalState":
        return cls()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ExternalState":
        """Accept the snapshot dict a UI sends (camelCase or snake_case keys)."""

        data = data or {}

        def pick(*names: str, default: Any = None) -> Any:
            for name in names:
                if data.get(name) is not None:
                    return data[name]
            return default

        return cls(
            current_user=str(pick("current_user", "currentUser", default="")),
            selection=tuple(pick("selection", "selectedIssues", default=())),
            filters=dict(pick("filters", "currentFilters", default={})),
            visible_items=tuple(pick("visible_items", "visibleItems", "visibleIssues", default=())),
            available_options=dict(pick("available_options", "availableOptions", default={})),
        )


def describe_filters(filters: Mapping[str, Sequence[str]]) -> str:
    parts = [f"{name.capitalize()}: {', '.join(map(str, values))}" for name, values in sorted(filters.items()) if values]
    return " | ".join(parts) if parts else "No active filters"


def _issue_line(item: Mapping[str, Any]) -> str:
    line = f"- {item.get('key', '?')}: {item.get('summary') or ''}"
    if item.get("status"):
        line += f" [{item['status']}]"
    if item.get("assignee"):
        line += f" (assignee: {item['assignee']})"
    return line


@dataclass(frozen=True)
class Context:
    system_prompt: str
    goal: str
    iteration: int
    max_iterations: int
    history: Tuple[ActionHistoryEntry, ...]
    external: ExternalState
    observations: Tuple[str, ...] = ()
    conversation: Tuple[ChatMessage, ...] = ()
    max_visible_items: int = 20

    def render(self) -> str:
        """Serialize the snapshot into the user prompt for this step."""

        ext = self.external
        out: List[str] = ["# Goal", self.goal.strip(), "", "# Current Jira state"]
        if ext.current_user:
            out.append(f"Current user: {ext.current_user}")

        out += ["", "## Current selection (authoritative)"]
        if ext.selection:
            out.append('"this", "it" and "these" refer to exactly these issues:')
            for item in ext.selection:
                out.append(_issue_line(item))
                details = {k: v for k, v in item.items() if k not in _ISSUE_BASE_FIELDS and v not in (None, "", [], {})}
                if details:
                    out.append(f"  details: {_dumps(details)}")
        else:
            out.append("No issues are selected. Do not treat issues mentioned earlier as selected.")

        out += ["", "## Active filters", describe_filters(ext.filters)]

        visible = ext.visible_items[: self.max_visible_items]
        out += ["", f"## Visible issues ({len(visible)} of {len(ext.visible_items)})"]
        out += [_issue_line(item) for item in visible] or ["None"]

        if ext.available_options:
            out += ["", "## Available options"]
            for name, values in sorted(ext.available_options.items()):
                out.append(f"- {name}: {', '.join(map(str, values)) or 'none'}")

        out += ["", "# Actions taken so far in this goal"]
        if not self.history:
            out.append("None yet.")
        for n, entry in enumerate(self.history, start=1):
            status = "success" if entry.result.success else "FAILED"
            out.append(
                f"{n}. {entry.action.tool} {_dumps(entry.action.args)} -> {status}: {entry.result.message or ''}"
            )
            if entry.result.data:
                out.append(f"   data: {_dumps(entry.result.data)}")

        if self.observations:
            out += ["", "# Notes"]
            out += [f"- {note}" for note in self.observations]

        out += [
            "",
            f"# Step {self.iteration} of {self.max_iterations}",
            "Reply with ACTION lines for the next actions, or include TASK_COMPLETE when the goal is achieved.",
        ]
        return "\n".join(out)

    def to_messages(self) -> List[ChatMessage]:
        messages = [ChatMessage(role="system", content=self.system_prompt)]
        messages.extend(self.conversation)
        messages.append(ChatMessage(role="user", content=self.render()))
        return messages


class ContextBuilder:
    """Builds a fresh Context every iteration; holds no per-turn state."""

    def __init__(self, tools_section: str, max_visible_items: int = 20, max_iterations: int = 5, template: str = ""):
        self._system_prompt = render_system_prompt(tools_section, max_iterations, template)
        self._max_visible_items = max_visible_items

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def build(
        self,
        goal: str,
        history: Sequence[ActionHistoryEntry],
        external_state: ExternalState,
        *,
        iteration: int,
        max_iterations: int,
        observations: Sequence[str] = (),
        conversation: Sequence[ChatMessage] = (),
    ) -> Context:
        return Context(
            system_prompt=self._system_prompt,
            goal=goal,
            iteration=iteration,
            max_iterations=max_iterations,
            history=tuple(history),
            external=external_state,
            observations=tuple(observations),
            conversation=tuple(conversation),
            max_visible_items=self._max_visible_items,
        )
