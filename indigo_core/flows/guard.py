"""Table-driven confirmation rules for batches of proposed actions."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Literal, Mapping, Optional, Sequence

from indigo_core.domain.loop import Action
from indigo_core.tools.catalog import ToolCatalog
from indigo_core.tools.definitions import ToolRisk

DEFAULT_BULK_THRESHOLD = 5


@dataclass(frozen=True)
class GuardDecision:
    needs_confirmation: bool
    reason: str = ""
    detail: str = ""
    kind: Literal["none", "destructive", "bulk"] = "none"


def _summarize(actions: Sequence[Action]) -> str:
    lines = []
    for action in actions:
        target = action.args.get("issueKey") or action.args.get("project") or action.args.get("jql")
        lines.append(f"- {action.tool}" + (f" {target}" if target else ""))
    return "\n".join(lines)


class ConfirmationGuard:
    """Classifies a batch as safe, bulk or destructive.

    Unknown tool names count as mutating.
    """

    def __init__(self, risk_table: Mapping[str, ToolRisk], bulk_threshold: int = DEFAULT_BULK_THRESHOLD):
        self._risks: Dict[str, ToolRisk] = dict(risk_table)
        self._threshold = bulk_threshold

    @classmethod
    def from_catalog(
        cls,
        catalog: ToolCatalog,
        bulk_threshold: int = DEFAULT_BULK_THRESHOLD,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "ConfirmationGuard":
        table = {tool_def.name: catalog.risk_of(tool_def.name) for tool_def in catalog.describe()}
        for name, risk in (overrides or {}).items():
            table[name] = ToolRisk(risk)
        return cls(table, bulk_threshold)

    @property
    def bulk_threshold(self) -> int:
        return self._threshold

    def risk_of(self, tool: str) -> ToolRisk:
        return self._risks.get(tool, ToolRisk.MUTATING)

    def evaluate(self, actions: Sequence[Action]) -> GuardDecision:
        destructive = [a for a in actions if self.risk_of(a.tool) is ToolRisk.DESTRUCTIVE]
        if destructive:
            counts = Counter(a.tool for a in destructive)
            what = ", ".join(f"{n} x {tool}" for tool, n in counts.items())
            return GuardDecision(
                needs_confirmation=True,
                reason=f"This batch contains {len(destructive)} permanent operation(s) ({what}) that cannot be undone.",
                detail=_summarize(destructive),
                kind="destructive",
            )
        mutating = [a for a in actions if self.risk_of(a.tool) is ToolRisk.MUTATING]
        if len(mutating) > self._threshold:
            return GuardDecision(
                needs_confirmation=True,
                reason=f"This batch will change {len(mutating)} items (more than {self._threshold}).",
                detail=_summarize(mutating),
                kind="bulk",
            )
        return GuardDecision(needs_confirmation=False)
