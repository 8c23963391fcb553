from indigo_core.domain.loop import Action, ActionHistoryEntry
from indigo_core.domain.models import ChatMessage
from indigo_core.flows.context import ContextBuilder, ExternalState, describe_filters
from indigo_core.tools.definitions import ToolResult


def _builder():
    return ContextBuilder("## Available Tools\n\n**search_issues**", max_visible_items=2, max_iterations=5)


def _history():
    return [
        ActionHistoryEntry(
            action=Action("search_issues", {"jql": "summary ~ 'onboarding' AND type = Epic"}),
            result=ToolResult.ok("Found 1 issues", data={"issueKeys": ["SETI-7"], "total": 1}),
            iteration=1,
        ),
        ActionHistoryEntry(
            action=Action("assign_issue", {"issueKey": "SETI-7", "assignee": "me"}),
            result=ToolResult.failure("Jira GET failed (403)", data={"error": "JIRA_AUTH_ERROR"}),
            iteration=2,
        ),
    ]


def test_render_is_deterministic():
    state = ExternalState(
        current_user="ada@example.com",
        selection=({"key": "SETI-3", "summary": "Login bug", "status": "Open", "labels": ["web"]},),
        filters={"statuses": ["Open"], "projects": ["SETI", "OPS"]},
        visible_items=tuple({"key": f"SETI-{i}", "summary": f"Item {i}"} for i in range(5)),
        available_options={"statuses": ["Open", "Done"], "projects": ["SETI", "OPS"]},
    )
    first = _builder().build("Close it", _history(), state, iteration=3, max_iterations=5)
    second = _builder().build("Close it", _history(), state, iteration=3, max_iterations=5)
    assert first.render() == second.render()
    assert first.to_messages()[0].content == second.to_messages()[0].content


def test_render_contains_goal_history_and_state():
    state = ExternalState(
        selection=({"key": "SETI-3", "summary": "Login bug", "status": "Open", "labels": ["web"]},),
        visible_items=tuple({"key": f"SETI-{i}", "summary": f"Item {i}"} for i in range(5)),
        available_options={"statuses": ["Open", "Done"]},
    )
    text = _builder().build(
        "Close it", _history(), state, iteration=3, max_iterations=5, observations=["user declined"]
    ).render()
    assert text.startswith("# Goal\nClose it")
    assert "- SETI-3: Login bug [Open]" in text
    assert 'details: {"labels": ["web"]}' in text
    assert "## Visible issues (2 of 5)" in text
    assert "SETI-4" not in text
    assert "- statuses: Open, Done" in text
    assert "1. search_issues" in text and '"total": 1' in text
    assert "2. assign_issue" in text and "-> FAILED: Jira GET failed (403)" in text
    assert "- user declined" in text
    assert "# Step 3 of 5" in text


def test_empty_selection_is_explicit():
    text = _builder().build("Assign this to me", [], ExternalState.empty(), iteration=1, max_iterations=5).render()
    assert "No issues are selected" in text
    assert "None yet." in text
    assert "No active filters" in text


def test_messages_place_current_state_after_conversation():
    conversation = [
        ChatMessage(role="user", content="Look at SETI-1"),
        ChatMessage(role="assistant", content="SETI-1 is open."),
    ]
    ctx = _builder().build(
        "Close it",
        [],
        ExternalState(selection=({"key": "SETI-9", "summary": "Other"},)),
        iteration=1,
        max_iterations=5,
        conversation=conversation,
    )
    messages = ctx.to_messages()
    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert "**search_issues**" in messages[0].content
    assert "SETI-9" in messages[-1].content
    assert "at most 5 steps" in messages[0].content


def test_from_mapping_and_filters():
    state = ExternalState.from_mapping(
        {
            "currentUser": "ada",
            "selectedIssues": [{"key": "A-1"}],
            "currentFilters": {"projects": ["A", "B"], "assignees": []},
            "visibleIssues": [{"key": "A-1"}, {"key": "A-2"}],
        }
    )
    assert state.current_user == "ada"
    assert state.selection[0]["key"] == "A-1"
    assert len(state.visible_items) == 2
    assert describe_filters(state.filters) == "Projects: A, B"
    assert describe_filters({"projects": ["A"], "statuses": ["Open", "Done"]}) == "Projects: A | Statuses: Open, Done"
