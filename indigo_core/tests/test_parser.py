from indigo_core.flows.parser import parse_reply


def test_single_action_and_display_text():
    reply = 'Let me search first.\nACTION: {"tool": "search_issues", "args": {"jql": "project = SETI"}}'
    parsed = parse_reply(reply)
    assert parsed.display_text == "Let me search first."
    assert len(parsed.actions) == 1
    assert parsed.actions[0].tool == "search_issues"
    assert parsed.actions[0].args == {"jql": "project = SETI"}
    assert parsed.task_complete is False


def test_multiple_actions_keep_generation_order():
    reply = "\n".join(
        [
            'ACTION: {"tool": "update_issue", "args": {"issueKey": "A-1", "fields": {"priority": "High"}}}',
            'ACTION: {"tool": "add_comment", "args": {"issueKey": "A-1", "comment": "bumped"}}',
            'ACTION: {"tool": "assign_issue", "arguments": {"issueKey": "A-1", "assignee": "me"}}',
        ]
    )
    parsed = parse_reply(reply)
    assert [a.tool for a in parsed.actions] == ["update_issue", "add_comment", "assign_issue"]
    assert parsed.actions[2].args["assignee"] == "me"
    assert parsed.display_text == ""


def test_multiline_payload_in_code_fence():
    reply = 'Here goes:\n```\nACTION: {\n  "tool": "log_work",\n  "args": {"issueKey": "A-2", "timeSeconds": 3600}\n}\n```\nDone soon.'
    parsed = parse_reply(reply)
    assert parsed.actions[0].args == {"issueKey": "A-2", "timeSeconds": 3600}
    assert parsed.display_text == "Here goes:\n\nDone soon."


def test_malformed_payloads_are_skipped():
    reply = 'ACTION: {"tool": "search_issues", "args": {jql: broken}}\nACTION: ["not", "an", "object"]\nACTION: {"args": {}}\nCould you tell me which project?'
    parsed = parse_reply(reply)
    assert parsed.actions == ()
    assert parsed.task_complete is False
    assert len(parsed.errors) == 3
    assert "Could you tell me which project?" in parsed.display_text


def test_missing_args_defaults_to_empty():
    parsed = parse_reply('ACTION: {"tool": "get_components"}')
    assert parsed.actions[0].args == {}


def test_completion_sentinel_with_and_without_actions():
    done = parse_reply("All set, SETI-3 is assigned to you. TASK_COMPLETE")
    assert done.task_complete is True
    assert done.actions == ()
    assert done.display_text == "All set, SETI-3 is assigned to you."

    both = parse_reply('ACTION: {"tool": "delete_issue", "args": {"issueKey": "A-9"}}\nTASK_COMPLETE')
    assert both.task_complete is True
    assert [a.tool for a in both.actions] == ["delete_issue"]


def test_parsing_is_idempotent():
    reply = 'Step.\nACTION: {"tool": "a", "args": {"x": [1, 2, {"y": null}]}}\nACTION: {"tool": "b", "args": {}}\nTASK_COMPLETE'
    first = parse_reply(reply)
    second = parse_reply(reply)
    assert first.actions == second.actions
    assert first.task_complete == second.task_complete
    assert first == second


def test_marker_inside_a_word_is_not_an_action():
    reply = 'The TRANSACTION: rollback and REACTION: positive were noted.\nACTION: {"tool": "search_issues", "args": {"jql": "x"}}'
    parsed = parse_reply(reply)
    assert parsed.errors == ()
    assert [a.tool for a in parsed.actions] == ["search_issues"]
    assert parsed.display_text == "The TRANSACTION: rollback and REACTION: positive were noted."
