import json

import httpx
import pytest

from indigo_core.domain.exceptions import JiraError
from indigo_core.jira.client import JiraClient, project_of, to_adf


class SettingsStub:
    jira_base_url = "https://example.atlassian.net/"
    jira_email = "ada@example.com"
    jira_api_key = "token"
    jira_sprint_field = "customfield_10020"
    jira_epic_field = "customfield_10014"
    jira_classification_field = "customfield_10100"
    jira_pcm_field = None
    http_timeout = 1.0


class Resp:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def install(monkeypatch, routes):
    """Route (METHOD, path) to canned responses; returns the list of recorded calls."""

    calls = []

    class Client:
        def __init__(self, *a, **kw):
            self.kwargs = kw

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def request(self, method, url, **kw):
            path = url.replace("https://example.atlassian.net", "")
            calls.append((method, path, kw))
            handler = routes.get((method, path))
            if handler is None:
                return Resp(404, {"errorMessages": [f"no route {method} {path}"]})
            if isinstance(handler, Exception):
                raise handler
            return handler

    monkeypatch.setattr("httpx.AsyncClient", Client)
    return calls


@pytest.mark.asyncio
async def test_search_summarizes_issues(monkeypatch):
    payload = {
        "issues": [
            {
                "key": "SETI-7",
                "fields": {
                    "summary": "Epic X",
                    "status": {"name": "Open"},
                    "assignee": {"displayName": "Ada"},
                    "issuetype": {"name": "Epic"},
                    "priority": {"name": "High"},
                },
            }
        ]
    }
    calls = install(monkeypatch, {("GET", "/rest/api/3/search/jql"): Resp(200, payload)})
    issues = await JiraClient(SettingsStub()).search_issues("type = Epic")
    assert issues == [
        {"key": "SETI-7", "summary": "Epic X", "status": "Open", "assignee": "Ada", "type": "Epic", "priority": "High"}
    ]
    method, path, kw = calls[0]
    assert kw["params"]["jql"] == "type = Epic"
    assert kw["headers"]["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_http_errors_map_to_codes(monkeypatch):
    install(monkeypatch, {("DELETE", "/rest/api/3/issue/SETI-1"): Resp(403, {"errorMessages": ["Forbidden"]})})
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).delete_issue("SETI-1")
    assert exc.value.code == "JIRA_AUTH_ERROR"
    assert "Forbidden" in exc.value.message
    assert exc.value.http_status == 403


@pytest.mark.asyncio
async def test_network_error(monkeypatch):
    install(monkeypatch, {("DELETE", "/rest/api/3/issue/SETI-1"): httpx.ConnectError("boom")})
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).delete_issue("SETI-1")
    assert exc.value.code == "JIRA_NETWORK_ERROR"


@pytest.mark.asyncio
async def test_missing_configuration():
    class Empty(SettingsStub):
        jira_api_key = None

    with pytest.raises(JiraError) as exc:
        await JiraClient(Empty()).delete_issue("SETI-1")
    assert exc.value.code == "JIRA_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_assign_resolves_current_user(monkeypatch):
    calls = install(
        monkeypatch,
        {
            ("GET", "/rest/api/3/myself"): Resp(200, {"accountId": "acc-me"}),
            ("PUT", "/rest/api/3/issue/SETI-7/assignee"): Resp(204),
        },
    )
    account = await JiraClient(SettingsStub()).assign_issue("SETI-7", "me")
    assert account == "acc-me"
    assert calls[-1][2]["json"] == {"accountId": "acc-me"}


@pytest.mark.asyncio
async def test_unassign(monkeypatch):
    calls = install(monkeypatch, {("PUT", "/rest/api/3/issue/SETI-7/assignee"): Resp(204)})
    assert await JiraClient(SettingsStub()).assign_issue("SETI-7", "unassigned") is None
    assert calls[0][2]["json"] == {"accountId": None}


@pytest.mark.asyncio
async def test_unknown_email(monkeypatch):
    install(monkeypatch, {("GET", "/rest/api/3/user/search"): Resp(200, [])})
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).resolve_account_id("ghost@example.com")
    assert exc.value.code == "JIRA_USER_NOT_FOUND"


@pytest.mark.asyncio
async def test_change_status_matches_target_name(monkeypatch):
    transitions = {"transitions": [{"id": 11, "name": "Start", "to": {"name": "In Progress"}}]}
    calls = install(
        monkeypatch,
        {
            ("GET", "/rest/api/3/issue/SETI-7/transitions"): Resp(200, transitions),
            ("POST", "/rest/api/3/issue/SETI-7/transitions"): Resp(204),
        },
    )
    assert await JiraClient(SettingsStub()).change_status("SETI-7", "in progress") == "In Progress"
    assert calls[-1][2]["json"] == {"transition": {"id": "11"}}


@pytest.mark.asyncio
async def test_change_status_lists_available(monkeypatch):
    transitions = {"transitions": [{"id": 11, "name": "Start", "to": {"name": "In Progress"}}]}
    install(monkeypatch, {("GET", "/rest/api/3/issue/SETI-7/transitions"): Resp(200, transitions)})
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).change_status("SETI-7", "Shipped")
    assert exc.value.code == "JIRA_TRANSITION_NOT_FOUND"
    assert "Start -> In Progress" in exc.value.message


@pytest.mark.asyncio
async def test_update_maps_fields_and_reports_ignored(monkeypatch):
    calls = install(
        monkeypatch,
        {
            ("GET", "/rest/agile/1.0/board"): Resp(200, {"values": [{"id": 3}]}),
            ("GET", "/rest/agile/1.0/board/3/sprint"): Resp(200, {"values": [{"id": 42}]}),
            ("PUT", "/rest/api/3/issue/SETI-7"): Resp(204),
            ("PUT", "/rest/api/3/issue/SETI-8"): Resp(204),
        },
    )
    client = JiraClient(SettingsStub())
    ignored = await client.update_issue(
        "SETI-7",
        {"priority": "High", "labels": "web, ui", "sprint": "current", "originalEstimate": "2h", "mood": "happy"},
    )
    assert ignored == ["mood"]
    fields = calls[-1][2]["json"]["fields"]
    assert fields["priority"] == {"name": "High"}
    assert fields["labels"] == ["web", "ui"]
    assert fields["customfield_10020"] == 42
    assert fields["timetracking"] == {"originalEstimate": "2h"}

    # active sprint is cached per project
    await client.update_issue("SETI-8", {"sprint": "active"})
    assert sum(1 for c in calls if c[1] == "/rest/agile/1.0/board") == 1


@pytest.mark.asyncio
async def test_update_without_known_fields_fails(monkeypatch):
    install(monkeypatch, {})
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).update_issue("SETI-7", {"mood": "happy"})
    assert exc.value.code == "JIRA_INVALID_FIELDS"


@pytest.mark.asyncio
async def test_create_issue_returns_key(monkeypatch):
    calls = install(monkeypatch, {("POST", "/rest/api/3/issue"): Resp(201, {"key": "SETI-9"})})
    key = await JiraClient(SettingsStub()).create_issue("SETI", "New bug", "Bug", description="Steps\nto reproduce")
    assert key == "SETI-9"
    fields = calls[0][2]["json"]["fields"]
    assert fields["issuetype"] == {"name": "Bug"}
    assert len(fields["description"]["content"]) == 2


@pytest.mark.asyncio
async def test_add_watcher_posts_raw_account_id(monkeypatch):
    calls = install(monkeypatch, {("POST", "/rest/api/3/issue/SETI-7/watchers"): Resp(204)})
    await JiraClient(SettingsStub()).add_watcher("SETI-7", "acc-42")
    assert calls[0][2]["content"] == '"acc-42"'


@pytest.mark.asyncio
async def test_unconfigured_pcm_field():
    with pytest.raises(JiraError) as exc:
        await JiraClient(SettingsStub()).update_pcm("SETI-7", "obj-1")
    assert exc.value.code == "JIRA_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_classification_with_child(monkeypatch):
    calls = install(monkeypatch, {("PUT", "/rest/api/3/issue/SETI-7"): Resp(204)})
    await JiraClient(SettingsStub()).update_classification("SETI-7", "Hardware", "Sensor")
    assert calls[0][2]["json"] == {"fields": {"customfield_10100": {"value": "Hardware", "child": {"value": "Sensor"}}}}


def test_helpers():
    assert project_of("SETI-12") == "SETI"
    assert project_of("MY-PROJ-3") == "MY-PROJ"
    doc = to_adf("one\n\ntwo")
    assert [p["content"][0]["text"] for p in doc["content"]] == ["one", "two"]
    assert to_adf("")["content"] == [{"type": "paragraph", "content": []}]
