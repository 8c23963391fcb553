"""Jira tools exposed to the model.

Each tool wraps exactly one JiraClient operation and keeps only a weak
reference to the client.
"""

import weakref
from abc import abstractmethod
from typing import List, Optional

from indigo_core.jira.client import JiraClient
from indigo_core.tools.arguments import ToolArguments
from indigo_core.tools.catalog import ToolCatalog
from indigo_core.tools.definitions import ParamType, Tool, ToolParam, ToolResult, ToolRisk

ISSUE_KEY = ToolParam("issueKey", "The issue key (e.g., SETI-123)")


class JiraTool(Tool):
    def __init__(self, client: JiraClient):
        self._client_ref = weakref.ref(client)

    def client(self) -> Optional[JiraClient]:
        return self._client_ref()

    async def invoke(self, args: ToolArguments) -> ToolResult:
        client = self.client()
        if client is None:
            return ToolResult.failure("Jira client not available", data={"error": "CLIENT_UNAVAILABLE"})
        return await self.run(client, args)

    @abstractmethod
    async def run(self, client: JiraClient, args: ToolArguments) -> ToolResult:
        ...


class SearchIssuesTool(JiraTool):
    name = "search_issues"
    description = "Search for issues using JQL (Jira Query Language). Returns matching issue keys."
    params = (
        ToolParam("jql", "JQL query string (e.g., 'project = SETI AND status = Open')"),
        ToolParam("maxResults", "Maximum number of issues to return (default 50)", ParamType.INTEGER, required=False),
    )

    async def run(self, client, args):
        jql = args.string("jql")
        limit = max(1, min(args.integer("maxResults", required=False, default=50), 100))
        issues = await client.search_issues(jql, max_results=limit)
        keys = [issue["key"] for issue in issues]
        return ToolResult.ok(
            f"Found {len(issues)} issues",
            data={"issueKeys": keys, "issues": issues, "total": len(issues)},
        )


class CreateIssueTool(JiraTool):
    name = "create_issue"
    description = "Create a new Jira issue."
    risk = ToolRisk.MUTATING
    params = (
        ToolParam("project", "Project key (e.g., SETI)"),
        ToolParam("summary", "Issue title/summary"),
        ToolParam("type", "Issue type (e.g., Story, Bug, Task). Defaults to Story", required=False),
        ToolParam("description", "Issue description", required=False),
        ToolParam("assignee", "Assignee email, account id or 'me'", required=False),
        ToolParam("sprint", "Sprint id, or 'current' for the active sprint", required=False),
        ToolParam("epic", "Epic issue key", required=False),
        ToolParam("components", "Component names", ParamType.ARRAY, required=False, items=ParamType.STRING),
        ToolParam("priority", "Priority name (e.g., High, Medium, Low)", required=False),
    )

    async def run(self, client, args):
        key = await client.create_issue(
            project=args.string("project"),
            summary=args.string("summary"),
            issue_type=args.string("type", required=False, default="Story"),
            description=args.string("description", required=False),
            assignee=args.string("assignee", required=False),
            sprint=args.string("sprint", required=False),
            epic=args.string("epic", required=False),
            components=args.string_list("components", required=False),
            priority=args.string("priority", required=False),
        )
        return ToolResult.ok(f"Created issue {key}", data={"issueKey": key})


class UpdateIssueTool(JiraTool):
    name = "update_issue"
    description = (
        "Update fields of an existing issue. Supported fields: summary, description, assignee, "
        "priority, labels, components, originalEstimate, remainingEstimate, sprint, epic, customfield_*."
    )
    risk = ToolRisk.MUTATING
    params = (
        ISSUE_KEY,
        ToolParam("fields", "Fields to update as key-value pairs", ParamType.OBJECT),
    )

    async def run(self, client, args):
        key = args.string("issueKey")
        ignored = await client.update_issue(key, args.mapping("fields"))
        message = f"Updated {key}"
        if ignored:
            message += f" (ignored unknown fields: {', '.join(ignored)})"
        return ToolResult.ok(message, data={"issueKey": key, "ignoredFields": ignored})


class LogWorkTool(JiraTool):
    name = "log_work"
    description = "Log time spent on an issue."
    risk = ToolRisk.MUTATING
    params = (
        ISSUE_KEY,
        ToolParam("timeSeconds", "Time spent in seconds (e.g., 7200 for 2 hours)", ParamType.INTEGER),
    )

    async def run(self, client, args):
        key = args.string("issueKey")
        seconds = args.integer("timeSeconds")
        await client.log_work(key, seconds)
        return ToolResult.ok(f"Logged {seconds / 3600:.1f} hours on {key}", data={"issueKey": key, "seconds": seconds})


class ChangeStatusTool(JiraTool):
    name = "change_status"
    description = "Change the status of an issue (e.g., To Do, In Progress, Done)."
    risk = ToolRisk.MUTATING
    params = (ISSUE_KEY, ToolParam("newStatus", "Target status name"))

    async def run(self, client, args):
        key = args.string("issueKey")
        status = await client.change_status(key, args.string("newStatus"))
        return ToolResult.ok(f"Changed {key} status to '{status}'", data={"issueKey": key, "status": status})


class AddCommentTool(JiraTool):
    name = "add_comment"
    description = "Add a comment to an issue."
    risk = ToolRisk.MUTATING
    params = (ISSUE_KEY, ToolParam("comment", "Comment text"))

    async def run(self, client, args):
        key = args.string("issueKey")
        comment_id = await client.add_comment(key, args.string("comment"))
        return ToolResult.ok(f"Added comment to {key}", data={"issueKey": key, "commentId": comment_id})


class AssignIssueTool(JiraTool):
    name = "assign_issue"
    description = "Assign an issue to a user. Use 'me' for the current user or 'unassigned' to clear."
    risk = ToolRisk.MUTATING
    params = (ISSUE_KEY, ToolParam("assignee", "Assignee email, account id, 'me' or 'unassigned'"))

    async def run(self, client, args):
        key = args.string("issueKey")
        assignee = args.string("assignee")
        account_id = await client.assign_issue(key, assignee)
        if account_id is None:
            return ToolResult.ok(f"Unassigned {key}", data={"issueKey": key, "accountId": None})
        return ToolResult.ok(f"Assigned {key} to {assignee}", data={"issueKey": key, "accountId": account_id})


class GetComponentsTool(JiraTool):
    name = "get_components"
    description = "List the components available in a project."
    params = (ToolParam("projectKey", "Project key (e.g., SETI)"),)

    async def run(self, client, args):
        project = args.string("projectKey")
        components = await client.get_components(project)
        return ToolResult.ok(
            f"Found {len(components)} components in {project}",
            data={"project": project, "components": components},
        )


class UpdateClassificationTool(JiraTool):
    name = "update_classification"
    description = "Set the two-level classification (parent and optional child value) of an issue."
    risk = ToolRisk.MUTATING
    params = (
        ISSUE_KEY,
        ToolParam("parentValue", "Top-level classification value"),
        ToolParam("childValue", "Second-level classification value", required=False),
    )

    async def run(self, client, args):
        key = args.string("issueKey")
        parent = args.string("parentValue")
        child = args.string("childValue", required=False)
        await client.update_classification(key, parent, child)
        label = f"{parent} / {child}" if child else parent
        return ToolResult.ok(f"Updated classification of {key} to {label}", data={"issueKey": key})


class UpdatePcmTool(JiraTool):
    name = "update_pcm"
    description = "Set or clear the PCM asset object linked to an issue. Omit objectId to clear it."
    risk = ToolRisk.MUTATING
    params = (ISSUE_KEY, ToolParam("objectId", "Asset object id", required=False))

    async def run(self, client, args):
        key = args.string("issueKey")
        object_id = args.string("objectId", required=False)
        await client.update_pcm(key, object_id)
        if object_id:
            return ToolResult.ok(f"Set PCM of {key} to {object_id}", data={"issueKey": key, "objectId": object_id})
        return ToolResult.ok(f"Cleared PCM of {key}", data={"issueKey": key, "objectId": None})


class DeleteIssueTool(JiraTool):
    name = "delete_issue"
    description = "Permanently delete an issue. This cannot be undone."
    risk = ToolRisk.DESTRUCTIVE
    params = (ISSUE_KEY,)

    async def run(self, client, args):
        key = args.string("issueKey")
        await client.delete_issue(key)
        return ToolResult.ok(f"Deleted {key}", data={"issueKey": key})


class AddWatcherTool(JiraTool):
    name = "add_watcher"
    description = "Add a watcher to an issue."
    risk = ToolRisk.MUTATING
    params = (ISSUE_KEY, ToolParam("watcher", "Watcher email, account id or 'me'"))

    async def run(self, client, args):
        key = args.string("issueKey")
        watcher = args.string("watcher")
        account_id = await client.add_watcher(key, watcher)
        return ToolResult.ok(f"Added {watcher} as watcher on {key}", data={"issueKey": key, "accountId": account_id})


class LinkIssuesTool(JiraTool):
    name = "link_issues"
    description = "Link two issues (e.g., Blocks, Relates, Duplicate)."
    risk = ToolRisk.MUTATING
    params = (
        ISSUE_KEY,
        ToolParam("linkedIssue", "The other issue key"),
        ToolParam("linkType", "Link type name (e.g., Blocks, Relates)"),
    )

    async def run(self, client, args):
        key = args.string("issueKey")
        other = args.string("linkedIssue")
        link_type = args.string("linkType")
        await client.link_issues(key, other, link_type)
        return ToolResult.ok(
            f"Linked {key} to {other} ({link_type})",
            data={"issueKey": key, "linkedIssue": other, "linkType": link_type},
        )


class GetTransitionsTool(JiraTool):
    name = "get_transitions"
    description = "List the workflow transitions currently available for an issue."
    params = (ISSUE_KEY,)

    async def run(self, client, args):
        key = args.string("issueKey")
        transitions = await client.get_transitions(key)
        return ToolResult.ok(
            f"Found {len(transitions)} transitions for {key}",
            data={"issueKey": key, "transitions": [f"{t['name']} -> {t['to']}" for t in transitions]},
        )


class FetchChangelogTool(JiraTool):
    name = "fetch_changelog"
    description = "Fetch the change history of an issue."
    params = (ISSUE_KEY,)

    async def run(self, client, args):
        key = args.string("issueKey")
        entries = await client.fetch_changelog(key)
        return ToolResult.ok(f"Fetched {len(entries)} changelog entries for {key}", data={"issueKey": key, "changelog": entries})


JIRA_TOOLS: List[type] = [
    SearchIssuesTool,
    CreateIssueTool,
    UpdateIssueTool,
    LogWorkTool,
    ChangeStatusTool,
    AddCommentTool,
    AssignIssueTool,
    GetComponentsTool,
    UpdateClassificationTool,
    UpdatePcmTool,
    DeleteIssueTool,
    AddWatcherTool,
    LinkIssuesTool,
    GetTransitionsTool,
    FetchChangelogTool,
]


def build_jira_catalog(client: JiraClient) -> ToolCatalog:
    return ToolCatalog([tool_cls(client) for tool_cls in JIRA_TOOLS])
