import pytest

from indigo_core.domain.exceptions import DuplicateToolError, JiraError
from indigo_core.tools.catalog import ToolCatalog
from indigo_core.tools.definitions import ParamType, Tool, ToolParam, ToolResult, ToolRisk


class EchoTool(Tool):
    name = "echo"
    description = "Echo a message back"
    params = (
        ToolParam("text", "Text to echo"),
        ToolParam("times", "Repeat count", ParamType.INTEGER, required=False),
    )

    async def invoke(self, args):
        return ToolResult.ok(args.string("text") * args.integer("times", required=False, default=1))


class DeleteTool(Tool):
    name = "delete_thing"
    description = "Delete a thing"
    risk = ToolRisk.DESTRUCTIVE
    params = (ToolParam("tags", "Tags", ParamType.ARRAY, items=ParamType.STRING),)

    async def invoke(self, args):
        raise RuntimeError("boom")


class RemoteFailTool(Tool):
    name = "remote_fail"
    description = "Always fails remotely"

    async def invoke(self, args):
        raise JiraError(code="JIRA_NOT_FOUND", message="Issue does not exist")


def test_register_rejects_duplicates():
    catalog = ToolCatalog([EchoTool()])
    with pytest.raises(DuplicateToolError):
        catalog.register(EchoTool())
    assert len(catalog) == 1
    assert "echo" in catalog


def test_describe_is_ordered_and_stable():
    catalog = ToolCatalog([EchoTool(), DeleteTool(), RemoteFailTool()])
    first = [d.to_schema() for d in catalog.describe()]
    second = [d.to_schema() for d in catalog.describe()]
    assert first == second
    assert [d["name"] for d in first] == ["echo", "delete_thing", "remote_fail"]
    assert first[0]["parameters"]["required"] == ["text"]
    assert first[0]["parameters"]["properties"]["times"]["type"] == "integer"
    assert first[1]["parameters"]["properties"]["tags"]["items"] == {"type": "string"}
    assert catalog.risk_of("delete_thing") is ToolRisk.DESTRUCTIVE
    assert catalog.risk_of("missing") is None


def test_prompt_section_lists_tools_and_format():
    section = ToolCatalog([EchoTool(), DeleteTool()]).prompt_section()
    assert section.startswith("## Available Tools")
    assert "**echo**" in section
    assert "- `times` (integer, optional): Repeat count" in section
    assert "- `tags` (array of string, required): Tags" in section
    assert 'ACTION: {"tool": "tool_name"' in section


@pytest.mark.asyncio
async def test_execute_never_raises():
    catalog = ToolCatalog([EchoTool(), DeleteTool(), RemoteFailTool()])

    ok = await catalog.execute("echo", {"text": "ab", "times": "2"})
    assert ok.success and ok.message == "abab"

    unknown = await catalog.execute("nope", {})
    assert not unknown.success
    assert unknown.message == "Unknown tool: nope"
    assert unknown.data["error"] == "UNKNOWN_TOOL"

    missing = await catalog.execute("echo", {})
    assert not missing.success
    assert missing.message == "Missing required parameter: text"
    assert missing.data["error"] == "MISSING_ARGUMENT"

    crashed = await catalog.execute("delete_thing", {"tags": []})
    assert not crashed.success
    assert crashed.message == "Tool execution failed: boom"

    remote = await catalog.execute("remote_fail", {})
    assert remote.data["error"] == "JIRA_NOT_FOUND"
