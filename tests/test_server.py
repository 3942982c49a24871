import json
import pytest
from unittest.mock import AsyncMock, patch

from mcp.server.fastmcp.exceptions import ToolError

import todoist_mcp.server
from todoist_mcp.errors import ConfigurationError, MissingTokenError
from todoist_mcp.server import create_server, _render
from todoist_mcp.todoist_client import OperationResult, TodoistGateway

EXPECTED_TOOLS = {
    "list_tasks", "get_task", "create_task", "update_task", "complete_task",
    "reopen_task", "delete_task",
    "list_projects", "get_project", "create_project", "update_project",
    "archive_project", "unarchive_project", "delete_project",
    "get_project_collaborators",
    "list_sections", "get_section", "create_section", "update_section", "delete_section",
    "list_comments", "get_comment", "create_comment", "update_comment", "delete_comment",
    "list_labels", "get_label", "create_label", "update_label", "delete_label",
    "get_shared_labels", "rename_shared_label", "remove_shared_label",
}


def text_of(result):
    """call_tool returns content blocks, or (content, structured) on newer SDKs."""
    content = result[0] if isinstance(result, tuple) else result
    return content[0].text


class TestTodoistTools:
    @pytest.fixture
    def fake_gateway(self):
        """A gateway whose operations are all AsyncMocks."""
        gateway = AsyncMock(spec=TodoistGateway)
        return gateway

    @pytest.fixture
    def server(self, fake_gateway):
        return create_server(fake_gateway)

    @pytest.mark.asyncio
    async def test_registers_every_tool(self, server):
        tools = await server.list_tools()
        assert {tool.name for tool in tools} == EXPECTED_TOOLS

    @pytest.mark.asyncio
    async def test_create_task_passes_only_given_fields(self, server, fake_gateway):
        fake_gateway.create_task.return_value = OperationResult.success(
            {"task": {"id": "1", "content": "Buy milk"}})

        result = await server.call_tool("create_task", {"content": "Buy milk"})

        fake_gateway.create_task.assert_awaited_once_with("Buy milk")
        assert json.loads(text_of(result)) == {"task": {"id": "1", "content": "Buy milk"}}

    @pytest.mark.asyncio
    async def test_update_task_empty_assignee_is_forwarded(self, server, fake_gateway):
        fake_gateway.update_task.return_value = OperationResult.success({"success": True})

        await server.call_tool("update_task", {"task_id": "t1", "assignee_id": ""})

        fake_gateway.update_task.assert_awaited_once_with("t1", assignee_id="")

    @pytest.mark.asyncio
    async def test_invalid_view_style_never_reaches_gateway(self, server, fake_gateway):
        with pytest.raises(ToolError):
            await server.call_tool("create_project", {"name": "Home", "view_style": "grid"})

        fake_gateway.create_project.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_priority_out_of_range(self, server, fake_gateway):
        with pytest.raises(ToolError):
            await server.call_tool("create_task", {"content": "x", "priority": 5})

        fake_gateway.create_task.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, server, fake_gateway):
        with pytest.raises(ToolError):
            await server.call_tool("get_task", {})

        fake_gateway.get_task.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_result_becomes_tool_error(self, server, fake_gateway):
        fake_gateway.list_comments.return_value = OperationResult(
            ok=False, error="Either task_id or project_id is required",
            error_type="MissingIdentifierError")

        with pytest.raises(ToolError) as excinfo:
            await server.call_tool("list_comments", {})

        assert "task_id or project_id" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_comment_attachment_is_plain_dict(self, server, fake_gateway):
        fake_gateway.create_comment.return_value = OperationResult.success({"comment": {}})

        await server.call_tool("create_comment", {
            "content": "see file", "task_id": "t1",
            "attachment": {"file_url": "https://x/y.pdf"},
        })

        fake_gateway.create_comment.assert_awaited_once_with(
            "see file", task_id="t1", project_id=None,
            attachment={"file_url": "https://x/y.pdf"})

    @pytest.mark.asyncio
    async def test_shared_labels_default_flag(self, server, fake_gateway):
        fake_gateway.get_shared_labels.return_value = OperationResult.success({"labels": []})

        await server.call_tool("get_shared_labels", {})

        fake_gateway.get_shared_labels.assert_awaited_once_with(omit_personal=False)


def test_render_success_is_indented_json():
    text = _render(OperationResult.success({"success": True}))
    assert text == '{\n  "success": true\n}'


def test_render_failure_raises():
    with pytest.raises(ToolError, match="boom"):
        _render(OperationResult.failure(RuntimeError("boom")))


class TestMain:

    @pytest.mark.parametrize("error", [
        ConfigurationError("Missing required Nango environment variables"),
        MissingTokenError("Access token not found in Nango credentials"),
    ])
    def test_startup_failure_exits_non_zero(self, error):
        with patch.object(TodoistGateway, "connect", new=AsyncMock(side_effect=error)), \
                patch("todoist_mcp.server.create_server") as mock_create, \
                patch("todoist_mcp.server.configure_logging"):
            with pytest.raises(SystemExit) as excinfo:
                todoist_mcp.server.main([])

        assert excinfo.value.code == 1
        mock_create.assert_not_called()

    def test_runs_with_requested_transport(self):
        gateway = object()
        with patch.object(TodoistGateway, "connect", new=AsyncMock(return_value=gateway)), \
                patch("todoist_mcp.server.create_server") as mock_create, \
                patch("todoist_mcp.server.configure_logging"):
            todoist_mcp.server.main(["--sse"])

        mock_create.assert_called_once_with(gateway)
        mock_create.return_value.run.assert_called_once_with(transport="sse")
