# server.py
import argparse
import asyncio
import json
import logging
import sys
from typing import Annotated, Any, Dict, List, Literal, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import BaseModel, Field

from todoist_mcp.config import Settings
from todoist_mcp.errors import TodoistMCPError
from todoist_mcp.nango_auth import REQUIRED_VARIABLES
from todoist_mcp.todoist_client import OperationResult, TodoistGateway

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# --- Argument types ---

Id = Annotated[str, Field(min_length=1)]
# Priority level 1-4, where 4 is highest
Priority = Annotated[int, Field(ge=1, le=4)]
PositiveInt = Annotated[int, Field(gt=0)]
ViewStyle = Literal["list", "board"]
DurationUnit = Literal["minute", "day"]


class Attachment(BaseModel):
    """File attached to a comment."""

    file_url: str = Field(description="URL of the attached file")
    file_name: Optional[str] = Field(default=None, description="Name of the attached file")
    file_type: Optional[str] = Field(default=None, description="MIME type of the file")
    resource_type: Optional[str] = Field(default=None, description="Type of resource")


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler()  # stderr; stdout belongs to the stdio transport
        ]
    )
    # Quiet down HTTP library logging
    for noisy in ("httpx", "httpcore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _render(result: OperationResult) -> str:
    """Success payload as JSON text; failures become MCP error results."""
    if not result.ok:
        raise ToolError(result.error or "Operation failed")
    return json.dumps(result.data, indent=2, default=str)


def _given(**values: Any) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def create_server(gateway: TodoistGateway) -> FastMCP:
    """Builds the FastMCP server with every Todoist tool bound to `gateway`."""
    mcp = FastMCP("Todoist MCP Server")

    # --- Tasks ---

    @mcp.tool("list_tasks", description="List tasks from Todoist. You can filter by project, section, label, or use a custom filter string.")
    async def list_tasks(
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        label: Optional[str] = None,
        filter: Annotated[Optional[str], Field(description="Custom filter string (e.g., 'today', 'overdue', 'p1')")] = None,
        lang: Optional[str] = None,
        ids: Optional[List[str]] = None,
    ) -> str:
        return _render(await gateway.list_tasks(**_given(
            project_id=project_id, section_id=section_id, label=label,
            filter=filter, lang=lang, ids=ids)))

    @mcp.tool("get_task", description="Get details of a specific task by its ID.")
    async def get_task(task_id: Id) -> str:
        return _render(await gateway.get_task(task_id))

    @mcp.tool("create_task", description="Create a new task in Todoist with various optional parameters.")
    async def create_task(
        content: Annotated[str, Field(min_length=1, description="The task content/title")],
        description: Optional[str] = None,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        parent_id: Annotated[Optional[str], Field(description="Parent task ID to create a subtask")] = None,
        order: Optional[int] = None,
        labels: Annotated[Optional[List[str]], Field(description="Label names to assign to the task")] = None,
        priority: Optional[Priority] = None,
        due_string: Annotated[Optional[str], Field(description="Due date in natural language (e.g., 'today', 'next Monday')")] = None,
        due_date: Annotated[Optional[str], Field(description="Due date in YYYY-MM-DD format")] = None,
        due_datetime: Annotated[Optional[str], Field(description="Due date with time in RFC3339 format")] = None,
        due_lang: Annotated[Optional[str], Field(description="Language for due date parsing")] = None,
        assignee_id: Optional[str] = None,
        duration: Optional[PositiveInt] = None,
        duration_unit: Optional[DurationUnit] = None,
    ) -> str:
        return _render(await gateway.create_task(content, **_given(
            description=description, project_id=project_id, section_id=section_id,
            parent_id=parent_id, order=order, labels=labels, priority=priority,
            due_string=due_string, due_date=due_date, due_datetime=due_datetime,
            due_lang=due_lang, assignee_id=assignee_id, duration=duration,
            duration_unit=duration_unit)))

    @mcp.tool("update_task", description="Update an existing task. Pass an empty assignee_id to unassign the task.")
    async def update_task(
        task_id: Id,
        content: Optional[str] = None,
        description: Optional[str] = None,
        labels: Optional[List[str]] = None,
        priority: Optional[Priority] = None,
        due_string: Optional[str] = None,
        due_date: Optional[str] = None,
        due_datetime: Optional[str] = None,
        due_lang: Optional[str] = None,
        assignee_id: Annotated[Optional[str], Field(description="New assignee user ID, or empty string to unassign")] = None,
        duration: Optional[PositiveInt] = None,
        duration_unit: Optional[DurationUnit] = None,
    ) -> str:
        return _render(await gateway.update_task(task_id, **_given(
            content=content, description=description, labels=labels,
            priority=priority, due_string=due_string, due_date=due_date,
            due_datetime=due_datetime, due_lang=due_lang, assignee_id=assignee_id,
            duration=duration, duration_unit=duration_unit)))

    @mcp.tool("complete_task", description="Mark a task as completed.")
    async def complete_task(task_id: Id) -> str:
        return _render(await gateway.complete_task(task_id))

    @mcp.tool("reopen_task", description="Reopen a previously completed task.")
    async def reopen_task(task_id: Id) -> str:
        return _render(await gateway.reopen_task(task_id))

    @mcp.tool("delete_task", description="Permanently delete a task.")
    async def delete_task(task_id: Id) -> str:
        return _render(await gateway.delete_task(task_id))

    # --- Projects ---

    @mcp.tool("list_projects", description="List all projects in your Todoist account.")
    async def list_projects() -> str:
        return _render(await gateway.list_projects())

    @mcp.tool("get_project", description="Get details of a specific project by its ID.")
    async def get_project(project_id: Id) -> str:
        return _render(await gateway.get_project(project_id))

    @mcp.tool("create_project", description="Create a new project in Todoist.")
    async def create_project(
        name: Annotated[str, Field(min_length=1)],
        parent_id: Annotated[Optional[str], Field(description="Parent project ID to create a sub-project")] = None,
        color: Annotated[Optional[str], Field(description="Project color (e.g., 'red', 'blue', 'green')")] = None,
        is_favorite: Optional[bool] = None,
        view_style: Optional[ViewStyle] = None,
    ) -> str:
        return _render(await gateway.create_project(name, **_given(
            parent_id=parent_id, color=color, is_favorite=is_favorite, view_style=view_style)))

    @mcp.tool("update_project", description="Update an existing project.")
    async def update_project(
        project_id: Id,
        name: Optional[str] = None,
        color: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        view_style: Optional[ViewStyle] = None,
    ) -> str:
        return _render(await gateway.update_project(project_id, **_given(
            name=name, color=color, is_favorite=is_favorite, view_style=view_style)))

    @mcp.tool("archive_project", description="Archive a project (hide it from active view).")
    async def archive_project(project_id: Id) -> str:
        return _render(await gateway.archive_project(project_id))

    @mcp.tool("unarchive_project", description="Unarchive a project (restore it to active view).")
    async def unarchive_project(project_id: Id) -> str:
        return _render(await gateway.unarchive_project(project_id))

    @mcp.tool("delete_project", description="Permanently delete a project and all its tasks.")
    async def delete_project(project_id: Id) -> str:
        return _render(await gateway.delete_project(project_id))

    @mcp.tool("get_project_collaborators", description="Get the list of collaborators for a specific project.")
    async def get_project_collaborators(project_id: Id) -> str:
        return _render(await gateway.get_project_collaborators(project_id))

    # --- Sections ---

    @mcp.tool("list_sections", description="List sections within a project. Returns an empty list if no project is given.")
    async def list_sections(project_id: Optional[str] = None) -> str:
        return _render(await gateway.list_sections(project_id))

    @mcp.tool("get_section", description="Get details of a specific section by its ID.")
    async def get_section(section_id: Id) -> str:
        return _render(await gateway.get_section(section_id))

    @mcp.tool("create_section", description="Create a new section within a project.")
    async def create_section(
        name: Annotated[str, Field(min_length=1)],
        project_id: Id,
        order: Optional[int] = None,
    ) -> str:
        return _render(await gateway.create_section(name, project_id, **_given(order=order)))

    @mcp.tool("update_section", description="Update the name of an existing section.")
    async def update_section(section_id: Id, name: Annotated[str, Field(min_length=1)]) -> str:
        return _render(await gateway.update_section(section_id, name))

    @mcp.tool("delete_section", description="Delete a section and the tasks in it.")
    async def delete_section(section_id: Id) -> str:
        return _render(await gateway.delete_section(section_id))

    # --- Comments ---

    @mcp.tool("list_comments", description="List comments for a specific task or project. Either task_id or project_id is required.")
    async def list_comments(task_id: Optional[str] = None, project_id: Optional[str] = None) -> str:
        return _render(await gateway.list_comments(task_id=task_id, project_id=project_id))

    @mcp.tool("get_comment", description="Get details of a specific comment by its ID.")
    async def get_comment(comment_id: Id) -> str:
        return _render(await gateway.get_comment(comment_id))

    @mcp.tool("create_comment", description="Create a new comment on a task or project. Either task_id or project_id is required.")
    async def create_comment(
        content: Annotated[str, Field(min_length=1)],
        task_id: Optional[str] = None,
        project_id: Optional[str] = None,
        attachment: Optional[Attachment] = None,
    ) -> str:
        return _render(await gateway.create_comment(
            content, task_id=task_id, project_id=project_id,
            attachment=attachment.model_dump(exclude_none=True) if attachment else None))

    @mcp.tool("update_comment", description="Update the content of an existing comment.")
    async def update_comment(comment_id: Id, content: Annotated[str, Field(min_length=1)]) -> str:
        return _render(await gateway.update_comment(comment_id, content))

    @mcp.tool("delete_comment", description="Delete a comment permanently.")
    async def delete_comment(comment_id: Id) -> str:
        return _render(await gateway.delete_comment(comment_id))

    # --- Labels ---

    @mcp.tool("list_labels", description="List all personal labels in your Todoist account.")
    async def list_labels() -> str:
        return _render(await gateway.list_labels())

    @mcp.tool("get_label", description="Get details of a specific label by its ID.")
    async def get_label(label_id: Id) -> str:
        return _render(await gateway.get_label(label_id))

    @mcp.tool("create_label", description="Create a new label for organizing tasks.")
    async def create_label(
        name: Annotated[str, Field(min_length=1)],
        color: Optional[str] = None,
        order: Optional[int] = None,
        is_favorite: Optional[bool] = None,
    ) -> str:
        return _render(await gateway.create_label(name, **_given(
            color=color, order=order, is_favorite=is_favorite)))

    @mcp.tool("update_label", description="Update an existing label.")
    async def update_label(
        label_id: Id,
        name: Optional[str] = None,
        color: Optional[str] = None,
        order: Optional[int] = None,
        is_favorite: Optional[bool] = None,
    ) -> str:
        return _render(await gateway.update_label(label_id, **_given(
            name=name, color=color, order=order, is_favorite=is_favorite)))

    @mcp.tool("delete_label", description="Delete a label (it will be removed from all tasks that use it).")
    async def delete_label(label_id: Id) -> str:
        return _render(await gateway.delete_label(label_id))

    # --- Shared labels ---

    @mcp.tool("get_shared_labels", description="Get labels shared across team workspaces.")
    async def get_shared_labels(
        omit_personal: Annotated[bool, Field(description="Exclude personal labels from results")] = False,
    ) -> str:
        return _render(await gateway.get_shared_labels(omit_personal=omit_personal))

    @mcp.tool("rename_shared_label", description="Rename a shared label across team workspaces.")
    async def rename_shared_label(
        name: Annotated[str, Field(min_length=1)],
        new_name: Annotated[str, Field(min_length=1)],
    ) -> str:
        return _render(await gateway.rename_shared_label(name, new_name))

    @mcp.tool("remove_shared_label", description="Remove a shared label from team workspaces.")
    async def remove_shared_label(name: Annotated[str, Field(min_length=1)]) -> str:
        return _render(await gateway.remove_shared_label(name))

    return mcp


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Todoist MCP server backed by Nango")
    parser.add_argument("--sse", action="store_true",
                        help="Use SSE transport mode (default comes from TODOIST_TRANSPORT)")
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)

    try:
        gateway = asyncio.run(TodoistGateway.connect(settings))
    except TodoistMCPError as e:
        logger.error(f"Failed to initialize Todoist API with Nango: {e}")
        logger.error("Please ensure all Nango environment variables are set correctly:")
        for name in REQUIRED_VARIABLES:
            logger.error(f"- {name}")
        sys.exit(1)

    transport = "sse" if args.sse else settings.TRANSPORT_MODE
    logger.info(f"Todoist MCP Server starting with Nango authentication ({transport})")
    create_server(gateway).run(transport=transport)


# --- Run the server ---
if __name__ == "__main__":
    main()
