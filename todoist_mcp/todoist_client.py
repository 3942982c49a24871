# todoist_client.py
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

import httpx
import requests
from todoist_api_python.api_async import TodoistAPIAsync

from todoist_mcp.config import Settings
from todoist_mcp.errors import (
    MissingIdentifierError,
    MissingTokenError,
    RemoteApiError,
    TodoistMCPError,
    TransportError,
)
from todoist_mcp.nango_auth import NangoAuth
from todoist_mcp import payloads

# Ensure logger is named correctly for hierarchy
logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of one gateway operation, success or failure."""

    ok: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls, data: Any) -> "OperationResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: Exception) -> "OperationResult":
        return cls(ok=False, error=str(error), error_type=type(error).__name__)


def to_plain(data: Any) -> Any:
    """Turns SDK model dataclasses (or lists of them) into plain dicts."""
    if isinstance(data, list):
        return [to_plain(item) for item in data]
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    return data


class TodoistGateway:
    """
    Maps each tool operation onto one Todoist call.

    Two auth strategies:

    * client strategy: calls go through the long-lived ``TodoistAPIAsync``
      built once with the startup token. Expiry is not re-checked.
    * refreshing strategy: endpoints the SDK does not cover (project
      archive/unarchive, shared labels) are called over raw HTTP, asking
      Nango for a fresh token right before every request.

    Every public operation returns an ``OperationResult``; errors never
    escape.
    """

    def __init__(self, api: TodoistAPIAsync, auth: NangoAuth,
                 api_url: str = "https://api.todoist.com/rest/v2",
                 timeout: float = 30,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api = api
        self.auth = auth
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        logger.info(f"TodoistGateway initialized for {self.api_url}")

    @classmethod
    async def connect(cls, settings: Settings, auth: Optional[NangoAuth] = None,
                      http_client: Optional[httpx.AsyncClient] = None) -> "TodoistGateway":
        """Fetches the startup token and builds the long-lived client around it."""
        auth = auth or NangoAuth.from_settings(settings)
        token = await auth.get_access_token()
        api = TodoistAPIAsync(token)
        logger.info("Todoist API initialized with Nango authentication")
        return cls(api, auth, api_url=settings.TODOIST_API_URL,
                   timeout=settings.REQUEST_TIMEOUT, http_client=http_client)

    # --- Plumbing ---

    async def _run(self, action: str, key: Optional[str],
                   call: Callable[[], Awaitable[Any]]) -> OperationResult:
        try:
            result = await call()
        except MissingTokenError as e:
            logger.error(f"Cannot {action}: Nango connection is not authorized: {e}")
            return OperationResult.failure(e)
        except TodoistMCPError as e:
            logger.error(f"Failed to {action}: {e}", exc_info=False)
            return OperationResult.failure(e)
        except requests.HTTPError as e:
            response = e.response
            status = response.status_code if response is not None else None
            body = response.text if response is not None else None
            logger.error(f"Todoist API error trying to {action}: {e}", exc_info=False)
            return OperationResult.failure(
                RemoteApiError(f"Failed to {action}: {e}", status_code=status, body=body))
        except requests.RequestException as e:
            logger.error(f"Network error trying to {action}: {e}", exc_info=False)
            return OperationResult.failure(TransportError(f"Failed to {action}: {e}"))
        except Exception as e:
            logger.error(f"Unexpected error trying to {action}: {e}", exc_info=True)
            return OperationResult.failure(RuntimeError(f"Failed to {action}: {e}"))

        result = to_plain(result)
        return OperationResult.success({key: result} if key else result)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    async def _request_with_refresh(self, method: str, path: str,
                                    params: Optional[Dict[str, str]] = None,
                                    json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Refreshing strategy: new token from Nango, then one raw request."""
        token = await self.auth.refresh_if_needed()
        headers = {"Authorization": f"Bearer {token}"}
        if json is not None or method != "GET":
            headers["Content-Type"] = "application/json"
        url = f"{self.api_url}{path}"
        try:
            response = await self._send(method, url, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out calling {method} {path}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach Todoist for {method} {path}: {e}") from e
        if not response.is_success:
            raise RemoteApiError(
                f"{method} {path} returned {response.status_code} {response.reason_phrase}",
                status_code=response.status_code, body=response.text)
        return response

    # --- Tasks ---

    async def list_tasks(self, **filters) -> OperationResult:
        query = payloads.build_payload(payloads.TASK_FILTER_FIELDS, filters)
        logger.info(f"Listing tasks with filters: {query}")
        return await self._run("fetch tasks", "tasks", lambda: self.api.get_tasks(**query))

    async def get_task(self, task_id: str) -> OperationResult:
        logger.info(f"Fetching task {task_id}")
        return await self._run("fetch task", "task", lambda: self.api.get_task(task_id))

    async def create_task(self, content: str, **fields) -> OperationResult:
        args = payloads.build_payload(payloads.TASK_CREATE_FIELDS, fields, with_due_date=True)
        logger.info(f"Creating task with fields: {sorted(args)}")
        return await self._run("create task", "task",
                               lambda: self.api.add_task(content, **args))

    async def update_task(self, task_id: str, **changes) -> OperationResult:
        args = payloads.build_payload(payloads.TASK_UPDATE_FIELDS, changes, with_due_date=True)
        logger.info(f"Updating task {task_id} fields: {sorted(args)}")
        return await self._run("update task", "success",
                               lambda: self.api.update_task(task_id, **args))

    async def complete_task(self, task_id: str) -> OperationResult:
        logger.info(f"Completing task {task_id}")
        return await self._run("complete task", "success", lambda: self.api.close_task(task_id))

    async def reopen_task(self, task_id: str) -> OperationResult:
        logger.info(f"Reopening task {task_id}")
        return await self._run("reopen task", "success", lambda: self.api.reopen_task(task_id))

    async def delete_task(self, task_id: str) -> OperationResult:
        logger.warning(f"Deleting task {task_id}")
        return await self._run("delete task", "success", lambda: self.api.delete_task(task_id))

    # --- Projects ---

    async def list_projects(self) -> OperationResult:
        logger.info("Listing projects")
        return await self._run("fetch projects", "projects", self.api.get_projects)

    async def get_project(self, project_id: str) -> OperationResult:
        logger.info(f"Fetching project {project_id}")
        return await self._run("fetch project", "project",
                               lambda: self.api.get_project(project_id))

    async def create_project(self, name: str, **fields) -> OperationResult:
        args = payloads.build_payload(payloads.PROJECT_CREATE_FIELDS, fields)
        logger.info(f"Creating project '{name}'")
        return await self._run("create project", "project",
                               lambda: self.api.add_project(name, **args))

    async def update_project(self, project_id: str, **changes) -> OperationResult:
        args = payloads.build_payload(payloads.PROJECT_UPDATE_FIELDS, changes)
        logger.info(f"Updating project {project_id} fields: {sorted(args)}")
        return await self._run("update project", "success",
                               lambda: self.api.update_project(project_id, **args))

    async def archive_project(self, project_id: str) -> OperationResult:
        logger.info(f"Archiving project {project_id}")

        async def call():
            await self._request_with_refresh("POST", f"/projects/{project_id}/archive")
            return True

        return await self._run("archive project", "success", call)

    async def unarchive_project(self, project_id: str) -> OperationResult:
        logger.info(f"Unarchiving project {project_id}")

        async def call():
            await self._request_with_refresh("POST", f"/projects/{project_id}/unarchive")
            return True

        return await self._run("unarchive project", "success", call)

    async def delete_project(self, project_id: str) -> OperationResult:
        logger.warning(f"Deleting project {project_id} and all its tasks")
        return await self._run("delete project", "success",
                               lambda: self.api.delete_project(project_id))

    async def get_project_collaborators(self, project_id: str) -> OperationResult:
        logger.info(f"Fetching collaborators for project {project_id}")
        return await self._run("fetch project collaborators", "collaborators",
                               lambda: self.api.get_collaborators(project_id))

    # --- Sections ---

    async def list_sections(self, project_id: Optional[str] = None) -> OperationResult:
        if not project_id:
            logger.info("No project given for list_sections, returning no sections")
            return OperationResult.success({"sections": []})
        logger.info(f"Listing sections for project {project_id}")
        return await self._run("fetch sections", "sections",
                               lambda: self.api.get_sections(project_id=project_id))

    async def get_section(self, section_id: str) -> OperationResult:
        logger.info(f"Fetching section {section_id}")
        return await self._run("fetch section", "section",
                               lambda: self.api.get_section(section_id))

    async def create_section(self, name: str, project_id: str, **fields) -> OperationResult:
        args = payloads.build_payload(payloads.SECTION_CREATE_FIELDS, fields)
        logger.info(f"Creating section '{name}' in project {project_id}")
        return await self._run("create section", "section",
                               lambda: self.api.add_section(name, project_id, **args))

    async def update_section(self, section_id: str, name: str) -> OperationResult:
        logger.info(f"Renaming section {section_id}")
        return await self._run("update section", "success",
                               lambda: self.api.update_section(section_id, name))

    async def delete_section(self, section_id: str) -> OperationResult:
        logger.warning(f"Deleting section {section_id}")
        return await self._run("delete section", "success",
                               lambda: self.api.delete_section(section_id))

    # --- Comments ---

    @staticmethod
    def _comment_target(task_id: Optional[str], project_id: Optional[str]) -> Dict[str, str]:
        if task_id:
            return {"task_id": task_id}
        if project_id:
            return {"project_id": project_id}
        raise MissingIdentifierError("Either task_id or project_id is required")

    async def list_comments(self, task_id: Optional[str] = None,
                            project_id: Optional[str] = None) -> OperationResult:
        try:
            target = self._comment_target(task_id, project_id)
        except MissingIdentifierError as e:
            logger.warning(f"list_comments rejected: {e}")
            return OperationResult.failure(e)
        logger.info(f"Listing comments for {target}")
        return await self._run("fetch comments", "comments",
                               lambda: self.api.get_comments(**target))

    async def get_comment(self, comment_id: str) -> OperationResult:
        logger.info(f"Fetching comment {comment_id}")
        return await self._run("fetch comment", "comment",
                               lambda: self.api.get_comment(comment_id))

    async def create_comment(self, content: str, task_id: Optional[str] = None,
                             project_id: Optional[str] = None,
                             attachment: Optional[Dict[str, Any]] = None) -> OperationResult:
        try:
            args = self._comment_target(task_id, project_id)
        except MissingIdentifierError as e:
            logger.warning(f"create_comment rejected: {e}")
            return OperationResult.failure(e)
        if attachment:
            if not attachment.get("file_url"):
                logger.warning("create_comment rejected: attachment has no file_url")
                return OperationResult.failure(ValueError("Attachment requires file_url"))
            args["attachment"] = payloads.build_payload(
                payloads.ATTACHMENT_FIELDS, attachment,
                base={"file_url": attachment["file_url"]})
        logger.info(f"Creating comment on {args.get('task_id') or args.get('project_id')}")
        return await self._run("create comment", "comment",
                               lambda: self.api.add_comment(content, **args))

    async def update_comment(self, comment_id: str, content: str) -> OperationResult:
        logger.info(f"Updating comment {comment_id}")
        return await self._run("update comment", "success",
                               lambda: self.api.update_comment(comment_id, content))

    async def delete_comment(self, comment_id: str) -> OperationResult:
        logger.warning(f"Deleting comment {comment_id}")
        return await self._run("delete comment", "success",
                               lambda: self.api.delete_comment(comment_id))

    # --- Labels ---

    async def list_labels(self) -> OperationResult:
        logger.info("Listing labels")
        return await self._run("fetch labels", "labels", self.api.get_labels)

    async def get_label(self, label_id: str) -> OperationResult:
        logger.info(f"Fetching label {label_id}")
        return await self._run("fetch label", "label", lambda: self.api.get_label(label_id))

    async def create_label(self, name: str, **fields) -> OperationResult:
        args = payloads.build_payload(payloads.LABEL_CREATE_FIELDS, fields)
        logger.info(f"Creating label '{name}'")
        return await self._run("create label", "label",
                               lambda: self.api.add_label(name, **args))

    async def update_label(self, label_id: str, **changes) -> OperationResult:
        args = payloads.build_payload(payloads.LABEL_UPDATE_FIELDS, changes)
        logger.info(f"Updating label {label_id} fields: {sorted(args)}")
        return await self._run("update label", "success",
                               lambda: self.api.update_label(label_id, **args))

    async def delete_label(self, label_id: str) -> OperationResult:
        logger.warning(f"Deleting label {label_id}")
        return await self._run("delete label", "success",
                               lambda: self.api.delete_label(label_id))

    # --- Shared labels ---

    async def get_shared_labels(self, omit_personal: bool = False) -> OperationResult:
        params = {"omit_personal": "true"} if omit_personal else None
        logger.info(f"Listing shared labels (omit_personal={omit_personal})")

        async def call() -> List[str]:
            response = await self._request_with_refresh("GET", "/labels/shared", params=params)
            return response.json()

        return await self._run("get shared labels", "labels", call)

    async def rename_shared_label(self, name: str, new_name: str) -> OperationResult:
        logger.info(f"Renaming shared label '{name}' to '{new_name}'")

        async def call():
            await self._request_with_refresh(
                "POST", "/labels/shared/rename", json={"name": name, "new_name": new_name})
            return True

        return await self._run("rename shared label", "success", call)

    async def remove_shared_label(self, name: str) -> OperationResult:
        logger.warning(f"Removing shared label '{name}'")

        async def call():
            await self._request_with_refresh("POST", "/labels/shared/remove", json={"name": name})
            return True

        return await self._run("remove shared label", "success", call)
