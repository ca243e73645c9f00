"""Project, task and milestone tools."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import (
    ToolArgs,
    created,
    ensure_owned,
    entity_id_of,
    is_marked,
    listed,
)
from ai_engine.errors import NotFoundError
from ai_engine.services.clients import ProjectServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "projectManagement"

ProjectStatus = Literal["planned", "in_progress", "on_hold", "completed", "cancelled"]
TaskStatus = Literal["todo", "in_progress", "in_review", "done", "blocked"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
MilestoneStatus = Literal["pending", "in_progress", "completed", "missed"]

_PROJECT_FIELDS = ("id", "name", "description", "status", "progress", "startDate", "endDate")


class CreateProjectInput(ToolArgs):
    name: str = Field(min_length=1, description="The name of the project")
    description: str | None = Field(default=None, description="A description of the project")
    status: ProjectStatus = Field(default="planned", description="The initial status")
    start_date: str | None = Field(default=None, description="Start date (YYYY-MM-DD)")
    end_date: str | None = Field(default=None, description="End date (YYYY-MM-DD)")
    budget: float | None = Field(default=None, ge=0, description="The project budget")
    manager_id: str | None = Field(default=None, description="ID of the project manager")
    client_id: str | None = Field(default=None, description="ID of the client")


class GetProjectInput(ToolArgs):
    project_id: str = Field(min_length=1, description="The ID of the project")


class UpdateProjectInput(ToolArgs):
    project_id: str = Field(min_length=1, description="The ID of the project to update")
    name: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    start_date: str | None = None
    end_date: str | None = None
    budget: float | None = Field(default=None, ge=0)
    progress: float | None = Field(default=None, ge=0, le=100, description="Progress 0-100")
    manager_id: str | None = None


class ListProjectsInput(ToolArgs):
    status: ProjectStatus | None = Field(default=None, description="Filter by status")
    search: str | None = Field(
        default=None, description="Case-insensitive partial match on project name"
    )


class CreateTaskInput(ToolArgs):
    project_id: str = Field(min_length=1, description="The project to add the task to")
    title: str = Field(min_length=1, description="The title of the task")
    description: str | None = None
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    due_date: str | None = Field(default=None, description="Due date (YYYY-MM-DD)")
    assignee_id: str | None = Field(default=None, description="User to assign the task to")
    estimated_hours: float | None = Field(default=None, ge=0)


class GetTaskInput(ToolArgs):
    task_id: str = Field(min_length=1)


class UpdateTaskInput(ToolArgs):
    task_id: str = Field(min_length=1, description="The ID of the task to update")
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: str | None = None
    assignee_id: str | None = Field(default=None, description="New assignee ID")
    estimated_hours: float | None = Field(default=None, ge=0)
    actual_hours: float | None = Field(default=None, ge=0)


class ListTasksInput(ToolArgs):
    project_id: str | None = None
    assignee_id: str | None = None
    status: TaskStatus | None = None


class CreateMilestoneInput(ToolArgs):
    project_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    due_date: str | None = None
    status: MilestoneStatus = "pending"


class ListMilestonesInput(ToolArgs):
    project_id: str = Field(min_length=1)


def build_tools(client: ProjectServiceClient) -> list[ToolDefinition]:
    async def _owned_task(task_id: str, auth: AuthContext) -> Any:
        task = await client.get_task(task_id)
        if is_marked(task) or not isinstance(task, dict) or not task.get("projectId"):
            return ensure_owned(task, auth, "Task")
        # Tasks belong to an organization through their project.
        try:
            project = await client.get_project(str(task["projectId"]))
        except NotFoundError:
            raise NotFoundError("Task not found") from None
        ensure_owned(project, auth, "Task")
        return task

    async def _create_project(args: CreateProjectInput, auth: AuthContext) -> ToolResult:
        record = await client.create_project(
            args.payload(organization_id=auth.organization_id, created_by_id=auth.user_id)
        )
        return created(record, "project", f'Successfully created project "{args.name}"')

    async def _get_project(args: GetProjectInput, auth: AuthContext) -> ToolResult:
        record = ensure_owned(await client.get_project(args.project_id), auth, "Project")
        return ToolResult.ok({"project": record}, entity_id=args.project_id)

    async def _update_project(args: UpdateProjectInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_project(args.project_id), auth, "Project")
        updates = args.model_dump(by_alias=True, exclude_none=True, exclude={"project_id"})
        record = await client.update_project(args.project_id, updates)
        return ToolResult.ok(
            {"message": "Successfully updated project", "project": record},
            entity_id=args.project_id,
        )

    async def _list_projects(args: ListProjectsInput, auth: AuthContext) -> ToolResult:
        projects = await client.list_projects(
            auth.organization_id, status=args.status, search=args.search
        )
        if args.search and not projects:
            everything = await client.list_projects(auth.organization_id, status=args.status)
            projects = _fuzzy_match(everything, args.search)
        return listed(projects, "projects", _PROJECT_FIELDS)

    async def _create_task(args: CreateTaskInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_project(args.project_id), auth, "Project")
        record = await client.create_task(args.payload(created_by_id=auth.user_id))
        return created(record, "task", f'Successfully created task "{args.title}"')

    async def _get_task(args: GetTaskInput, auth: AuthContext) -> ToolResult:
        record = await _owned_task(args.task_id, auth)
        return ToolResult.ok({"task": record}, entity_id=args.task_id)

    async def _update_task(args: UpdateTaskInput, auth: AuthContext) -> ToolResult:
        await _owned_task(args.task_id, auth)
        updates = args.model_dump(by_alias=True, exclude_none=True, exclude={"task_id"})
        record = await client.update_task(args.task_id, updates)
        return ToolResult.ok(
            {"message": "Successfully updated task", "task": record},
            entity_id=entity_id_of(record) or args.task_id,
        )

    async def _list_tasks(args: ListTasksInput, auth: AuthContext) -> ToolResult:
        tasks = await client.list_tasks(
            organization_id=auth.organization_id,
            project_id=args.project_id,
            assignee_id=args.assignee_id,
            status=args.status,
        )
        return listed(tasks, "tasks")

    async def _create_milestone(args: CreateMilestoneInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_project(args.project_id), auth, "Project")
        record = await client.create_milestone(args.payload())
        return created(record, "milestone", f'Successfully created milestone "{args.name}"')

    async def _list_milestones(args: ListMilestonesInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_project(args.project_id), auth, "Project")
        milestones = await client.list_milestones(project_id=args.project_id)
        return listed(milestones, "milestones")

    return [
        ToolDefinition(
            name="create_project",
            category=CATEGORY,
            description=(
                "Create a new project in the organization. Use this when the user asks "
                "to create, add, or start a new project."
            ),
            args_schema=CreateProjectInput,
            handler=_create_project,
            mutates_data=True,
        ),
        ToolDefinition(
            name="get_project",
            category=CATEGORY,
            description="Get details of a specific project by its ID.",
            args_schema=GetProjectInput,
            handler=_get_project,
        ),
        ToolDefinition(
            name="update_project",
            category=CATEGORY,
            description="Update an existing project's details, status, or progress.",
            args_schema=UpdateProjectInput,
            handler=_update_project,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_projects",
            category=CATEGORY,
            description=(
                "List projects in the organization. Try without a search term first; "
                "search is case-insensitive and matches partial names."
            ),
            args_schema=ListProjectsInput,
            handler=_list_projects,
        ),
        ToolDefinition(
            name="create_task",
            category=CATEGORY,
            description=(
                "Create a new task within a project. Use this when the user asks to add, "
                "create, or assign a new task."
            ),
            args_schema=CreateTaskInput,
            handler=_create_task,
            mutates_data=True,
        ),
        ToolDefinition(
            name="get_task",
            category=CATEGORY,
            description="Get details of a specific task by its ID.",
            args_schema=GetTaskInput,
            handler=_get_task,
        ),
        ToolDefinition(
            name="update_task",
            category=CATEGORY,
            description="Update a task: status, priority, due date or assignee (reassignment).",
            args_schema=UpdateTaskInput,
            handler=_update_task,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_tasks",
            category=CATEGORY,
            description="List tasks, optionally filtered by project, assignee or status.",
            args_schema=ListTasksInput,
            handler=_list_tasks,
        ),
        ToolDefinition(
            name="create_milestone",
            category=CATEGORY,
            description="Create a milestone for a project.",
            args_schema=CreateMilestoneInput,
            handler=_create_milestone,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_milestones",
            category=CATEGORY,
            description="List the milestones of a project.",
            args_schema=ListMilestonesInput,
            handler=_list_milestones,
        ),
    ]


def _fuzzy_match(projects: list[dict], search: str) -> list[dict]:
    needle = search.lower()
    words = needle.split()
    matches = []
    for project in projects:
        name = str(project.get("name") or "").lower()
        description = str(project.get("description") or "").lower()
        if needle in name or needle in description or any(word in name for word in words):
            matches.append(project)
    return matches
