"""Plain-text renderings of platform records, one renderer per source type."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from ai_engine.types import RenderedDocument, Scalar

Record = dict[str, Any]
Renderer = Callable[[str, Record], RenderedDocument]

_DONE_TASK = {"done", "completed"}
_OPEN_PROJECT = {"active", "in_progress"}
_PENDING_PROJECT = {"on_hold", "pending", "planned"}


def _metadata(**values: Any) -> dict[str, Scalar]:
    return {
        key: value
        for key, value in values.items()
        if isinstance(value, (str, int, float, bool)) and value != ""
    }


def _lines(*parts: str | None) -> str:
    return "\n".join(part for part in parts if part)


def _field(label: str, value: Any) -> str | None:
    if value in (None, "", []):
        return None
    return f"{label}: {value}"


def _parse_date(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _person(record: Record) -> str:
    user = record.get("user") if isinstance(record.get("user"), dict) else record
    name = " ".join(
        part for part in (user.get("firstName"), user.get("lastName")) if part
    )
    return name or str(user.get("name") or user.get("email") or record.get("userId") or "")


def render_member(organization_id: str, record: Record) -> RenderedDocument:
    name = _person(record)
    user = record.get("user") if isinstance(record.get("user"), dict) else record
    role = record.get("roleName") or record.get("role")
    if isinstance(role, dict):
        role = role.get("name")
    text = _lines(
        f"Team Member: {name}",
        f"Organization member {name}"
        + (f" ({user.get('email')})" if user.get("email") else "")
        + (f" with role {role}" if role else "")
        + ".",
        _field("Joined", record.get("joinedAt")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="member",
        source_id=str(record.get("userId") or record["id"]),
        title=f"Team Member: {name}",
        text=text,
        metadata=_metadata(name=name, email=user.get("email"), role=role),
    )


def render_project(organization_id: str, record: Record) -> RenderedDocument:
    progress = record.get("progress")
    text = _lines(
        f"Project: {record.get('name')}",
        _field("Status", record.get("status")),
        _field("Progress", f"{progress}%" if progress is not None else None),
        _field("Start date", record.get("startDate")),
        _field("End date", record.get("endDate")),
        _field("Budget", record.get("budget")),
        _field("Description", record.get("description")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="project",
        source_id=str(record["id"]),
        title=str(record.get("name") or ""),
        text=text,
        metadata=_metadata(
            status=record.get("status"),
            progress=record.get("progress"),
            startDate=record.get("startDate"),
            endDate=record.get("endDate"),
            managerId=record.get("managerId"),
        ),
    )


def render_task(organization_id: str, record: Record) -> RenderedDocument:
    project = record.get("project") if isinstance(record.get("project"), dict) else {}
    assignee = record.get("assignee") if isinstance(record.get("assignee"), dict) else None
    text = _lines(
        f"Task: {record.get('title')}",
        _field("Project", project.get("name")),
        _field("Status", record.get("status")),
        _field("Priority", record.get("priority")),
        _field("Due date", record.get("dueDate")),
        _field("Assignee", _person(assignee) if assignee else record.get("assigneeId")),
        _field("Description", record.get("description")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="task",
        source_id=str(record["id"]),
        title=str(record.get("title") or ""),
        text=text,
        metadata=_metadata(
            status=record.get("status"),
            priority=record.get("priority"),
            dueDate=record.get("dueDate"),
            projectId=record.get("projectId"),
            assigneeId=record.get("assigneeId"),
        ),
    )


def render_milestone(organization_id: str, record: Record) -> RenderedDocument:
    title = str(record.get("title") or record.get("name") or "")
    text = _lines(
        f"Milestone: {title}",
        _field("Status", record.get("status")),
        _field("Due date", record.get("dueDate")),
        _field("Description", record.get("description")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="milestone",
        source_id=str(record["id"]),
        title=title,
        text=text,
        metadata=_metadata(
            status=record.get("status"),
            dueDate=record.get("dueDate"),
            projectId=record.get("projectId"),
        ),
    )


def render_team(organization_id: str, record: Record) -> RenderedDocument:
    text = _lines(
        f"Team: {record.get('name')}",
        _field("Members", record.get("memberCount")),
        _field("Description", record.get("description")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="team",
        source_id=str(record["id"]),
        title=str(record.get("name") or ""),
        text=text,
        metadata=_metadata(leadId=record.get("leadId"), memberCount=record.get("memberCount")),
    )


def render_client(organization_id: str, record: Record) -> RenderedDocument:
    name = record.get("name")
    summary = f"Client: {name}"
    if record.get("company"):
        summary += f" from {record['company']}"
    if record.get("industry"):
        summary += f" ({record['industry']} industry)"
    text = _lines(
        summary,
        _field("Status", record.get("status")),
        _field("Email", record.get("email")),
        _field("Phone", record.get("phone")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="client",
        source_id=str(record["id"]),
        title=f"Client: {name}",
        text=text,
        metadata=_metadata(
            company=record.get("company"),
            industry=record.get("industry"),
            status=record.get("status"),
        ),
    )


def render_proposal(organization_id: str, record: Record) -> RenderedDocument:
    client = record.get("client") if isinstance(record.get("client"), dict) else {}
    client_name = client.get("name") or record.get("clientName") or record.get("clientId")
    body = record.get("content") or record.get("description")
    text = _lines(
        f'Proposal "{record.get("title")}" for client {client_name}',
        _field("Status", record.get("status")),
        _field("Amount", record.get("amount")),
        _field("Valid until", record.get("validUntil")),
        f"\n{body}" if body else None,
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="proposal",
        source_id=str(record["id"]),
        title=f"Proposal: {record.get('title')}",
        text=text,
        metadata=_metadata(
            status=record.get("status"),
            clientId=record.get("clientId"),
            amount=record.get("amount"),
        ),
    )


def render_document(organization_id: str, record: Record) -> RenderedDocument:
    title = str(record.get("title") or record.get("name") or "")
    text = _lines(
        f"Document: {title}",
        _field("Category", record.get("category")),
        _field("URL", record.get("url")),
        f"\n{record['content']}" if record.get("content") else None,
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="document",
        source_id=str(record["id"]),
        title=title,
        text=text,
        metadata=_metadata(category=record.get("category"), url=record.get("url")),
    )


def render_wiki(organization_id: str, record: Record) -> RenderedDocument:
    title = str(record.get("title") or "")
    body = record.get("content")
    text = _lines(f"Wiki page: {title}", f"\n{body}" if body else None)
    return RenderedDocument(
        organization_id=organization_id,
        source_type="wiki",
        source_id=str(record["id"]),
        title=title,
        text=text,
        metadata=_metadata(parentId=record.get("parentId")),
    )


def render_risk(organization_id: str, record: Record) -> RenderedDocument:
    description = str(record.get("description") or "")
    project = record.get("project") if isinstance(record.get("project"), dict) else {}
    project_name = project.get("name") or record.get("projectName") or record.get("projectId")
    short = description[:50] + ("..." if len(description) > 50 else "")
    text = _lines(
        f"Risk for project {project_name}: {description}",
        _field("Severity", record.get("severity")),
        _field("Probability", record.get("probability")),
        _field("Status", record.get("status")),
        _field("Mitigation Plan", record.get("mitigationPlan")),
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="risk",
        source_id=str(record["id"]),
        title=f"Risk: {short}",
        text=text,
        metadata=_metadata(
            severity=record.get("severity"),
            status=record.get("status"),
            projectId=record.get("projectId"),
        ),
    )


def render_overview(
    organization_id: str, record: Record, *, now: datetime | None = None
) -> RenderedDocument:
    """Render organization statistics computed from the listed records.

    `record` carries the organization plus its `members`, `projects`,
    `tasks`, `milestones`, `teams` and `clients` lists.
    """

    now = now or datetime.now(timezone.utc)
    organization = record.get("organization") or {}
    name = organization.get("name") or organization_id
    projects = list(record.get("projects") or [])
    tasks = list(record.get("tasks") or [])
    milestones = list(record.get("milestones") or [])
    project_names = {str(p.get("id")): p.get("name") for p in projects}

    def _overdue(item: Record, done: Iterable[str]) -> bool:
        due = _parse_date(item.get("dueDate"))
        return due is not None and due < now and item.get("status") not in done

    stats = {
        "memberCount": len(record.get("members") or []),
        "teamCount": len(record.get("teams") or []),
        "clientCount": len(record.get("clients") or []),
        "projectCount": len(projects),
        "activeProjects": sum(p.get("status") in _OPEN_PROJECT for p in projects),
        "completedProjects": sum(p.get("status") == "completed" for p in projects),
        "pendingProjects": sum(p.get("status") in _PENDING_PROJECT for p in projects),
        "taskCount": len(tasks),
        "todoTasks": sum(t.get("status") in {"todo", "pending"} for t in tasks),
        "inProgressTasks": sum(t.get("status") == "in_progress" for t in tasks),
        "completedTasks": sum(t.get("status") in _DONE_TASK for t in tasks),
        "overdueTasks": sum(_overdue(t, _DONE_TASK) for t in tasks),
        "milestoneCount": len(milestones),
        "completedMilestones": sum(m.get("status") == "completed" for m in milestones),
        "overdueMilestones": sum(_overdue(m, {"completed"}) for m in milestones),
    }

    horizon = now + timedelta(days=7)
    upcoming = sorted(
        (
            (due, task)
            for task in tasks
            if (due := _parse_date(task.get("dueDate"))) is not None
            and now <= due <= horizon
            and task.get("status") not in _DONE_TASK
        ),
        key=lambda pair: pair[0],
    )[:10]
    deadline_lines = [
        f"- {task.get('title')} ({project_names.get(str(task.get('projectId')), 'no project')})"
        f" - Due: {due.date().isoformat()}"
        + (f" [{task['priority']}]" if task.get("priority") else "")
        for due, task in upcoming
    ] or ["No upcoming deadlines in the next 7 days."]

    text = "\n".join(
        [
            f"Organization: {name}",
            *([f"Slug: {organization['slug']}"] if organization.get("slug") else []),
            "",
            "=== ORGANIZATION STATISTICS ===",
            "",
            "Team & Workforce:",
            f"- Total Members: {stats['memberCount']}",
            f"- Teams: {stats['teamCount']}",
            f"- Clients: {stats['clientCount']}",
            "",
            "Projects Overview:",
            f"- Total Projects: {stats['projectCount']}",
            f"- Active Projects: {stats['activeProjects']}",
            f"- Completed Projects: {stats['completedProjects']}",
            f"- Pending/On Hold: {stats['pendingProjects']}",
            "",
            "Tasks Overview:",
            f"- Total Tasks: {stats['taskCount']}",
            f"- To Do: {stats['todoTasks']}",
            f"- In Progress: {stats['inProgressTasks']}",
            f"- Completed: {stats['completedTasks']}",
            f"- Overdue Tasks: {stats['overdueTasks']}",
            "",
            "Milestones:",
            f"- Total Milestones: {stats['milestoneCount']}",
            f"- Completed: {stats['completedMilestones']}",
            f"- Overdue: {stats['overdueMilestones']}",
            "",
            "=== UPCOMING DEADLINES (Next 7 Days) ===",
            *deadline_lines,
        ]
    )
    return RenderedDocument(
        organization_id=organization_id,
        source_type="organization",
        source_id=organization_id,
        title=f"{name} - Organization Overview and Statistics",
        text=text,
        metadata=_metadata(name=name, **stats),
    )


RENDERERS: dict[str, Renderer] = {
    "organization": render_overview,
    "member": render_member,
    "project": render_project,
    "task": render_task,
    "milestone": render_milestone,
    "team": render_team,
    "client": render_client,
    "proposal": render_proposal,
    "document": render_document,
    "wiki": render_wiki,
    "risk": render_risk,
}

SOURCE_TYPES: tuple[str, ...] = tuple(RENDERERS)
