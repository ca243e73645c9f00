"""Read-only access to the canonical records that get indexed."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from ai_engine.errors import NotFoundError, ValidationError
from ai_engine.services.clients import ServiceClients

Record = dict[str, Any]


class RecordSource(Protocol):
    """Fetches records of one source type for an organization."""

    async def fetch(self, organization_id: str, source_type: str) -> list[Record]:
        """Return every record of `source_type` owned by the organization."""

    async def fetch_one(self, organization_id: str, source_type: str, source_id: str) -> Record:
        """Return one record; raise `NotFoundError` when it is absent or foreign."""


# Records owned through their project rather than an organization field.
_PROJECT_CHILDREN = frozenset({"task", "milestone", "risk"})
# Listings the services already scope to one organization by path or query.
_SCOPED_LISTINGS = frozenset({"member", "client", "proposal", "wiki"})


class ServiceRecordSource:
    """`RecordSource` backed by the platform's service clients.

    A record is returned only when its organization can be proven: an
    `organizationId` marker, a parent project of the organization, or an
    organization-scoped listing. Anything else is treated as foreign.
    """

    def __init__(self, clients: ServiceClients) -> None:
        self.clients = clients

    async def fetch(self, organization_id: str, source_type: str) -> list[Record]:
        if source_type == "organization":
            return [await self._overview(organization_id)]
        records = await self._list(organization_id, source_type)
        project_ids = None
        if any(r.get("organizationId") is None for r in records):
            project_ids = await self._project_ids(organization_id, source_type)
        return [r for r in records if _owned(r, organization_id, source_type, project_ids)]

    async def fetch_one(self, organization_id: str, source_type: str, source_id: str) -> Record:
        if source_type == "organization":
            if source_id != organization_id:
                raise NotFoundError("Organization not found")
            return await self._overview(organization_id)

        getters = {
            "project": self.clients.projects.get_project,
            "task": self.clients.projects.get_task,
            "team": self.clients.workforce.get_team,
        }
        getter = getters.get(source_type)
        if getter is not None:
            record = await getter(source_id)
        else:
            key = "userId" if source_type == "member" else "id"
            matches = [
                r
                for r in await self._list(organization_id, source_type)
                if str(r.get(key) or r.get("id")) == source_id
            ]
            if not matches:
                raise NotFoundError(f"{source_type} {source_id} not found")
            record = matches[0]

        project_ids = None
        if isinstance(record, dict) and record.get("organizationId") is None:
            project_ids = await self._project_ids(organization_id, source_type)
        if not isinstance(record, dict) or not _owned(
            record, organization_id, source_type, project_ids
        ):
            raise NotFoundError(f"{source_type} {source_id} not found")
        return record

    async def _project_ids(self, organization_id: str, source_type: str) -> set[str] | None:
        if source_type not in _PROJECT_CHILDREN:
            return None
        projects = await self.clients.projects.list_projects(organization_id)
        return {
            str(p.get("id")) for p in projects if _owned(p, organization_id, "project", None)
        }

    async def _list(self, organization_id: str, source_type: str) -> list[Record]:
        c = self.clients
        if source_type == "member":
            return await c.auth.list_members(organization_id)
        if source_type == "project":
            return await c.projects.list_projects(organization_id)
        if source_type == "task":
            return await c.projects.list_tasks(organization_id=organization_id)
        if source_type == "milestone":
            return await c.projects.list_milestones(organization_id=organization_id)
        if source_type == "risk":
            return await c.projects.list_risks(organization_id)
        if source_type == "team":
            return await c.workforce.list_teams(organization_id)
        if source_type == "client":
            return await c.clients.list_clients(organization_id)
        if source_type == "proposal":
            return await c.clients.list_proposals(organization_id)
        if source_type == "document":
            return await c.knowledge.list_documents(organization_id)
        if source_type == "wiki":
            return await c.knowledge.list_wiki_pages(organization_id)
        raise ValidationError(f"Unsupported source type: {source_type}")

    async def _overview(self, organization_id: str) -> Record:
        organization, *lists = await asyncio.gather(
            self.clients.auth.get_organization(organization_id),
            self._list(organization_id, "member"),
            self._list(organization_id, "project"),
            self._list(organization_id, "task"),
            self._list(organization_id, "milestone"),
            self._list(organization_id, "team"),
            self._list(organization_id, "client"),
        )
        members, projects, tasks, milestones, teams, clients = lists
        projects = [p for p in projects if _owned(p, organization_id, "project", None)]
        project_ids = {str(p.get("id")) for p in projects}
        tasks = [t for t in tasks if _owned(t, organization_id, "task", project_ids)]
        milestones = [
            m for m in milestones if _owned(m, organization_id, "milestone", project_ids)
        ]
        teams = [t for t in teams if _owned(t, organization_id, "team", None)]
        clients = [c for c in clients if _owned(c, organization_id, "client", None)]
        return {
            "id": organization_id,
            "organization": organization,
            "members": members,
            "projects": projects,
            "tasks": tasks,
            "milestones": milestones,
            "teams": teams,
            "clients": clients,
        }


def _owned(
    record: Record, organization_id: str, source_type: str, project_ids: set[str] | None
) -> bool:
    owner = record.get("organizationId")
    if owner is not None:
        return str(owner) == organization_id
    if source_type in _PROJECT_CHILDREN:
        project_id = record.get("projectId")
        if project_id is None or project_ids is None:
            return False
        return str(project_id) in project_ids
    return source_type in _SCOPED_LISTINGS
