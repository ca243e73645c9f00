"""Typed clients for the CRUD microservices the engine reads from and acts on."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ai_engine.services.transport import ServiceTransport

Record = dict[str, Any]


class ServiceClient:
    """Thin REST-shaped wrapper over a transport."""

    def __init__(self, transport: ServiceTransport) -> None:
        self._transport = transport

    async def _get(self, path: str, **params: Any) -> Any:
        return await self._transport.request("GET", path, params=params)

    async def _list(self, path: str, **params: Any) -> list[Record]:
        body = await self._get(path, **params)
        if isinstance(body, dict):
            # Some services wrap collections as {"data": [...]}.
            body = body.get("data", body.get("items", []))
        return list(body or [])

    async def _post(self, path: str, payload: Mapping[str, Any]) -> Any:
        return await self._transport.request("POST", path, json=dict(payload))

    async def _put(self, path: str, payload: Mapping[str, Any]) -> Any:
        return await self._transport.request("PUT", path, json=dict(payload))

    async def _patch(self, path: str, payload: Mapping[str, Any]) -> Any:
        return await self._transport.request("PATCH", path, json=dict(payload))


class ProjectServiceClient(ServiceClient):
    async def create_project(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/projects", payload)

    async def get_project(self, project_id: str) -> Record:
        return await self._get(f"/projects/{project_id}")

    async def update_project(self, project_id: str, payload: Mapping[str, Any]) -> Record:
        return await self._put(f"/projects/{project_id}", payload)

    async def list_projects(
        self, organization_id: str, *, status: str | None = None, search: str | None = None
    ) -> list[Record]:
        return await self._list(
            "/projects", organizationId=organization_id, status=status, search=search
        )

    async def create_task(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/tasks", payload)

    async def get_task(self, task_id: str) -> Record:
        return await self._get(f"/tasks/{task_id}")

    async def update_task(self, task_id: str, payload: Mapping[str, Any]) -> Record:
        return await self._put(f"/tasks/{task_id}", payload)

    async def list_tasks(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        assignee_id: str | None = None,
        status: str | None = None,
    ) -> list[Record]:
        return await self._list(
            "/tasks",
            organizationId=organization_id,
            projectId=project_id,
            assigneeId=assignee_id,
            status=status,
        )

    async def create_milestone(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/milestones", payload)

    async def list_milestones(
        self, *, project_id: str | None = None, organization_id: str | None = None
    ) -> list[Record]:
        return await self._list(
            "/milestones", projectId=project_id, organizationId=organization_id
        )

    async def list_risks(self, organization_id: str) -> list[Record]:
        return await self._list("/risks", organizationId=organization_id)


class ClientServiceClient(ServiceClient):
    async def create_client(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/clients", payload)

    async def get_client(self, client_id: str) -> Record:
        return await self._get(f"/clients/{client_id}")

    async def update_client(self, client_id: str, payload: Mapping[str, Any]) -> Record:
        return await self._put(f"/clients/{client_id}", payload)

    async def list_clients(
        self, organization_id: str, *, status: str | None = None, search: str | None = None
    ) -> list[Record]:
        return await self._list(
            "/clients", organizationId=organization_id, status=status, search=search
        )

    async def create_proposal(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/proposals", payload)

    async def list_proposals(
        self,
        organization_id: str,
        *,
        client_id: str | None = None,
        status: str | None = None,
    ) -> list[Record]:
        return await self._list(
            "/proposals", organizationId=organization_id, clientId=client_id, status=status
        )


class WorkforceServiceClient(ServiceClient):
    async def create_team(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/teams", payload)

    async def get_team(self, team_id: str) -> Record:
        return await self._get(f"/teams/{team_id}")

    async def list_teams(self, organization_id: str, *, search: str | None = None) -> list[Record]:
        return await self._list("/teams", organizationId=organization_id, search=search)

    async def add_team_member(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/team-members", payload)

    async def get_team_members(self, team_id: str) -> list[Record]:
        return await self._list("/team-members", teamId=team_id)

    async def get_user_skills(self, user_id: str) -> list[Record]:
        return await self._list("/user-skills", userId=user_id)

    async def add_user_skill(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/user-skills", payload)


class CommunicationServiceClient(ServiceClient):
    async def send_message(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/messages", payload)

    async def list_messages(self, channel_id: str, *, limit: int = 50) -> list[Record]:
        return await self._list("/messages", channelId=channel_id, limit=limit)

    async def create_channel(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/channels", payload)

    async def list_channels(
        self, organization_id: str, *, user_id: str | None = None
    ) -> list[Record]:
        return await self._list("/channels", organizationId=organization_id, userId=user_id)

    async def create_announcement(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/announcements", payload)


class NotificationServiceClient(ServiceClient):
    async def send_notification(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/notifications", payload)

    async def list_notifications(self, user_id: str, *, unread_only: bool = False) -> list[Record]:
        return await self._list(
            "/notifications", userId=user_id, unreadOnly=str(unread_only).lower()
        )

    async def mark_read(self, notification_id: str) -> Record:
        return await self._patch(f"/notifications/{notification_id}", {"isRead": True})

    async def send_bulk(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/notifications/bulk", payload)


class KnowledgeServiceClient(ServiceClient):
    async def create_document(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/documents", payload)

    async def search_documents(
        self, organization_id: str, query: str, *, category: str | None = None
    ) -> list[Record]:
        return await self._list(
            "/documents", organizationId=organization_id, search=query, category=category
        )

    async def list_documents(self, organization_id: str) -> list[Record]:
        return await self._list("/documents", organizationId=organization_id)

    async def create_wiki_page(self, payload: Mapping[str, Any]) -> Record:
        return await self._post("/wiki", payload)

    async def list_wiki_pages(self, organization_id: str) -> list[Record]:
        return await self._list("/wiki", organizationId=organization_id)


class AuthServiceClient(ServiceClient):
    async def get_organization(self, organization_id: str) -> Record:
        return await self._get(f"/organizations/{organization_id}")

    async def list_members(self, organization_id: str) -> list[Record]:
        return await self._list(f"/organizations/{organization_id}/members")


@dataclass(slots=True)
class ServiceClients:
    """All downstream clients, built once per process."""

    projects: ProjectServiceClient
    clients: ClientServiceClient
    workforce: WorkforceServiceClient
    communication: CommunicationServiceClient
    notification: NotificationServiceClient
    knowledge: KnowledgeServiceClient
    auth: AuthServiceClient

    @classmethod
    def from_transports(cls, transports: Mapping[str, ServiceTransport]) -> "ServiceClients":
        missing = {
            "projects", "clients", "workforce", "communication",
            "notification", "knowledge", "auth",
        } - set(transports)
        if missing:
            raise ValueError(f"Missing transports for services: {sorted(missing)}")
        return cls(
            projects=ProjectServiceClient(transports["projects"]),
            clients=ClientServiceClient(transports["clients"]),
            workforce=WorkforceServiceClient(transports["workforce"]),
            communication=CommunicationServiceClient(transports["communication"]),
            notification=NotificationServiceClient(transports["notification"]),
            knowledge=KnowledgeServiceClient(transports["knowledge"]),
            auth=AuthServiceClient(transports["auth"]),
        )
