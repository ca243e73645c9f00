from collections import Counter

import pytest

from ai_engine.agent.catalog import CATEGORY_DESCRIPTIONS, register_catalog
from ai_engine.agent.registry import ToolRegistry
from ai_engine.errors import UpstreamUnavailable
from ai_engine.services.clients import ServiceClients
from ai_engine.types import AuthContext


def _catalog(transports) -> ToolRegistry:
    return register_catalog(ToolRegistry(), ServiceClients.from_transports(transports))


def test_catalog_registers_every_category(make_transports) -> None:
    registry = _catalog(make_transports())

    counts = Counter(tool.category for tool in registry.list_tools())

    assert len(registry.list_tools()) == 35
    assert counts == {
        "projectManagement": 10,
        "clientManagement": 6,
        "workforceManagement": 7,
        "communication": 5,
        "notification": 4,
        "knowledgeHub": 3,
    }
    assert set(CATEGORY_DESCRIPTIONS) == set(counts)
    assert all(tool.description for tool in registry.list_tools())


@pytest.mark.asyncio
async def test_create_project_takes_tenant_from_auth(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        projects={("POST", "/projects"): lambda params, body: {"id": "p-42", **body}}
    )
    registry = _catalog(transports)

    result = await registry.invoke(
        "create_project", {"name": "Website Redesign", "startDate": "2026-01-05"}, auth
    )

    assert result.success
    assert result.entity_id == "p-42"
    _, path, _, body = transports["projects"].calls[0]
    assert path == "/projects"
    assert body == {
        "name": "Website Redesign",
        "status": "planned",
        "startDate": "2026-01-05",
        "organizationId": "org-1",
        "createdById": "user-1",
    }
    assert result.data["message"] == 'Successfully created project "Website Redesign"'


@pytest.mark.asyncio
async def test_model_cannot_choose_the_organization(make_transports, auth: AuthContext) -> None:
    transports = make_transports(projects={("POST", "/projects"): {"id": "p-1"}})
    registry = _catalog(transports)

    result = await registry.invoke(
        "create_project", {"name": "Sneaky", "organizationId": "org-2"}, auth
    )

    assert not result.success
    assert transports["projects"].calls == []


@pytest.mark.asyncio
async def test_foreign_records_look_missing(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        projects={
            ("GET", "/projects/p-9"): {"id": "p-9", "name": "Theirs", "organizationId": "org-2"},
            ("POST", "/tasks"): {"id": "t-1"},
        }
    )
    registry = _catalog(transports)

    fetched = await registry.invoke("get_project", {"projectId": "p-9"}, auth)
    task = await registry.invoke("create_task", {"projectId": "p-9", "title": "Hijack"}, auth)

    assert fetched.not_found and task.not_found
    assert all(method == "GET" for method, *_ in transports["projects"].calls)


@pytest.mark.asyncio
async def test_list_projects_falls_back_to_fuzzy_match(make_transports, auth: AuthContext) -> None:
    projects = [
        {"id": "p-1", "name": "Website Redesign", "status": "in_progress", "budget": 10},
        {"id": "p-2", "name": "Mobile App", "status": "planned"},
    ]
    transports = make_transports(
        projects={("GET", "/projects"): lambda params, _: [] if params.get("search") else projects}
    )
    registry = _catalog(transports)

    result = await registry.invoke("list_projects", {"search": "website launch"}, auth)

    assert result.success
    assert result.data["count"] == 1
    assert result.data["projects"][0]["name"] == "Website Redesign"
    assert "budget" not in result.data["projects"][0]
    assert len(transports["projects"].calls) == 2


@pytest.mark.asyncio
async def test_upstream_failure_becomes_failed_result(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        clients={("GET", "/clients"): UpstreamUnavailable("clients is not available")}
    )
    registry = _catalog(transports)

    result = await registry.invoke("list_clients", {}, auth)

    assert result.success is False
    assert result.not_found is False
    assert "clients is not available" in result.error_message


@pytest.mark.asyncio
async def test_mark_read_requires_recipient(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        notification={
            ("GET", "/notifications"): [{"id": "n-1", "userId": "user-1"}],
            ("PATCH", "/notifications/n-1"): {"id": "n-1", "isRead": True},
            ("PATCH", "/notifications/n-2"): {"id": "n-2", "isRead": True},
        }
    )
    registry = _catalog(transports)

    mine = await registry.invoke("mark_notification_read", {"notificationId": "n-1"}, auth)
    theirs = await registry.invoke("mark_notification_read", {"notificationId": "n-2"}, auth)

    assert mine.success and mine.entity_id == "n-1"
    assert theirs.not_found
    patched = [path for method, path, *_ in transports["notification"].calls if method == "PATCH"]
    assert patched == ["/notifications/n-1"]


@pytest.mark.asyncio
async def test_bulk_notification_reports_count(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        notification={("POST", "/notifications/bulk"): lambda params, body: {"count": 2}}
    )
    registry = _catalog(transports)

    result = await registry.invoke(
        "send_bulk_notification",
        {"userIds": ["user-2", "user-3"], "title": "Standup", "message": "Moved to 10am"},
        auth,
    )

    assert result.data == {"message": "Sent 2 notifications", "count": 2}
    body = transports["notification"].calls[0][3]
    assert body["userIds"] == ["user-2", "user-3"]
    assert body["senderId"] == "user-1"


@pytest.mark.asyncio
async def test_tasks_are_owned_through_their_project(make_transports, auth: AuthContext) -> None:
    transports = make_transports(
        projects={
            ("GET", "/tasks/t-a"): {"id": "t-a", "title": "Ours", "projectId": "p-a"},
            ("GET", "/projects/p-a"): {"id": "p-a", "organizationId": "org-1"},
            ("GET", "/tasks/t-b"): {"id": "t-b", "title": "Theirs", "projectId": "p-b"},
            ("GET", "/projects/p-b"): {"id": "p-b", "organizationId": "org-2"},
            ("GET", "/tasks/t-x"): {"id": "t-x", "title": "Orphan"},
            ("PUT", "/tasks/t-a"): lambda params, body: {"id": "t-a", **body},
            ("PUT", "/tasks/t-b"): lambda params, body: {"id": "t-b", **body},
        }
    )
    registry = _catalog(transports)

    ours = await registry.invoke("update_task", {"taskId": "t-a", "status": "done"}, auth)
    read_theirs = await registry.invoke("get_task", {"taskId": "t-b"}, auth)
    update_theirs = await registry.invoke("update_task", {"taskId": "t-b", "status": "done"}, auth)
    orphan = await registry.invoke("get_task", {"taskId": "t-x"}, auth)

    assert ours.success and ours.entity_id == "t-a"
    assert read_theirs.not_found and update_theirs.not_found and orphan.not_found
    written = [path for method, path, *_ in transports["projects"].calls if method == "PUT"]
    assert written == ["/tasks/t-a"]


@pytest.mark.asyncio
async def test_unmarked_client_needs_the_organization_listing(
    make_transports, auth: AuthContext
) -> None:
    transports = make_transports(
        clients={
            ("GET", "/clients"): [{"id": "c-1", "name": "Globex"}],
            ("GET", "/clients/c-1"): {"id": "c-1", "name": "Globex"},
            ("GET", "/clients/c-9"): {"id": "c-9", "name": "Initech"},
        }
    )
    registry = _catalog(transports)

    listed = await registry.invoke("get_client", {"clientId": "c-1"}, auth)
    unlisted = await registry.invoke("get_client", {"clientId": "c-9"}, auth)

    assert listed.success and listed.data["client"]["name"] == "Globex"
    assert unlisted.not_found
