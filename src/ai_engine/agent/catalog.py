"""Registration of the service-backed tool catalog."""

from __future__ import annotations

from ai_engine.agent.registry import ToolRegistry
from ai_engine.agent.tools import (
    client_management,
    communication,
    knowledge_hub,
    notification,
    project_management,
    workforce,
)
from ai_engine.services.clients import ServiceClients

CATEGORY_DESCRIPTIONS: dict[str, str] = {
    project_management.CATEGORY: "Create and manage projects, tasks and milestones",
    client_management.CATEGORY: "Manage clients and proposals",
    workforce.CATEGORY: "Manage teams, team members and skills",
    communication.CATEGORY: "Send messages, manage channels and post announcements",
    notification.CATEGORY: "Send and manage notifications",
    knowledge_hub.CATEGORY: "Create and search documents and wiki pages",
}


def register_catalog(registry: ToolRegistry, clients: ServiceClients) -> ToolRegistry:
    definitions = [
        *project_management.build_tools(clients.projects),
        *client_management.build_tools(clients.clients),
        *workforce.build_tools(clients.workforce),
        *communication.build_tools(clients.communication),
        *notification.build_tools(clients.notification),
        *knowledge_hub.build_tools(clients.knowledge),
    ]
    for definition in definitions:
        registry.register(definition)
    return registry
