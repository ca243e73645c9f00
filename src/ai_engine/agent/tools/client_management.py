"""Client and proposal tools."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import ToolArgs, created, ensure_owned, is_marked, listed
from ai_engine.errors import NotFoundError
from ai_engine.services.clients import ClientServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "clientManagement"

ClientStatus = Literal["lead", "active", "inactive", "churned"]
ProposalStatus = Literal["draft", "sent", "accepted", "rejected"]


class CreateClientInput(ToolArgs):
    name: str = Field(min_length=1, description="The name of the client")
    company: str | None = Field(default=None, description="Company name")
    email: str | None = Field(default=None, description="Contact email")
    phone: str | None = None
    industry: str | None = None
    status: ClientStatus = "active"


class GetClientInput(ToolArgs):
    client_id: str = Field(min_length=1)


class UpdateClientInput(ToolArgs):
    client_id: str = Field(min_length=1, description="The ID of the client to update")
    name: str | None = None
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    industry: str | None = None
    status: ClientStatus | None = None


class ListClientsInput(ToolArgs):
    status: ClientStatus | None = None
    search: str | None = Field(default=None, description="Partial match on client name")


class CreateProposalInput(ToolArgs):
    client_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None
    amount: float | None = Field(default=None, ge=0)
    valid_until: str | None = Field(default=None, description="Expiry date (YYYY-MM-DD)")
    status: ProposalStatus = "draft"


class ListProposalsInput(ToolArgs):
    client_id: str | None = None
    status: ProposalStatus | None = None


def build_tools(client: ClientServiceClient) -> list[ToolDefinition]:
    async def _owned_client(client_id: str, auth: AuthContext) -> Any:
        record = await client.get_client(client_id)
        if is_marked(record):
            return ensure_owned(record, auth, "Client")
        # Unmarked clients are owned when the organization's listing includes them.
        listing = await client.list_clients(auth.organization_id)
        if any(str(item.get("id")) == client_id for item in listing):
            return record
        raise NotFoundError("Client not found")

    async def _create_client(args: CreateClientInput, auth: AuthContext) -> ToolResult:
        record = await client.create_client(args.payload(organization_id=auth.organization_id))
        return created(record, "client", f'Successfully created client "{args.name}"')

    async def _get_client(args: GetClientInput, auth: AuthContext) -> ToolResult:
        record = await _owned_client(args.client_id, auth)
        return ToolResult.ok({"client": record}, entity_id=args.client_id)

    async def _update_client(args: UpdateClientInput, auth: AuthContext) -> ToolResult:
        await _owned_client(args.client_id, auth)
        updates = args.model_dump(by_alias=True, exclude_none=True, exclude={"client_id"})
        record = await client.update_client(args.client_id, updates)
        return ToolResult.ok(
            {"message": "Successfully updated client", "client": record},
            entity_id=args.client_id,
        )

    async def _list_clients(args: ListClientsInput, auth: AuthContext) -> ToolResult:
        clients = await client.list_clients(
            auth.organization_id, status=args.status, search=args.search
        )
        return listed(clients, "clients")

    async def _create_proposal(args: CreateProposalInput, auth: AuthContext) -> ToolResult:
        await _owned_client(args.client_id, auth)
        record = await client.create_proposal(
            args.payload(organization_id=auth.organization_id, created_by_id=auth.user_id)
        )
        return created(record, "proposal", f'Successfully created proposal "{args.title}"')

    async def _list_proposals(args: ListProposalsInput, auth: AuthContext) -> ToolResult:
        proposals = await client.list_proposals(
            auth.organization_id, client_id=args.client_id, status=args.status
        )
        return listed(proposals, "proposals")

    return [
        ToolDefinition(
            name="create_client",
            category=CATEGORY,
            description="Create a new client record for the organization.",
            args_schema=CreateClientInput,
            handler=_create_client,
            mutates_data=True,
        ),
        ToolDefinition(
            name="get_client",
            category=CATEGORY,
            description="Get details of a specific client by its ID.",
            args_schema=GetClientInput,
            handler=_get_client,
        ),
        ToolDefinition(
            name="update_client",
            category=CATEGORY,
            description="Update a client's contact details or status.",
            args_schema=UpdateClientInput,
            handler=_update_client,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_clients",
            category=CATEGORY,
            description="List clients, optionally filtered by status or name.",
            args_schema=ListClientsInput,
            handler=_list_clients,
        ),
        ToolDefinition(
            name="create_proposal",
            category=CATEGORY,
            description="Create a proposal for a client.",
            args_schema=CreateProposalInput,
            handler=_create_proposal,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_proposals",
            category=CATEGORY,
            description="List proposals, optionally for one client or status.",
            args_schema=ListProposalsInput,
            handler=_list_proposals,
        ),
    ]
