"""Document and wiki tools."""

from __future__ import annotations

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import ToolArgs, created, listed
from ai_engine.services.clients import KnowledgeServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "knowledgeHub"

_DOCUMENT_FIELDS = ("id", "title", "category", "updatedAt")


class CreateDocumentInput(ToolArgs):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    category: str | None = None
    tags: list[str] | None = None


class SearchDocumentsInput(ToolArgs):
    query: str = Field(min_length=1, description="Words to look for in titles and content")
    category: str | None = None


class CreateWikiPageInput(ToolArgs):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    parent_id: str | None = Field(default=None, description="Parent page for nesting")


def build_tools(client: KnowledgeServiceClient) -> list[ToolDefinition]:
    async def _create_document(args: CreateDocumentInput, auth: AuthContext) -> ToolResult:
        record = await client.create_document(
            args.payload(organization_id=auth.organization_id, author_id=auth.user_id)
        )
        return created(record, "document", f'Successfully created document "{args.title}"')

    async def _search_documents(args: SearchDocumentsInput, auth: AuthContext) -> ToolResult:
        documents = await client.search_documents(
            auth.organization_id, args.query, category=args.category
        )
        return listed(documents, "documents", _DOCUMENT_FIELDS)

    async def _create_wiki_page(args: CreateWikiPageInput, auth: AuthContext) -> ToolResult:
        record = await client.create_wiki_page(
            args.payload(organization_id=auth.organization_id, author_id=auth.user_id)
        )
        return created(record, "page", f'Successfully created wiki page "{args.title}"')

    return [
        ToolDefinition(
            name="create_document",
            category=CATEGORY,
            description="Create a document in the knowledge hub.",
            args_schema=CreateDocumentInput,
            handler=_create_document,
            mutates_data=True,
        ),
        ToolDefinition(
            name="search_documents",
            category=CATEGORY,
            description="Search knowledge hub documents by keyword.",
            args_schema=SearchDocumentsInput,
            handler=_search_documents,
        ),
        ToolDefinition(
            name="create_wiki_page",
            category=CATEGORY,
            description="Create a wiki page, optionally under a parent page.",
            args_schema=CreateWikiPageInput,
            handler=_create_wiki_page,
            mutates_data=True,
        ),
    ]
