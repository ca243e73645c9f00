"""FastAPI entrypoint for agent, sync and search endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ai_engine.config import get_settings
from ai_engine.context import EngineContext
from ai_engine.errors import NotFoundError, UpstreamUnavailable, ValidationError
from ai_engine.orchestrator import ActionRequest, QueryRequest, ResponseEnvelope


class SearchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    organization_id: str = Field(min_length=1)
    query: str = Field(min_length=1, max_length=2000)
    top_k: int = Field(default=5, ge=1, le=50)
    content_types: list[str] | None = None


def create_app(context: EngineContext | None = None) -> FastAPI:
    """Build the app; a prebuilt context skips settings-driven wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ctx = context or EngineContext.from_settings(get_settings())
        app.state.context = ctx
        await ctx.start()
        try:
            yield
        finally:
            await ctx.aclose()

    app = FastAPI(title="AI Engine", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": exc.code, "detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": ValidationError.code, "detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.code, "detail": exc.message})

    @app.exception_handler(UpstreamUnavailable)
    async def _upstream(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"error": exc.code, "detail": exc.message, "retryable": exc.retryable},
        )

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        ctx = _ctx(request)
        return {
            "status": "ok",
            "llm_configured": ctx.executor.available,
            "answer_mode": "langchain" if ctx.generator.llm is not None else "extractive",
            "tool_count": len(ctx.registry.list_tools()),
            "scheduler_running": ctx.scheduler.running,
        }

    @app.post("/api/agent/query")
    async def query(request: Request, body: QueryRequest) -> JSONResponse:
        envelope = await _ctx(request).orchestrator.handle(body)
        return _envelope_response(envelope)

    @app.post("/api/agent/execute")
    async def execute(request: Request, body: ActionRequest) -> JSONResponse:
        envelope = await _ctx(request).orchestrator.execute_action(body)
        return _envelope_response(envelope)

    @app.get("/api/agent/tools")
    async def list_tools(request: Request, category: str | None = None) -> dict[str, Any]:
        tools = _ctx(request).orchestrator.list_tools(category)
        return {"tools": tools, "count": len(tools)}

    @app.get("/api/agent/tools/{name}")
    async def get_tool(request: Request, name: str) -> dict[str, Any]:
        return _ctx(request).orchestrator.get_tool(name)

    @app.get("/api/agent/capabilities")
    async def capabilities(
        request: Request, organizationId: str, userId: str  # noqa: N803 - wire names
    ) -> dict[str, Any]:
        return _ctx(request).orchestrator.get_capabilities(organizationId, userId)

    @app.delete("/api/agent/sessions/{session_id}")
    async def end_session(request: Request, session_id: str) -> dict[str, Any]:
        removed = await _ctx(request).orchestrator.end_session(session_id)
        if not removed:
            raise NotFoundError(f"Session not found: {session_id}")
        return {"sessionId": session_id, "deleted": True}

    @app.post("/api/sync/{organization_id}")
    async def sync_all(request: Request, organization_id: str) -> dict[str, Any]:
        reports = await _ctx(request).sync.sync_all(organization_id)
        return {
            "organizationId": organization_id,
            "results": {name: report.to_payload() for name, report in reports.items()},
            "totalSynced": sum(report.synced for report in reports.values()),
        }

    @app.post("/api/sync/{organization_id}/{source_type}")
    async def sync_entity(
        request: Request,
        organization_id: str,
        source_type: str,
        sourceId: str | None = None,  # noqa: N803 - wire name
    ) -> dict[str, Any]:
        report = await _ctx(request).sync.sync_entity(organization_id, source_type, sourceId)
        return {"organizationId": organization_id, "sourceType": source_type, **report.to_payload()}

    @app.delete("/api/sync/{organization_id}/{source_type}/{source_id}")
    async def remove_entity(
        request: Request, organization_id: str, source_type: str, source_id: str
    ) -> dict[str, Any]:
        removed = await _ctx(request).sync.remove_entity(organization_id, source_type, source_id)
        return {"organizationId": organization_id, "removedChunks": removed}

    @app.post("/api/search")
    async def search(request: Request, body: SearchRequest) -> dict[str, Any]:
        filters = {"source_type": body.content_types} if body.content_types else None
        context = await _ctx(request).retriever.retrieve(
            body.organization_id, body.query, top_k=body.top_k, filters=filters
        )
        return {
            "items": [
                {
                    "chunkId": item.chunk.chunk_id,
                    "sourceType": item.chunk.source_type,
                    "sourceId": item.chunk.source_id,
                    "title": item.chunk.title,
                    "score": item.score,
                    "text": item.chunk.text,
                    "metadata": item.chunk.metadata,
                }
                for item in context.items
            ]
        }

    return app


def _ctx(request: Request) -> EngineContext:
    return request.app.state.context


def _envelope_response(envelope: ResponseEnvelope) -> JSONResponse:
    status_code = 503 if envelope.status == "error" else 200
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True),
    )


app = create_app()
