"""Request entry point: routing, session handling and the response envelope."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ai_engine.agent.catalog import CATEGORY_DESCRIPTIONS
from ai_engine.agent.classifier import OUT_OF_SCOPE_ANSWER, classify, is_in_scope, wants_overview
from ai_engine.agent.executor import AgentExecutor, AgentResult
from ai_engine.agent.generator import AnswerGenerator
from ai_engine.agent.registry import ToolDefinition, ToolRegistry
from ai_engine.config import AgentConfig, SessionConfig
from ai_engine.errors import UpstreamUnavailable, ValidationError
from ai_engine.obs.logging import bind_request_context, clear_request_context, get_logger
from ai_engine.obs.tracing import Deadline, Timer
from ai_engine.retrieval.retriever import RetrievalPipeline
from ai_engine.session.store import HistoryPolicy, SessionLocks, SessionStore
from ai_engine.types import AuthContext, ChatMessage, ConversationState

logger = get_logger("ai_engine.orchestrator")

MAX_QUERY_CHARS = 2000

EnvelopeStatus = Literal["answered", "acted", "aborted", "out_of_scope", "error"]

UPSTREAM_ERROR_ANSWER = (
    "I couldn't complete that request because a required service is unavailable. "
    "Please try again shortly."
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(_CamelModel):
    organization_id: str = Field(min_length=1)
    organization_name: str | None = None
    user_id: str = Field(min_length=1)
    user_name: str | None = None
    session_id: str | None = None
    query: str
    content_types: list[str] | None = None
    include_history: bool = True
    enable_agent: bool = True
    enabled_tool_categories: list[str] | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)


class ActionRequest(_CamelModel):
    organization_id: str = Field(min_length=1)
    organization_name: str | None = None
    user_id: str = Field(min_length=1)
    user_name: str | None = None
    session_id: str | None = None
    action: str
    enabled_tool_categories: list[str] | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)


class ToolCallSummary(_CamelModel):
    name: str
    success: bool
    entity_id: str | None = None
    not_found: bool = False
    error: str | None = None


class ActionResult(_CamelModel):
    success: bool
    tools_used: list[str]
    iterations: int
    aborted: bool = False
    abort_reason: str | None = None
    tool_calls: list[ToolCallSummary] = Field(default_factory=list)

    @classmethod
    def from_agent(cls, result: AgentResult) -> "ActionResult":
        return cls(
            success=result.success,
            tools_used=result.tools_used,
            iterations=result.iterations,
            aborted=result.aborted,
            abort_reason=result.abort_reason,
            tool_calls=[
                ToolCallSummary(
                    name=record.name,
                    success=record.result.success,
                    entity_id=record.result.entity_id,
                    not_found=record.result.not_found,
                    error=record.result.error_message,
                )
                for record in result.tool_calls
            ],
        )


class ErrorInfo(_CamelModel):
    code: str
    message: str


class ResponseEnvelope(_CamelModel):
    status: EnvelopeStatus
    answer: str
    session_id: str | None = None
    is_out_of_scope: bool = False
    is_action_response: bool = False
    action_result: ActionResult | None = None
    sources: list[dict[str, Any]] = Field(default_factory=list)
    error: ErrorInfo | None = None
    retryable: bool = False


class Orchestrator:
    """Routes each request to retrieval or the agent and keeps session history.

    Requests for the same session are serialized by a per-session lock held
    from load to save; different sessions run concurrently.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        retriever: RetrievalPipeline,
        generator: AnswerGenerator,
        executor: AgentExecutor,
        sessions: SessionStore,
        session_config: SessionConfig | None = None,
        agent_config: AgentConfig | None = None,
    ) -> None:
        self.registry = registry
        self.retriever = retriever
        self.generator = generator
        self.executor = executor
        self.sessions = sessions
        self.session_config = session_config or SessionConfig()
        self.agent_config = agent_config or AgentConfig()
        self.history_policy = HistoryPolicy(self.session_config)
        self.locks = SessionLocks()

    async def handle(self, request: QueryRequest) -> ResponseEnvelope:
        query = _validated_text(request.query, "query")
        categories = self._validated_categories(request.enabled_tool_categories)
        session_id = request.session_id or str(uuid.uuid4())
        auth = _auth(request)
        deadline = Deadline(request.timeout_seconds)

        bind_request_context(session_id=session_id, organization_id=auth.organization_id)
        try:
            if not is_in_scope(query):
                logger.info("orchestrator.out_of_scope")
                return ResponseEnvelope(
                    status="out_of_scope",
                    answer=OUT_OF_SCOPE_ANSWER,
                    session_id=session_id,
                    is_out_of_scope=True,
                )

            async def _dispatch(history: list[ChatMessage]) -> tuple[ResponseEnvelope, ChatMessage]:
                if self._use_agent(request, query, categories):
                    result = await self.executor.run(
                        query,
                        auth,
                        history=history,
                        categories=categories,
                        max_iterations=self.agent_config.max_iterations,
                        timeout_seconds=deadline.remaining(),
                    )
                    return _agent_envelope(result, session_id)
                return await self._answer(
                    request, query, auth, history, session_id, deadline.remaining()
                )

            return await self._in_session(
                session_id, auth, query, request.include_history, _dispatch
            )
        finally:
            clear_request_context()

    async def execute_action(self, request: ActionRequest) -> ResponseEnvelope:
        action = _validated_text(request.action, "action")
        categories = self._validated_categories(request.enabled_tool_categories)
        auth = _auth(request)

        async def _dispatch(history: list[ChatMessage]) -> tuple[ResponseEnvelope, ChatMessage]:
            result = await self.executor.run(
                action,
                auth,
                history=history,
                categories=categories,
                max_iterations=self.agent_config.direct_action_max_iterations,
                timeout_seconds=request.timeout_seconds,
            )
            return _agent_envelope(result, request.session_id)

        bind_request_context(
            session_id=request.session_id or "-", organization_id=auth.organization_id
        )
        try:
            if request.session_id is None:
                try:
                    envelope, _ = await _dispatch([])
                except UpstreamUnavailable as exc:
                    return _error_envelope(exc, None)
                return envelope
            return await self._in_session(request.session_id, auth, action, True, _dispatch)
        finally:
            clear_request_context()

    def list_tools(self, category: str | None = None) -> list[dict[str, Any]]:
        if category is not None:
            self._validated_categories([category])
        return [_describe_tool(tool) for tool in self.registry.list_tools(category)]

    def get_tool(self, name: str) -> dict[str, Any]:
        return _describe_tool(self.registry.get_tool(name), with_schema=True)

    def get_capabilities(self, organization_id: str, user_id: str) -> dict[str, Any]:
        if not organization_id or not user_id:
            raise ValidationError("organizationId and userId are required")
        categories = [
            {
                "name": name,
                "description": CATEGORY_DESCRIPTIONS.get(name, ""),
                "tools": [tool.name for tool in self.registry.list_tools(name)],
            }
            for name in self.registry.categories()
        ]
        return {
            "organizationId": organization_id,
            "userId": user_id,
            "agentEnabled": self.executor.available,
            "categories": categories,
            "totalTools": len(self.registry.list_tools()),
        }

    async def end_session(self, session_id: str) -> bool:
        async with self.locks.for_session(session_id):
            removed = await self.sessions.delete(session_id)
        logger.info("orchestrator.session_ended", session_id=session_id, removed=removed)
        return removed

    async def _in_session(
        self,
        session_id: str,
        auth: AuthContext,
        text: str,
        include_history: bool,
        dispatch: Callable[[list[ChatMessage]], Awaitable[tuple[ResponseEnvelope, ChatMessage]]],
    ) -> ResponseEnvelope:
        async with self.locks.for_session(session_id):
            state = await self._load_session(session_id, auth)
            history = self.history_policy.prompt_history(state) if include_history else []
            try:
                with Timer() as timer:
                    envelope, reply = await dispatch(history)
            except UpstreamUnavailable as exc:
                return _error_envelope(exc, session_id)

            state.append(ChatMessage(role="user", content=text))
            state.append(reply)
            self.history_policy.enforce(state)
            await self.sessions.put(session_id, state, self.session_config.ttl_seconds)

        logger.info(
            "orchestrator.handled",
            status=envelope.status,
            stored_messages=len(state.messages),
            duration_ms=round(timer.elapsed_ms, 2),
        )
        return envelope

    async def _load_session(self, session_id: str, auth: AuthContext) -> ConversationState:
        state = await self.sessions.get(session_id)
        if state is None:
            return ConversationState(
                session_id=session_id,
                organization_id=auth.organization_id,
                user_id=auth.user_id,
            )
        if state.organization_id != auth.organization_id or state.user_id != auth.user_id:
            raise ValidationError("Session belongs to a different user or organization")
        return state

    async def _answer(
        self,
        request: QueryRequest,
        query: str,
        auth: AuthContext,
        history: list[ChatMessage],
        session_id: str,
        timeout: float | None = None,
    ) -> tuple[ResponseEnvelope, ChatMessage]:
        filters = {"source_type": request.content_types} if request.content_types else None
        context = await self.retriever.retrieve(
            auth.organization_id,
            query,
            filters=filters,
            timeout=timeout,
            include_overview=wants_overview(query),
        )
        answer = await self.generator.generate(query, context, history, auth)
        envelope = ResponseEnvelope(
            status="answered",
            answer=answer,
            session_id=session_id,
            sources=context.sources(),
        )
        return envelope, ChatMessage(role="assistant", content=answer)

    def _use_agent(self, request: QueryRequest, query: str, categories: Sequence[str] | None) -> bool:
        if not request.enable_agent:
            return False
        classification = classify(query, categories or self.registry.categories())
        logger.info(
            "orchestrator.classified",
            mode=classification.mode,
            categories=list(classification.categories),
            verbs=list(classification.matched_verbs),
        )
        if classification.is_actionable and not self.executor.available:
            logger.warning("orchestrator.agent_unavailable")
            return False
        return classification.is_actionable

    def _validated_categories(self, categories: Sequence[str] | None) -> list[str] | None:
        if not categories:
            return None
        known = set(self.registry.categories())
        unknown = [name for name in categories if name not in known]
        if unknown:
            raise ValidationError(f"Unknown tool categories: {', '.join(unknown)}")
        return list(dict.fromkeys(categories))


def _validated_text(text: str, label: str) -> str:
    stripped = (text or "").strip()
    if not stripped:
        raise ValidationError(f"{label} must not be empty")
    if len(stripped) > MAX_QUERY_CHARS:
        raise ValidationError(f"{label} must be at most {MAX_QUERY_CHARS} characters")
    return stripped


def _auth(request: QueryRequest | ActionRequest) -> AuthContext:
    return AuthContext(
        organization_id=request.organization_id,
        user_id=request.user_id,
        organization_name=request.organization_name,
        user_name=request.user_name,
    )


def _agent_envelope(
    result: AgentResult, session_id: str | None
) -> tuple[ResponseEnvelope, ChatMessage]:
    envelope = ResponseEnvelope(
        status="aborted" if result.aborted else "acted",
        answer=result.answer,
        session_id=session_id,
        is_action_response=True,
        action_result=ActionResult.from_agent(result),
        error=(
            ErrorInfo(code=result.error, message=f"Agent stopped: {result.abort_reason}")
            if result.aborted and result.error
            else None
        ),
    )
    reply = ChatMessage(role="assistant", content=result.answer, tool_calls=result.tool_calls)
    return envelope, reply


def _error_envelope(exc: UpstreamUnavailable, session_id: str | None) -> ResponseEnvelope:
    logger.warning("orchestrator.upstream_error", code=exc.code, error=exc.message)
    return ResponseEnvelope(
        status="error",
        answer=UPSTREAM_ERROR_ANSWER,
        session_id=session_id,
        error=ErrorInfo(code=exc.code, message=exc.message),
        retryable=exc.retryable,
    )


def _describe_tool(tool: ToolDefinition, *, with_schema: bool = False) -> dict[str, Any]:
    described: dict[str, Any] = {
        "name": tool.name,
        "category": tool.category,
        "description": tool.description,
        "mutatesData": tool.mutates_data,
    }
    if with_schema:
        described["parameters"] = tool.parameter_schema()
    return described
