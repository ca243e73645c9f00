import asyncio
import time

import pytest
from langchain_core.messages import AIMessage

from ai_engine.agent.classifier import OUT_OF_SCOPE_ANSWER
from ai_engine.agent.fallback import NOT_FOUND_ANSWER
from ai_engine.errors import ValidationError
from ai_engine.ingest.embedder import HashingEmbedder
from ai_engine.orchestrator import ActionRequest, QueryRequest


def _query(text: str, **fields) -> QueryRequest:
    payload = {"organization_id": "org-1", "user_id": "user-1", "organization_name": "Acme"}
    payload.update(fields)
    return QueryRequest(query=text, **payload)


def _call(name: str, args: dict, call_id: str = "call_1") -> dict:
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


def _org_routes() -> dict:
    tasks = [
        {"id": "t-1", "title": "Draft launch plan", "status": "todo", "dueDate": "2020-01-01",
         "projectId": "p-1", "organizationId": "org-1"},
        {"id": "t-2", "title": "Pick color palette", "status": "in_progress",
         "dueDate": "2099-01-01", "projectId": "p-1", "organizationId": "org-1"},
    ]
    return {
        "auth": {
            ("GET", "/organizations/org-1"): {"id": "org-1", "name": "Acme"},
            ("GET", "/organizations/org-1/members"): [
                {"userId": "user-1", "user": {"firstName": "Dana", "lastName": "Kim"}},
                {"userId": "user-2", "user": {"firstName": "Lee", "lastName": "Park"}},
            ],
        },
        "projects": {
            ("GET", "/projects"): [
                {"id": "p-1", "name": "Website Redesign", "status": "active",
                 "organizationId": "org-1"},
            ],
            ("GET", "/tasks"): tasks,
            ("GET", "/milestones"): [],
            ("POST", "/projects"): lambda params, body: {"id": "p-2", **body},
        },
        "workforce": {("GET", "/teams"): []},
        "clients": {("GET", "/clients"): []},
    }


@pytest.mark.asyncio
async def test_aggregate_question_is_answered_from_overview(make_context, make_transports) -> None:
    ctx = make_context(transports=make_transports(**_org_routes()))
    overview = await ctx.sync.sync_entity("org-1", "organization")
    tasks = await ctx.sync.sync_entity("org-1", "task")

    envelope = await ctx.orchestrator.handle(_query("How many tasks are overdue?"))

    assert overview.errors == [] and tasks.synced == 2
    assert envelope.status == "answered"
    assert not envelope.is_action_response
    assert "Overdue Tasks: 1" in envelope.answer
    assert any(source["contentType"] == "organization" for source in envelope.sources)


@pytest.mark.asyncio
async def test_create_project_runs_through_the_agent(
    make_context, make_transports, chat_model
) -> None:
    llm = chat_model(
        [
            AIMessage(content="", tool_calls=[_call("create_project", {"name": "Website Redesign"})]),
            AIMessage(content='Created the project "Website Redesign".'),
        ]
    )
    transports = make_transports(**_org_routes())
    ctx = make_context(transports=transports, agent_llm=llm)

    envelope = await ctx.orchestrator.handle(
        _query("Create a new project called Website Redesign", session_id="s-1")
    )

    assert envelope.status == "acted"
    assert envelope.is_action_response
    assert envelope.action_result.tools_used == ["create_project"]
    assert envelope.action_result.iterations == 1
    assert envelope.action_result.tool_calls[0].entity_id == "p-2"
    posted = [c for c in transports["projects"].calls if c[0] == "POST"]
    assert posted[0][3]["organizationId"] == "org-1"

    state = await ctx.sessions.get("s-1")
    assert [m.role for m in state.messages] == ["user", "assistant"]
    assert state.messages[1].tool_calls[0].name == "create_project"


@pytest.mark.asyncio
async def test_empty_index_reports_no_information(make_context) -> None:
    ctx = make_context()

    envelope = await ctx.orchestrator.handle(_query("What is the status of the Apollo project?"))

    assert envelope.status == "answered"
    assert envelope.answer == NOT_FOUND_ANSWER
    assert envelope.sources == []
    assert envelope.session_id


@pytest.mark.asyncio
async def test_out_of_scope_is_refused_and_not_stored(make_context) -> None:
    ctx = make_context()

    envelope = await ctx.orchestrator.handle(
        _query("What do you think about politics?", session_id="s-oos")
    )

    assert envelope.status == "out_of_scope"
    assert envelope.is_out_of_scope
    assert envelope.answer == OUT_OF_SCOPE_ANSWER
    assert await ctx.sessions.get("s-oos") is None


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_session_are_all_kept(make_context) -> None:
    ctx = make_context(session={"max_stored_messages": 100})

    questions = [f"What is the status of project number {i}?" for i in range(6)]
    await asyncio.gather(
        *(ctx.orchestrator.handle(_query(q, session_id="shared")) for q in questions),
        ctx.orchestrator.handle(_query("Who is on the design team?", session_id="other")),
    )

    shared = await ctx.sessions.get("shared")
    other = await ctx.sessions.get("other")
    assert len(shared.messages) == 12
    assert sorted(m.content for m in shared.messages if m.role == "user") == sorted(questions)
    assert [m.content for m in other.messages if m.role == "user"] == [
        "Who is on the design team?"
    ]


@pytest.mark.asyncio
async def test_session_cannot_be_reused_by_another_user(make_context) -> None:
    ctx = make_context()
    await ctx.orchestrator.handle(_query("What is on my plate?", session_id="s-1"))

    with pytest.raises(ValidationError):
        await ctx.orchestrator.handle(
            _query("What is on my plate?", session_id="s-1", user_id="user-2")
        )


@pytest.mark.asyncio
async def test_model_failure_yields_error_envelope_without_saving(
    make_context, chat_model
) -> None:
    ctx = make_context(agent_llm=chat_model([RuntimeError("rate limited")]))

    envelope = await ctx.orchestrator.handle(
        _query("Create a task called Review copy", session_id="s-err")
    )

    assert envelope.status == "error"
    assert envelope.retryable
    assert envelope.error.code == "model_unavailable"
    assert await ctx.sessions.get("s-err") is None


@pytest.mark.asyncio
async def test_agent_can_be_disabled_per_request(make_context, chat_model) -> None:
    llm = chat_model()
    ctx = make_context(agent_llm=llm)

    envelope = await ctx.orchestrator.handle(
        _query("Create a task called Review copy", enable_agent=False)
    )

    assert envelope.status == "answered"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_actionable_query_without_model_falls_back_to_retrieval(make_context) -> None:
    ctx = make_context()

    envelope = await ctx.orchestrator.handle(_query("Create a task called Review copy"))

    assert envelope.status == "answered"
    assert envelope.answer == NOT_FOUND_ANSWER


@pytest.mark.asyncio
async def test_direct_action_is_stateless_without_session(
    make_context, make_transports, chat_model
) -> None:
    llm = chat_model(
        [
            AIMessage(content="", tool_calls=[_call("list_projects", {})]),
            AIMessage(content="You have one project: Website Redesign."),
        ]
    )
    ctx = make_context(transports=make_transports(**_org_routes()), agent_llm=llm)

    envelope = await ctx.orchestrator.execute_action(
        ActionRequest(organization_id="org-1", user_id="user-1", action="List my projects")
    )

    assert envelope.status == "acted"
    assert envelope.session_id is None
    assert envelope.answer == "You have one project: Website Redesign."
    assert envelope.action_result.success


@pytest.mark.asyncio
async def test_direct_action_respects_its_own_iteration_limit(make_context, chat_model) -> None:
    script = [
        AIMessage(content="", tool_calls=[_call("list_channels", {}, f"c{i}")]) for i in range(10)
    ]
    ctx = make_context(agent_llm=chat_model(script))

    envelope = await ctx.orchestrator.execute_action(
        ActionRequest(
            organization_id="org-1",
            user_id="user-1",
            action="Keep listing channels",
            session_id="s-act",
        )
    )

    assert envelope.status == "aborted"
    assert envelope.action_result.iterations == ctx.settings.agent.direct_action_max_iterations
    assert envelope.error.code == "loop_limit_exceeded"
    assert len((await ctx.sessions.get("s-act")).messages) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"query": "   "},
        {"query": "x" * 2001},
        {"query": "List tasks", "enabled_tool_categories": ["telepathy"]},
    ],
)
async def test_invalid_requests_are_rejected(make_context, fields) -> None:
    ctx = make_context()
    text = fields.pop("query")

    with pytest.raises(ValidationError):
        await ctx.orchestrator.handle(_query(text, **fields))


@pytest.mark.asyncio
async def test_end_session_removes_history(make_context) -> None:
    ctx = make_context()
    await ctx.orchestrator.handle(_query("What is the status of Apollo?", session_id="s-end"))

    assert await ctx.orchestrator.end_session("s-end") is True
    assert await ctx.orchestrator.end_session("s-end") is False
    assert await ctx.sessions.get("s-end") is None


@pytest.mark.asyncio
async def test_distinct_sessions_keep_only_their_own_turns(make_context) -> None:
    ctx = make_context()
    alpha = [f"What is the status of alpha milestone {i}?" for i in range(3)]
    beta = [f"Who owns beta deliverable {i}?" for i in range(3)]

    await asyncio.gather(
        *(ctx.orchestrator.handle(_query(q, session_id="alpha")) for q in alpha),
        *(
            ctx.orchestrator.handle(_query(q, session_id="beta", user_id="user-2"))
            for q in beta
        ),
    )

    alpha_state = await ctx.orchestrator.sessions.get("alpha")
    beta_state = await ctx.orchestrator.sessions.get("beta")
    assert sorted(m.content for m in alpha_state.messages if m.role == "user") == sorted(alpha)
    assert sorted(m.content for m in beta_state.messages if m.role == "user") == sorted(beta)
    assert alpha_state.user_id == "user-1" and beta_state.user_id == "user-2"
    assert len(alpha_state.messages) == len(beta_state.messages) == 6


@pytest.mark.asyncio
async def test_caller_timeout_stops_the_agent_between_rounds(make_context, chat_model) -> None:
    def _slow_round(messages):
        time.sleep(0.05)
        return AIMessage(content="Checking channels.", tool_calls=[_call("list_channels", {})])

    llm = chat_model([_slow_round, AIMessage(content="never reached")])
    ctx = make_context(agent_llm=llm)

    envelope = await ctx.orchestrator.handle(
        _query("Send a message to the design channel", session_id="s-slow", timeout_seconds=0.01)
    )

    assert envelope.status == "aborted"
    assert envelope.action_result.abort_reason == "timeout"
    assert envelope.action_result.iterations == 1
    assert envelope.answer == "Checking channels."
    assert len(llm.calls) == 1
    payload = envelope.model_dump(by_alias=True)
    assert payload["actionResult"]["abortReason"] == "timeout"


class _SlowEmbedder(HashingEmbedder):
    async def embed(self, text: str) -> list[float]:
        await asyncio.sleep(0.5)
        return await super().embed(text)


@pytest.mark.asyncio
async def test_caller_timeout_fails_retrieval_as_a_whole(make_context) -> None:
    ctx = make_context()
    ctx.orchestrator.retriever.embedder = _SlowEmbedder(dimension=64)

    envelope = await ctx.orchestrator.handle(
        _query("What is the status of Apollo?", session_id="s-rt", timeout_seconds=0.01)
    )

    assert envelope.status == "error"
    assert envelope.retryable
    assert envelope.error.code == "retrieval_timeout"
    assert envelope.sources == []
    assert await ctx.sessions.get("s-rt") is None
