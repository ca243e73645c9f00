from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.messages import AIMessage

from ai_engine.config import Settings
from ai_engine.context import EngineContext
from ai_engine.errors import NotFoundError
from ai_engine.ingest.embedder import HashingEmbedder
from ai_engine.types import AuthContext

SERVICES = ("auth", "workforce", "projects", "clients", "knowledge", "communication", "notification")


class ScriptedChatModel:
    """Chat model double that replays scripted replies.

    Each script entry is an `AIMessage`, an exception to raise, or a callable
    taking the message list and returning either.
    """

    def __init__(self, script: list[Any] | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[list[Any]] = []
        self.bound_tools: list[Any] = []

    def bind_tools(self, tools: list[Any], **_: Any) -> "ScriptedChatModel":
        self.bound_tools = list(tools)
        return self

    async def ainvoke(self, messages: list[Any], **_: Any) -> AIMessage:
        self.calls.append(list(messages))
        if not self.script:
            return AIMessage(content="Done.")
        step = self.script.pop(0)
        if callable(step) and not isinstance(step, AIMessage):
            step = step(messages)
        if isinstance(step, BaseException):
            raise step
        return step


def tool_call(name: str, args: dict[str, Any], call_id: str = "call_1") -> dict[str, Any]:
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


class FakeTransport:
    """In-memory `ServiceTransport` answering from a route table.

    Routes map `(METHOD, path)` to a response body, an exception instance, or a
    callable `(params, json) -> body`. Unknown routes raise `NotFoundError`.
    """

    def __init__(self, service_name: str, routes: dict[tuple[str, str], Any] | None = None):
        self.service_name = service_name
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str, dict[str, Any] | None, Any]] = []
        self.closed = False

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        method = method.upper()
        self.calls.append((method, path, params, json))
        if (method, path) not in self.routes:
            raise NotFoundError(f"{self.service_name}: resource not found at {path}")
        response = self.routes[(method, path)]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(params or {}, json)
        return response

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def auth() -> AuthContext:
    return AuthContext(
        organization_id="org-1",
        user_id="user-1",
        organization_name="Acme",
        user_name="Dana",
    )


@pytest.fixture
def make_transports() -> Callable[..., dict[str, FakeTransport]]:
    def _make(**routes: dict[tuple[str, str], Any]) -> dict[str, FakeTransport]:
        return {name: FakeTransport(name, routes.get(name)) for name in SERVICES}

    return _make


@pytest.fixture
def chat_model() -> type[ScriptedChatModel]:
    return ScriptedChatModel


@pytest.fixture
def make_context(make_transports) -> Callable[..., EngineContext]:
    def _make(
        *,
        transports: dict[str, FakeTransport] | None = None,
        agent_llm: Any | None = None,
        answer_llm: Any | None = None,
        **overrides: Any,
    ) -> EngineContext:
        settings = Settings(
            _env_file=None,
            openai_api_key=None,
            embedding_dimension=64,
            **overrides,
        )
        return EngineContext.from_settings(
            settings,
            transports=transports or make_transports(),
            embedder=HashingEmbedder(dimension=64),
            agent_llm=agent_llm,
            answer_llm=answer_llm,
        )

    return _make
