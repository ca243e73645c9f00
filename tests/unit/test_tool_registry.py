import json

import pytest
from pydantic import BaseModel, Field

from ai_engine.agent.registry import ToolDefinition, ToolRegistry
from ai_engine.errors import NotFoundError, UpstreamUnavailable
from ai_engine.types import AuthContext, ToolResult


class EchoInput(BaseModel):
    value: int = Field(ge=1)


def _registry(handler, *, name: str = "echo", category: str = "testing") -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name=name,
            category=category,
            description="echo positive int",
            args_schema=EchoInput,
            handler=handler,
        )
    )
    return registry


@pytest.mark.asyncio
async def test_tool_registry_validation(auth: AuthContext) -> None:
    calls = []

    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        calls.append(data.value)
        return ToolResult.ok({"value": data.value})

    registry = _registry(_handler)

    result = await registry.invoke("echo", {"value": 3}, auth)
    assert result.success and result.data == {"value": 3}

    rejected = await registry.invoke("echo", {"value": 0}, auth)
    assert not rejected.success
    assert "value" in rejected.error_message
    assert calls == [3]


def test_duplicate_tool_registration_rejected() -> None:
    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        return ToolResult.ok()

    definition = ToolDefinition(
        name="echo",
        category="testing",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
    )
    registry = ToolRegistry()
    registry.register(definition)
    with pytest.raises(ValueError):
        registry.register(definition)


@pytest.mark.asyncio
async def test_unknown_and_disabled_tools_fail_without_raising(auth: AuthContext) -> None:
    calls = []

    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        calls.append(data)
        return ToolResult.ok()

    registry = _registry(_handler)

    missing = await registry.invoke("nope", {}, auth)
    assert not missing.success and missing.not_found

    disabled = await registry.invoke("echo", {"value": 1}, auth, allowed_categories=["other"])
    assert not disabled.success and not disabled.not_found
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "not_found"),
    [
        (NotFoundError("Project not found"), True),
        (UpstreamUnavailable("projects is not available"), False),
        (RuntimeError("boom"), False),
    ],
)
async def test_handler_failures_are_captured(
    auth: AuthContext, error: Exception, not_found: bool
) -> None:
    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        raise error

    result = await _registry(_handler).invoke("echo", {"value": 1}, auth)

    assert result.success is False
    assert result.not_found is not_found
    assert result.to_payload()["success"] is False


@pytest.mark.asyncio
async def test_handler_returning_wrong_type_is_a_failure(auth: AuthContext) -> None:
    async def _handler(data: EchoInput, ctx: AuthContext):
        return "not a result"

    result = await _registry(_handler).invoke("echo", {"value": 1}, auth)

    assert not result.success
    assert "expected ToolResult" in result.error_message


def test_lookup_and_categories() -> None:
    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        return ToolResult.ok()

    registry = _registry(_handler)
    registry.register(
        ToolDefinition(
            name="echo2",
            category="other",
            description="second",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    assert registry.categories() == ["testing", "other"]
    assert [tool.name for tool in registry.list_tools("other")] == ["echo2"]
    assert registry.find_tool("missing") is None
    with pytest.raises(NotFoundError):
        registry.get_tool("missing")


@pytest.mark.asyncio
async def test_langchain_export_runs_through_registry(auth: AuthContext) -> None:
    seen = []

    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        seen.append(ctx.organization_id)
        return ToolResult.ok({"doubled": data.value * 2}, entity_id="e-1")

    registry = _registry(_handler)
    tools = registry.as_langchain_tools(auth, ["testing"])

    assert [tool.name for tool in tools] == ["echo"]
    output = await tools[0].ainvoke({"value": 4})
    payload = json.loads(output)
    assert payload == {"success": True, "data": {"doubled": 8}, "entityId": "e-1"}
    assert seen == ["org-1"]
    assert registry.as_langchain_tools(auth, ["other"]) == []
