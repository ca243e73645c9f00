import pytest
from pydantic import BaseModel

from ai_engine.agent.registry import ToolDefinition, ToolRegistry
from ai_engine.types import AuthContext, ToolResult


class EchoInput(BaseModel):
    text: str


@pytest.mark.asyncio
async def test_tool_observer_captures_latency_and_payload(auth: AuthContext) -> None:
    registry = ToolRegistry()

    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        return ToolResult.ok(data.text.upper())

    registry.register(
        ToolDefinition(
            name="echo",
            category="testing",
            description="uppercase",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    observed = []
    registry.set_observer(observed.append)
    result = await registry.invoke("echo", {"text": "hello"}, auth)
    missing = await registry.invoke("missing", {"text": "x"}, auth)
    registry.set_observer(None)

    assert result.data == "HELLO"
    assert not missing.success
    assert len(observed) == 2
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].latency_ms >= 0.0
    assert observed[0].success is True
    assert "HELLO" in observed[0].output_preview
    assert observed[1].success is False


@pytest.mark.asyncio
async def test_failing_observer_does_not_break_invocation(auth: AuthContext) -> None:
    registry = ToolRegistry()

    async def _handler(data: EchoInput, ctx: AuthContext) -> ToolResult:
        return ToolResult.ok(data.text)

    registry.register(
        ToolDefinition(
            name="echo",
            category="testing",
            description="echo",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    def _broken_observer(trace) -> None:
        raise RuntimeError("metrics sink down")

    registry.set_observer(_broken_observer)
    result = await registry.invoke("echo", {"text": "still works"}, auth)

    assert result.success
    assert result.data == "still works"
