"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ai_engine.errors import (
    AiEngineError,
    NotFoundError,
    ToolExecutionFailure,
    ValidationError,
)
from ai_engine.obs.logging import get_logger
from ai_engine.types import AuthContext, ToolResult, ToolTrace

logger = get_logger("ai_engine.tools")

ToolHandler = Callable[[Any, AuthContext], Awaitable[ToolResult]]


class ToolDefinition(BaseModel):
    """Declarative tool definition used for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    reads_data: bool = True
    mutates_data: bool = False

    def parse_args(self, payload: dict[str, Any]) -> BaseModel:
        try:
            return self.args_schema.model_validate(payload)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ValidationError(f"Invalid arguments for {self.name}: {problems}") from exc

    def parameter_schema(self) -> dict[str, Any]:
        return self.args_schema.model_json_schema()


class ToolRegistry:
    """Stores tool definitions and runs them without ever raising to the caller."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool already registered: {definition.name}")
        self._tools[definition.name] = definition

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def categories(self) -> list[str]:
        ordered: list[str] = []
        for definition in self._tools.values():
            if definition.category not in ordered:
                ordered.append(definition.category)
        return ordered

    def list_tools(self, category: str | None = None) -> list[ToolDefinition]:
        return [
            definition
            for definition in self._tools.values()
            if category is None or definition.category == category
        ]

    def find_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tool(self, name: str) -> ToolDefinition:
        definition = self._tools.get(name)
        if definition is None:
            raise NotFoundError(f"Tool not found: {name}")
        return definition

    def tools_for(self, categories: Iterable[str] | None) -> list[ToolDefinition]:
        if categories is None:
            return self.list_tools()
        wanted = set(categories)
        return [d for d in self._tools.values() if d.category in wanted]

    async def invoke(
        self,
        name: str,
        payload: dict[str, Any],
        auth: AuthContext,
        *,
        allowed_categories: Iterable[str] | None = None,
    ) -> ToolResult:
        """Validate and run one tool call.

        Every failure, including an unknown or disabled tool and an argument
        validation error, comes back as `ToolResult(success=False)`. Arguments
        are validated before the handler is called, so an invalid call never
        reaches a remote service.
        """

        definition = self._tools.get(name)
        if definition is None:
            result = ToolResult.fail(f'Tool "{name}" not found', not_found=True)
        elif allowed_categories is not None and definition.category not in set(allowed_categories):
            result = ToolResult.fail(f'Tool "{name}" is not enabled for this request')
        else:
            return await self._execute(definition, payload, auth)

        self._notify(name, payload, result, 0.0)
        return result

    def as_langchain_tools(
        self, auth: AuthContext, categories: Iterable[str] | None = None
    ) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for definition in self.tools_for(categories):
            tools.append(
                StructuredTool.from_function(
                    name=definition.name,
                    description=definition.description,
                    args_schema=definition.args_schema,
                    coroutine=self._build_coroutine(definition, auth),
                )
            )
        return tools

    def _build_coroutine(
        self, definition: ToolDefinition, auth: AuthContext
    ) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            result = await self._execute(definition, kwargs, auth)
            return json.dumps(result.to_payload(), default=str)

        return _callable

    async def _execute(
        self, definition: ToolDefinition, payload: dict[str, Any], auth: AuthContext
    ) -> ToolResult:
        start = perf_counter()
        try:
            args = definition.parse_args(payload)
            result = await definition.handler(args, auth)
            if not isinstance(result, ToolResult):
                raise ToolExecutionFailure(
                    f"{definition.name} returned {type(result).__name__}, expected ToolResult"
                )
        except NotFoundError as exc:
            result = ToolResult.fail(exc.message, not_found=True)
        except AiEngineError as exc:
            result = ToolResult.fail(exc.message)
        except Exception as exc:  # adapter bugs must not crash the agent turn
            logger.exception("tool.crashed", tool=definition.name)
            result = ToolResult.fail(f"{definition.name} failed: {exc}")
        latency_ms = (perf_counter() - start) * 1000.0

        self._notify(definition.name, payload, result, latency_ms)
        return result

    def _notify(
        self, name: str, payload: dict[str, Any], result: ToolResult, latency_ms: float
    ) -> None:
        preview = json.dumps(result.to_payload(), default=str)[:320]
        logger.info(
            "tool.invoked",
            tool=name,
            success=result.success,
            not_found=result.not_found,
            latency_ms=round(latency_ms, 2),
        )
        if self._observer is None:
            return
        trace = ToolTrace(
            name=name,
            input_payload=payload,
            output_preview=preview,
            latency_ms=latency_ms,
            success=result.success,
        )
        try:
            self._observer(trace)
        except Exception:
            logger.exception("tool.observer_failed", tool=name)
