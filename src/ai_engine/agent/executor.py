"""Bounded tool-calling loop over a LangChain chat model."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from ai_engine.agent.registry import ToolDefinition, ToolRegistry
from ai_engine.config import AgentConfig
from ai_engine.errors import LoopLimitExceeded, ModelUnavailable
from ai_engine.obs.logging import get_logger
from ai_engine.obs.tracing import Deadline, Timer
from ai_engine.types import AuthContext, ChatMessage, ToolCallRecord

logger = get_logger("ai_engine.agent")

AbortReason = Literal["iteration_limit", "timeout"]


class AgentState(str, Enum):
    START = "start"
    AWAITING_MODEL = "awaiting_model"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTING = "tool_executing"
    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass(slots=True)
class AgentResult:
    """Outcome of one agent turn."""

    answer: str
    tools_used: list[str] = field(default_factory=list)
    iterations: int = 0
    aborted: bool = False
    abort_reason: AbortReason | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return not self.aborted and all(call.result.success for call in self.tool_calls)


def build_agent_prompt(
    auth: AuthContext, tools: Sequence[ToolDefinition], context: str | None = None
) -> str:
    tool_lines = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
    organization = auth.organization_name or auth.organization_id
    user_line = (
        f"The current user is {auth.user_name} (ID: {auth.user_id})."
        if auth.user_name
        else f"The current user ID is {auth.user_id}."
    )
    prompt = f"""You are an AI assistant for a project management and workforce management platform.
You are helping a user from organization "{organization}".
{user_line}

You have access to the following tools to perform actions:

{tool_lines or "- (no tools are enabled for this request)"}

IMPORTANT RULES:
1. When the user asks you to perform an action (create, update, delete, send, etc.), use the appropriate tool.
2. The organization and the current user are applied to every tool call automatically; never ask for them.
3. Parse user requests carefully to extract the required information.
4. If you're missing required information, ask the user for it before calling a tool.
5. After calling a tool, summarize the result in a user-friendly way.
6. If a tool call fails, explain the error and suggest how to fix it.
7. If a tool reports that something was not found, say so plainly; do not guess IDs.
8. For listing operations, summarize the results concisely.
9. Never claim an action succeeded unless a tool result confirms it.

When responding:
- Acknowledge what the user wants to do
- Execute the appropriate action using tools
- Confirm what was done with relevant details
- Suggest related actions if appropriate"""
    if context:
        prompt += f"\n\nRelevant organization data:\n{context}"
    return prompt


def history_to_messages(history: Iterable[ChatMessage]) -> list[BaseMessage]:
    """Map stored turns onto chat messages; tool calls fold into the assistant turn."""

    messages: list[BaseMessage] = []
    for entry in history:
        if entry.role == "user":
            messages.append(HumanMessage(content=entry.content))
        elif entry.role == "assistant":
            content = entry.content
            if entry.tool_calls:
                content += "\n\n[Actions taken: " + _summarize_calls(entry.tool_calls) + "]"
            messages.append(AIMessage(content=content))
    return messages


class AgentExecutor:
    """Runs the model/tool loop for one request.

    `iterations` counts completed tool rounds. The loop aborts when the model
    asks for another round after `max_iterations` rounds, or when the deadline
    has passed between rounds. A running model or tool call is never cut off.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        llm: Any | None,
        config: AgentConfig | None = None,
    ) -> None:
        self.registry = registry
        self.llm = llm
        self.config = config or AgentConfig()

    @property
    def available(self) -> bool:
        return self.llm is not None

    async def run(
        self,
        query: str,
        auth: AuthContext,
        *,
        history: Sequence[ChatMessage] = (),
        categories: Sequence[str] | None = None,
        context: str | None = None,
        max_iterations: int | None = None,
        timeout_seconds: float | None = None,
    ) -> AgentResult:
        if self.llm is None:
            raise ModelUnavailable("No chat model is configured for the agent")

        limit = max_iterations or self.config.max_iterations
        deadline = Deadline(
            timeout_seconds if timeout_seconds is not None else self.config.timeout_seconds
        )
        definitions = self.registry.tools_for(categories)
        tools = self.registry.as_langchain_tools(auth, categories)
        model = self.llm.bind_tools(tools) if tools else self.llm

        messages: list[BaseMessage] = [
            SystemMessage(content=build_agent_prompt(auth, definitions, context)),
            *history_to_messages(history),
            HumanMessage(content=query),
        ]

        state = AgentState.START
        iterations = 0
        last_text = ""
        records: list[ToolCallRecord] = []

        while True:
            state = AgentState.AWAITING_MODEL
            response = await self._call_model(model, messages)
            messages.append(response)
            text = _content_text(response)
            if text.strip():
                last_text = text

            requested = list(getattr(response, "tool_calls", None) or [])
            if not requested:
                state = AgentState.FINISHED
                logger.info(
                    "agent.finished",
                    state=state.value,
                    iterations=iterations,
                    tool_count=len(records),
                )
                return AgentResult(
                    answer=last_text or _fallback_summary(records),
                    tools_used=[record.name for record in records],
                    iterations=iterations,
                    tool_calls=records,
                )

            state = AgentState.TOOL_REQUESTED
            if iterations >= limit:
                return self._abort("iteration_limit", iterations, last_text, records)
            if deadline.expired:
                return self._abort("timeout", iterations, last_text, records)

            state = AgentState.TOOL_EXECUTING
            for position, call in enumerate(requested):
                name = str(call.get("name") or "")
                args = call.get("args") or {}
                result = await self.registry.invoke(
                    name, dict(args), auth, allowed_categories=categories
                )
                records.append(ToolCallRecord(name=name, args=dict(args), result=result))
                messages.append(
                    ToolMessage(
                        content=json.dumps(result.to_payload(), default=str),
                        tool_call_id=call.get("id") or f"call_{iterations}_{position}",
                        name=name,
                    )
                )
            iterations += 1
            logger.info(
                "agent.iteration",
                state=state.value,
                iteration=iterations,
                tools=[call.get("name") for call in requested],
            )

            if deadline.expired:
                return self._abort("timeout", iterations, last_text, records)

    async def _call_model(self, model: Any, messages: list[BaseMessage]) -> AIMessage:
        try:
            with Timer() as timer:
                response = await model.ainvoke(messages)
        except Exception as exc:
            logger.warning("agent.model_failed", error=str(exc))
            raise ModelUnavailable(f"Chat model call failed: {exc}") from exc
        logger.debug("agent.model_call", duration_ms=round(timer.elapsed_ms, 2))
        return response

    def _abort(
        self,
        reason: AbortReason,
        iterations: int,
        last_text: str,
        records: list[ToolCallRecord],
    ) -> AgentResult:
        error = LoopLimitExceeded(f"Agent loop aborted: {reason} after {iterations} rounds")
        logger.warning(
            "agent.aborted",
            state=AgentState.ABORTED.value,
            reason=reason,
            iterations=iterations,
            tool_count=len(records),
        )
        return AgentResult(
            answer=last_text or _fallback_summary(records, aborted=True),
            tools_used=[record.name for record in records],
            iterations=iterations,
            aborted=True,
            abort_reason=reason,
            tool_calls=records,
            error=error.code,
        )


def _content_text(message: Any) -> str:
    content = getattr(message, "content", "")
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(str(part.get("text", "")))
    return "".join(parts)


def _summarize_calls(records: Iterable[ToolCallRecord]) -> str:
    summary = []
    for record in records:
        if record.result.success:
            outcome = "succeeded"
            if record.result.entity_id:
                outcome += f", id {record.result.entity_id}"
        elif record.result.not_found:
            outcome = "not found"
        else:
            outcome = f"failed: {record.result.error_message}"
        summary.append(f"{record.name} ({outcome})")
    return "; ".join(summary)


def _fallback_summary(records: list[ToolCallRecord], *, aborted: bool = False) -> str:
    if not records:
        if aborted:
            return "I could not complete the request within the allowed number of steps."
        return "I could not determine an action to take for that request."
    prefix = "I stopped before finishing. " if aborted else ""
    return f"{prefix}Actions executed: {_summarize_calls(records)}."
