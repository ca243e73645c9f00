"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Scalar = str | int | float | bool

MessageRole = Literal["user", "assistant", "tool"]


@dataclass(slots=True)
class RenderedDocument:
    """A plain-text rendering of one upstream record before chunking."""

    organization_id: str
    source_type: str
    source_id: str
    title: str
    text: str
    metadata: dict[str, Scalar]


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    """An indexed segment of a rendered document."""

    chunk_id: str
    organization_id: str
    source_type: str
    source_id: str
    text: str
    vector: tuple[float, ...]
    metadata: dict[str, Scalar]
    chunk_index: int
    title: str = ""


@dataclass(slots=True)
class ScoredChunk:
    """A retrieval result with its similarity score."""

    chunk: DocumentChunk
    score: float
    rank: int = 0


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    success: bool = True


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Identity a tool call runs on behalf of."""

    organization_id: str
    user_id: str
    organization_name: str | None = None
    user_name: str | None = None


@dataclass(slots=True)
class ToolResult:
    """Outcome of a single tool invocation."""

    success: bool
    data: Any = None
    error_message: str | None = None
    entity_id: str | None = None
    not_found: bool = False

    @classmethod
    def ok(cls, data: Any = None, *, entity_id: str | None = None) -> "ToolResult":
        return cls(success=True, data=data, entity_id=entity_id)

    @classmethod
    def fail(cls, message: str, *, not_found: bool = False) -> "ToolResult":
        return cls(success=False, error_message=message, not_found=not_found)

    def to_payload(self) -> dict[str, Any]:
        if self.success:
            payload: dict[str, Any] = {"success": True, "data": self.data}
            if self.entity_id:
                payload["entityId"] = self.entity_id
            return payload
        return {
            "success": False,
            "error": self.error_message,
            "notFound": self.not_found,
        }


@dataclass(slots=True)
class ToolCallRecord:
    """A tool call made during an agent turn, kept in history."""

    name: str
    args: dict[str, Any]
    result: ToolResult


@dataclass(slots=True)
class ChatMessage:
    """One entry of a conversation's history."""

    role: MessageRole
    content: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ConversationState:
    """Ordered history of one session."""

    session_id: str
    organization_id: str
    user_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_active_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)
        self.last_active_at = message.created_at
