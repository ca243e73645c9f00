"""Shared pieces for service-backed tool definitions."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ai_engine.errors import NotFoundError
from ai_engine.types import AuthContext, ToolResult


class ToolArgs(BaseModel):
    """Base for tool argument models.

    Fields are snake_case in Python and camelCase on the wire; both spellings
    are accepted from the model. Unknown keys are rejected.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def payload(self, **extra: Any) -> dict[str, Any]:
        body = self.model_dump(by_alias=True, exclude_none=True)
        body.update({to_camel(k): v for k, v in extra.items() if v is not None})
        return body


def entity_id_of(record: Any) -> str | None:
    if isinstance(record, dict) and record.get("id") is not None:
        return str(record["id"])
    return None


def is_marked(record: Any) -> bool:
    return isinstance(record, dict) and record.get("organizationId") is not None


def ensure_owned(record: Any, auth: AuthContext, label: str) -> Any:
    """Return `record` only when it is marked with the caller's organization.

    Unmarked records count as foreign. Callers that can prove ownership another
    way, through a parent project or an organization-scoped listing, do that
    before falling back to this check.
    """

    owner = record.get("organizationId") if isinstance(record, dict) else None
    if owner is None or str(owner) != auth.organization_id:
        raise NotFoundError(f"{label} not found")
    return record


def created(record: Any, label: str, message: str) -> ToolResult:
    return ToolResult.ok({"message": message, label: record}, entity_id=entity_id_of(record))


def listed(
    records: list[dict[str, Any]], label: str, fields: tuple[str, ...] | None = None
) -> ToolResult:
    if fields is not None:
        records = [{key: rec.get(key) for key in fields} for rec in records]
    return ToolResult.ok({"count": len(records), label: records})
