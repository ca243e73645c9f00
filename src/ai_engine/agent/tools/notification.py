"""Notification tools."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import ToolArgs, created, listed
from ai_engine.errors import NotFoundError
from ai_engine.services.clients import NotificationServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "notification"

NotificationType = Literal["info", "warning", "success", "error", "reminder"]


class SendNotificationInput(ToolArgs):
    user_id: str = Field(min_length=1, description="The recipient")
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: NotificationType = "info"
    link: str | None = None


class ListNotificationsInput(ToolArgs):
    unread_only: bool = False


class MarkNotificationReadInput(ToolArgs):
    notification_id: str = Field(min_length=1)


class SendBulkNotificationInput(ToolArgs):
    user_ids: list[str] = Field(min_length=1, max_length=500)
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: NotificationType = "info"


def build_tools(client: NotificationServiceClient) -> list[ToolDefinition]:
    async def _send_notification(args: SendNotificationInput, auth: AuthContext) -> ToolResult:
        record = await client.send_notification(
            args.payload(organization_id=auth.organization_id, sender_id=auth.user_id)
        )
        return created(record, "notification", "Notification sent successfully")

    async def _list_notifications(args: ListNotificationsInput, auth: AuthContext) -> ToolResult:
        notifications = await client.list_notifications(
            auth.user_id, unread_only=args.unread_only
        )
        return listed(notifications, "notifications")

    async def _mark_read(args: MarkNotificationReadInput, auth: AuthContext) -> ToolResult:
        # Only the recipient may mark a notification; check before writing.
        inbox = await client.list_notifications(auth.user_id)
        if all(str(item.get("id")) != args.notification_id for item in inbox):
            raise NotFoundError("Notification not found")
        await client.mark_read(args.notification_id)
        return ToolResult.ok(
            {"message": "Notification marked as read"}, entity_id=args.notification_id
        )

    async def _send_bulk(args: SendBulkNotificationInput, auth: AuthContext) -> ToolResult:
        record = await client.send_bulk(
            args.payload(organization_id=auth.organization_id, sender_id=auth.user_id)
        )
        sent = len(args.user_ids)
        if isinstance(record, dict):
            sent = record.get("count", sent)
        return ToolResult.ok({"message": f"Sent {sent} notifications", "count": sent})

    return [
        ToolDefinition(
            name="send_notification",
            category=CATEGORY,
            description="Send a notification to one user.",
            args_schema=SendNotificationInput,
            handler=_send_notification,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_notifications",
            category=CATEGORY,
            description="List the current user's notifications.",
            args_schema=ListNotificationsInput,
            handler=_list_notifications,
        ),
        ToolDefinition(
            name="mark_notification_read",
            category=CATEGORY,
            description="Mark one of the current user's notifications as read.",
            args_schema=MarkNotificationReadInput,
            handler=_mark_read,
            mutates_data=True,
        ),
        ToolDefinition(
            name="send_bulk_notification",
            category=CATEGORY,
            description="Send the same notification to several users at once.",
            args_schema=SendBulkNotificationInput,
            handler=_send_bulk,
            mutates_data=True,
        ),
    ]
