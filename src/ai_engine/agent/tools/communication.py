"""Messaging, channel and announcement tools."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import ToolArgs, created, listed
from ai_engine.services.clients import CommunicationServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "communication"

ChannelType = Literal["public", "private", "direct"]
AnnouncementPriority = Literal["low", "normal", "high", "urgent"]


class SendMessageInput(ToolArgs):
    channel_id: str = Field(min_length=1, description="The channel to post in")
    content: str = Field(min_length=1, max_length=4000, description="The message text")


class ListMessagesInput(ToolArgs):
    channel_id: str = Field(min_length=1)
    limit: int = Field(default=20, ge=1, le=100)


class CreateChannelInput(ToolArgs):
    name: str = Field(min_length=1)
    description: str | None = None
    type: ChannelType = "public"
    member_ids: list[str] | None = None


class ListChannelsInput(ToolArgs):
    pass


class CreateAnnouncementInput(ToolArgs):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    priority: AnnouncementPriority = "normal"


def build_tools(client: CommunicationServiceClient) -> list[ToolDefinition]:
    async def _send_message(args: SendMessageInput, auth: AuthContext) -> ToolResult:
        record = await client.send_message(args.payload(sender_id=auth.user_id))
        return created(record, "sentMessage", "Message sent successfully")

    async def _list_messages(args: ListMessagesInput, auth: AuthContext) -> ToolResult:
        messages = await client.list_messages(args.channel_id, limit=args.limit)
        return listed(messages, "messages")

    async def _create_channel(args: CreateChannelInput, auth: AuthContext) -> ToolResult:
        record = await client.create_channel(
            args.payload(organization_id=auth.organization_id, created_by_id=auth.user_id)
        )
        return created(record, "channel", f'Successfully created channel "{args.name}"')

    async def _list_channels(args: ListChannelsInput, auth: AuthContext) -> ToolResult:
        channels = await client.list_channels(auth.organization_id, user_id=auth.user_id)
        return listed(channels, "channels")

    async def _create_announcement(args: CreateAnnouncementInput, auth: AuthContext) -> ToolResult:
        record = await client.create_announcement(
            args.payload(organization_id=auth.organization_id, author_id=auth.user_id)
        )
        return created(record, "announcement", f'Announcement "{args.title}" published')

    return [
        ToolDefinition(
            name="send_message",
            category=CATEGORY,
            description="Send a message to a channel.",
            args_schema=SendMessageInput,
            handler=_send_message,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_messages",
            category=CATEGORY,
            description="List recent messages in a channel.",
            args_schema=ListMessagesInput,
            handler=_list_messages,
        ),
        ToolDefinition(
            name="create_channel",
            category=CATEGORY,
            description="Create a new communication channel.",
            args_schema=CreateChannelInput,
            handler=_create_channel,
            mutates_data=True,
        ),
        ToolDefinition(
            name="list_channels",
            category=CATEGORY,
            description="List the channels visible to the current user.",
            args_schema=ListChannelsInput,
            handler=_list_channels,
        ),
        ToolDefinition(
            name="create_announcement",
            category=CATEGORY,
            description="Publish an announcement to the whole organization.",
            args_schema=CreateAnnouncementInput,
            handler=_create_announcement,
            mutates_data=True,
        ),
    ]
