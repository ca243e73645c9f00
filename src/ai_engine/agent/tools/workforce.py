"""Team, membership and skill tools."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ai_engine.agent.registry import ToolDefinition
from ai_engine.agent.tools.base import ToolArgs, created, ensure_owned, listed
from ai_engine.services.clients import WorkforceServiceClient
from ai_engine.types import AuthContext, ToolResult

CATEGORY = "workforceManagement"

TeamRole = Literal["lead", "member"]
SkillLevel = Literal["beginner", "intermediate", "advanced", "expert"]


class CreateTeamInput(ToolArgs):
    name: str = Field(min_length=1, description="The name of the team")
    description: str | None = None
    lead_id: str | None = Field(default=None, description="User ID of the team lead")


class GetTeamInput(ToolArgs):
    team_id: str = Field(min_length=1)


class ListTeamsInput(ToolArgs):
    search: str | None = None


class AddTeamMemberInput(ToolArgs):
    team_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1, description="The user to add to the team")
    role: TeamRole = "member"


class GetTeamMembersInput(ToolArgs):
    team_id: str = Field(min_length=1)


class GetUserSkillsInput(ToolArgs):
    user_id: str | None = Field(
        default=None, description="User to look up; defaults to the current user"
    )


class AddUserSkillInput(ToolArgs):
    skill_name: str = Field(min_length=1)
    level: SkillLevel = "intermediate"
    years_of_experience: float | None = Field(default=None, ge=0)
    user_id: str | None = Field(default=None, description="Defaults to the current user")


def build_tools(client: WorkforceServiceClient) -> list[ToolDefinition]:
    async def _create_team(args: CreateTeamInput, auth: AuthContext) -> ToolResult:
        record = await client.create_team(args.payload(organization_id=auth.organization_id))
        return created(record, "team", f'Successfully created team "{args.name}"')

    async def _get_team(args: GetTeamInput, auth: AuthContext) -> ToolResult:
        record = ensure_owned(await client.get_team(args.team_id), auth, "Team")
        return ToolResult.ok({"team": record}, entity_id=args.team_id)

    async def _list_teams(args: ListTeamsInput, auth: AuthContext) -> ToolResult:
        teams = await client.list_teams(auth.organization_id, search=args.search)
        return listed(teams, "teams")

    async def _add_team_member(args: AddTeamMemberInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_team(args.team_id), auth, "Team")
        record = await client.add_team_member(args.payload())
        return created(record, "membership", "Successfully added member to team")

    async def _get_team_members(args: GetTeamMembersInput, auth: AuthContext) -> ToolResult:
        ensure_owned(await client.get_team(args.team_id), auth, "Team")
        members = await client.get_team_members(args.team_id)
        return listed(members, "members")

    async def _get_user_skills(args: GetUserSkillsInput, auth: AuthContext) -> ToolResult:
        skills = await client.get_user_skills(args.user_id or auth.user_id)
        return listed(skills, "skills")

    async def _add_user_skill(args: AddUserSkillInput, auth: AuthContext) -> ToolResult:
        record = await client.add_user_skill(args.payload(user_id=args.user_id or auth.user_id))
        return created(record, "skill", f'Successfully added skill "{args.skill_name}"')

    return [
        ToolDefinition(
            name="create_team",
            category=CATEGORY,
            description="Create a new team in the organization.",
            args_schema=CreateTeamInput,
            handler=_create_team,
            mutates_data=True,
        ),
        ToolDefinition(
            name="get_team",
            category=CATEGORY,
            description="Get details of a specific team by its ID.",
            args_schema=GetTeamInput,
            handler=_get_team,
        ),
        ToolDefinition(
            name="list_teams",
            category=CATEGORY,
            description="List the organization's teams.",
            args_schema=ListTeamsInput,
            handler=_list_teams,
        ),
        ToolDefinition(
            name="add_team_member",
            category=CATEGORY,
            description="Add a user to a team as a member or lead.",
            args_schema=AddTeamMemberInput,
            handler=_add_team_member,
            mutates_data=True,
        ),
        ToolDefinition(
            name="get_team_members",
            category=CATEGORY,
            description="List the members of a team.",
            args_schema=GetTeamMembersInput,
            handler=_get_team_members,
        ),
        ToolDefinition(
            name="get_user_skills",
            category=CATEGORY,
            description="Get the skills recorded for a user.",
            args_schema=GetUserSkillsInput,
            handler=_get_user_skills,
        ),
        ToolDefinition(
            name="add_user_skill",
            category=CATEGORY,
            description="Record a skill for a user.",
            args_schema=AddUserSkillInput,
            handler=_add_user_skill,
            mutates_data=True,
        ),
    ]
