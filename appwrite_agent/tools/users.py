"""User and team management tools."""

from typing import Any

from appwrite_agent.tools.appwrite import resolve_id
from appwrite_agent.tools.registry import Tool, ToolCategory, ToolInvocation

_LIMIT = {"type": "integer", "description": "Optional. The maximum number of items to return. Default is 100. Maximum is 100."}
_USER_ID = {"type": "string", "description": "The user ID."}
_TEAM_ID = {"type": "string", "description": "The team ID."}


class ListUsersTool(Tool):
    name = "listUsers"
    category = ToolCategory.USERS
    description = "Lists all users in the current project."
    parameters = {"type": "object", "properties": {"limit": _LIMIT}}

    async def execute(self, invocation: ToolInvocation, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get("/users", limit=self.clamp_limit(limit))


class GetUserTool(Tool):
    name = "getUser"
    category = ToolCategory.USERS
    description = "Gets a user by ID."
    parameters = {"type": "object", "properties": {"userId": _USER_ID}, "required": ["userId"]}

    async def execute(self, invocation: ToolInvocation, userId: str, **kwargs: Any) -> Any:
        return await invocation.client.get(f"/users/{userId}")


class CreateUserTool(Tool):
    name = "createUser"
    category = ToolCategory.USERS
    description = "Creates a new user."
    parameters = {
        "type": "object",
        "properties": {
            "userId": {"type": "string", "description": "Unique ID for the user. Use 'unique()' to auto-generate."},
            "email": {"type": "string", "description": "Optional. The user's email."},
            "password": {"type": "string", "description": "Optional. The user's password (min 8 chars)."},
            "name": {"type": "string", "description": "Optional. The user's name."},
        },
        "required": ["userId"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        userId: str,
        email: str | None = None,
        password: str | None = None,
        name: str | None = None,
        **kwargs: Any,
    ) -> Any:
        body: dict[str, Any] = {"userId": resolve_id(userId)}
        for key, value in (("email", email), ("password", password), ("name", name)):
            if value:
                body[key] = value
        return await invocation.client.post("/users", body)


class UpdateUserStatusTool(Tool):
    name = "updateUserStatus"
    category = ToolCategory.USERS
    description = "Blocks or unblocks a user. Set status to false to block."
    parameters = {
        "type": "object",
        "properties": {
            "userId": _USER_ID,
            "status": {"type": "boolean", "description": "True to enable the user, false to block."},
        },
        "required": ["userId", "status"],
    }

    async def execute(self, invocation: ToolInvocation, userId: str, status: bool, **kwargs: Any) -> Any:
        return await invocation.client.patch(f"/users/{userId}/status", {"status": bool(status)})


class DeleteUserTool(Tool):
    name = "deleteUser"
    category = ToolCategory.USERS
    description = "Deletes a user."
    parameters = {"type": "object", "properties": {"userId": _USER_ID}, "required": ["userId"]}

    async def execute(self, invocation: ToolInvocation, userId: str, **kwargs: Any) -> Any:
        await invocation.client.delete(f"/users/{userId}")
        return {"success": f"Successfully deleted user {userId}"}


class ListTeamsTool(Tool):
    name = "listTeams"
    category = ToolCategory.TEAMS
    description = "Lists all teams in the current project."
    parameters = {"type": "object", "properties": {"limit": _LIMIT}}

    async def execute(self, invocation: ToolInvocation, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get("/teams", limit=self.clamp_limit(limit))


class GetTeamTool(Tool):
    name = "getTeam"
    category = ToolCategory.TEAMS
    description = "Gets a team by ID."
    parameters = {"type": "object", "properties": {"teamId": _TEAM_ID}, "required": ["teamId"]}

    async def execute(self, invocation: ToolInvocation, teamId: str, **kwargs: Any) -> Any:
        return await invocation.client.get(f"/teams/{teamId}")


class CreateTeamTool(Tool):
    name = "createTeam"
    category = ToolCategory.TEAMS
    description = "Creates a new team."
    parameters = {
        "type": "object",
        "properties": {
            "teamId": {"type": "string", "description": "Unique ID for the team. Use 'unique()' to auto-generate."},
            "name": {"type": "string", "description": "The team name."},
            "roles": {"type": "array", "items": {"type": "string"}, "description": "Optional. Roles granted to the team creator."},
        },
        "required": ["teamId", "name"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        teamId: str,
        name: str,
        roles: list[str] | None = None,
        **kwargs: Any,
    ) -> Any:
        body: dict[str, Any] = {"teamId": resolve_id(teamId), "name": name}
        if roles:
            body["roles"] = list(roles)
        return await invocation.client.post("/teams", body)


class DeleteTeamTool(Tool):
    name = "deleteTeam"
    category = ToolCategory.TEAMS
    description = "Deletes a team."
    parameters = {"type": "object", "properties": {"teamId": _TEAM_ID}, "required": ["teamId"]}

    async def execute(self, invocation: ToolInvocation, teamId: str, **kwargs: Any) -> Any:
        await invocation.client.delete(f"/teams/{teamId}")
        return {"success": f"Successfully deleted team {teamId}"}


class ListTeamMembershipsTool(Tool):
    name = "listTeamMemberships"
    category = ToolCategory.TEAMS
    description = "Lists the memberships of a team."
    parameters = {
        "type": "object",
        "properties": {"teamId": _TEAM_ID, "limit": _LIMIT},
        "required": ["teamId"],
    }

    async def execute(self, invocation: ToolInvocation, teamId: str, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get(f"/teams/{teamId}/memberships", limit=self.clamp_limit(limit))


USERS_TOOLS: list[type[Tool]] = [
    ListUsersTool,
    GetUserTool,
    CreateUserTool,
    UpdateUserStatusTool,
    DeleteUserTool,
]

TEAMS_TOOLS: list[type[Tool]] = [
    ListTeamsTool,
    GetTeamTool,
    CreateTeamTool,
    DeleteTeamTool,
    ListTeamMembershipsTool,
]
