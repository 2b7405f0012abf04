"""Cloud function tools."""

from typing import Any

from appwrite_agent.tools.registry import Tool, ToolCategory, ToolInvocation

_FUNCTION_ID = {"type": "string", "description": "Optional. The function ID. Defaults to the active context."}


class _FunctionsTool(Tool):
    category = ToolCategory.FUNCTIONS

    def function_id(self, invocation: ToolInvocation, explicit: Any) -> str:
        return self.require_id(explicit, invocation.context.function, "function")


class ListFunctionsTool(_FunctionsTool):
    name = "listFunctions"
    description = "Lists all functions in the current project."
    parameters = {
        "type": "object",
        "properties": {
            "limit": {"type": "integer", "description": "Optional. The maximum number of functions to return. Default is 100. Maximum is 100."},
        },
    }

    async def execute(self, invocation: ToolInvocation, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get("/functions", limit=self.clamp_limit(limit))


class GetFunctionTool(_FunctionsTool):
    name = "getFunction"
    description = "Gets a function's details. Uses the active function from the context if ID is not provided."
    parameters = {"type": "object", "properties": {"functionId": _FUNCTION_ID}}

    async def execute(self, invocation: ToolInvocation, functionId: str | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get(f"/functions/{self.function_id(invocation, functionId)}")


class ListFunctionExecutionsTool(_FunctionsTool):
    name = "listFunctionExecutions"
    description = "Get a list of all the function's executions (logs). Uses the active function from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {
            "functionId": _FUNCTION_ID,
            "limit": {"type": "integer", "description": "Optional. The maximum number of executions to return. Default is 100. Maximum is 100."},
        },
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        functionId: str | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> Any:
        function_id = self.function_id(invocation, functionId)
        return await invocation.client.get(
            f"/functions/{function_id}/executions",
            limit=self.clamp_limit(limit),
        )


FUNCTIONS_TOOLS: list[type[Tool]] = [
    ListFunctionsTool,
    GetFunctionTool,
    ListFunctionExecutionsTool,
]
