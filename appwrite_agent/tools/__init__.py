"""Tools package: registry plus the Appwrite tool catalog."""

from appwrite_agent.tools.registry import (
    Tool,
    ToolCategory,
    ToolInvocation,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    get_tool_registry,
    set_tool_registry,
)
from appwrite_agent.tools.appwrite import BackendClient
from appwrite_agent.tools.database import DATABASE_TOOLS
from appwrite_agent.tools.functions import FUNCTIONS_TOOLS
from appwrite_agent.tools.storage import STORAGE_TOOLS
from appwrite_agent.tools.users import TEAMS_TOOLS, USERS_TOOLS

DEFAULT_TOOLS = [
    *DATABASE_TOOLS,
    *STORAGE_TOOLS,
    *FUNCTIONS_TOOLS,
    *USERS_TOOLS,
    *TEAMS_TOOLS,
]


def register_default_tools(registry: ToolRegistry) -> ToolRegistry:
    """Register every backend tool on ``registry``."""
    for tool_cls in DEFAULT_TOOLS:
        registry.register(tool_cls())
    return registry


__all__ = [
    "BackendClient",
    "DEFAULT_TOOLS",
    "Tool",
    "ToolCategory",
    "ToolInvocation",
    "ToolRegistry",
    "ToolResult",
    "ToolSchema",
    "get_tool_registry",
    "register_default_tools",
    "set_tool_registry",
]
