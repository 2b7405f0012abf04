"""Tool registry and base tool class."""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Sequence

from pydantic import BaseModel, Field

from appwrite_agent.config import get_config
from appwrite_agent.exceptions import (
    BackendAPIError,
    ToolDisabledError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from appwrite_agent.logging import get_logger

if TYPE_CHECKING:
    from appwrite_agent.attachments import FileAttachment
    from appwrite_agent.context import AIContext, Project
    from appwrite_agent.tools.appwrite import BackendClient

log = get_logger(__name__)

MAX_LIST_LIMIT = 100


class ToolCategory(str, Enum):
    """Coarse tool groups that can be switched on and off together."""

    DATABASE = "database"
    STORAGE = "storage"
    FUNCTIONS = "functions"
    USERS = "users"
    TEAMS = "teams"


def normalize_categories(categories: Iterable[ToolCategory | str] | None) -> frozenset[ToolCategory]:
    """Coerce category names into a frozenset, ignoring unknown names."""
    result: set[ToolCategory] = set()
    for item in categories or ():
        try:
            result.add(ToolCategory(str(getattr(item, "value", item)).strip().lower()))
        except ValueError:
            log.warning("Ignoring unknown tool category", category=str(item))
    return frozenset(result)


class ToolResult(BaseModel):
    """Outcome of one tool call, as shown to the model and the user."""

    name: str
    response: Any = None

    @property
    def is_error(self) -> bool:
        return isinstance(self.response, dict) and "error" in self.response

    @classmethod
    def failure(cls, name: str, message: str) -> "ToolResult":
        return cls(name=name, response={"error": message or "Tool execution failed"})


class ToolSchema(BaseModel):
    """What the model is told about a tool."""

    name: str
    category: ToolCategory
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    def declaration(self) -> dict[str, Any]:
        """Function declaration accepted by the model API."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolInvocation:
    """Per-call scope handed to a tool's ``execute``."""

    context: "AIContext"
    client: "BackendClient"
    attachments: Sequence["FileAttachment"] = field(default_factory=tuple)


class Tool(ABC):
    """Base class for all backend tools."""

    name: str = ""
    category: ToolCategory = ToolCategory.DATABASE
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}
    timeout_seconds: float | None = None

    @abstractmethod
    async def execute(self, invocation: ToolInvocation, **kwargs: Any) -> Any:
        """Execute the tool.

        Args:
            invocation: Active context, backend client and turn attachments
            **kwargs: Tool-specific arguments from the model

        Returns:
            JSON-serializable payload
        """
        pass

    def get_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            category=self.category,
            description=self.description,
            parameters=self.parameters,
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check required arguments are present and fit ``execute``.

        Raises:
            ToolExecutionError if a required argument is missing or the
            arguments cannot be bound to the handler's signature
        """
        required = self.parameters.get("required", [])
        for name in required:
            if arguments.get(name) in (None, ""):
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {name}",
                )
        try:
            inspect.signature(self.execute).bind(None, **arguments)
        except TypeError as e:
            raise ToolExecutionError(self.name, f"Invalid arguments: {e}")

    def require_id(self, explicit: Any, selected: Any, kind: str) -> str:
        """Use an explicit id, else the id of the active selection."""
        value = str(explicit or "").strip()
        if value:
            return value
        if selected is not None:
            return selected.id
        title = kind[:1].upper() + kind[1:]
        raise ToolExecutionError(
            self.name,
            f"{title} ID is missing. Please provide a {kind}Id or select a {kind} from the context menu.",
        )

    @staticmethod
    def clamp_limit(value: Any, default: int = MAX_LIST_LIMIT) -> int:
        try:
            limit = int(value) if value is not None else default
        except (TypeError, ValueError):
            limit = default
        return max(1, min(limit, MAX_LIST_LIMIT))


ClientFactory = Callable[["Project"], "BackendClient"]


def _default_client_factory(project: "Project") -> "BackendClient":
    from appwrite_agent.tools.appwrite import BackendClient

    return BackendClient(project)


class ToolRegistry:
    """Static catalog of tools keyed by name."""

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        timeout_seconds: float = 60.0,
    ):
        self._tools: dict[str, Tool] = {}
        self._client_factory = client_factory or _default_client_factory
        self._clients: dict[tuple[str, str, str, str], "BackendClient"] = {}
        self.timeout_seconds = timeout_seconds

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError("Tool must have a name")
        log.debug("Registering tool", tool=tool.name, category=tool.category.value)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def categories(self) -> list[ToolCategory]:
        """Categories that have at least one registered tool."""
        return sorted({tool.category for tool in self._tools.values()}, key=lambda c: c.value)

    def list_tools(self, enabled_categories: Iterable[ToolCategory | str] | None = None) -> list[str]:
        return [schema.name for schema in self.resolve(enabled_categories)]

    def resolve(self, enabled_categories: Iterable[ToolCategory | str] | None = None) -> list[ToolSchema]:
        """Schemas of tools whose category is enabled.

        ``None`` means every category is enabled.
        """
        enabled = (
            set(ToolCategory)
            if enabled_categories is None
            else normalize_categories(enabled_categories)
        )
        return [
            tool.get_schema()
            for tool in self._tools.values()
            if tool.category in enabled
        ]

    def _client_for(self, project: "Project") -> "BackendClient":
        key = (project.id, project.endpoint, project.project_id, project.api_key)
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(project)
            self._clients[key] = client
        return client

    async def dispatch(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: "AIContext",
        enabled_categories: Iterable[ToolCategory | str] | None = None,
        attachments: Sequence["FileAttachment"] = (),
    ) -> Any:
        """Run one tool against the backend.

        Raises:
            ToolNotFoundError if the name is unknown
            ToolDisabledError if the tool's category is switched off
            ToolExecutionError if the handler fails or times out
        """
        tool = self.get(name)
        if enabled_categories is not None and tool.category not in normalize_categories(enabled_categories):
            raise ToolDisabledError(name, tool.category.value)

        arguments = dict(args or {})
        tool.validate_arguments(arguments)

        invocation = ToolInvocation(
            context=context,
            client=self._client_for(context.project),
            attachments=tuple(attachments),
        )
        timeout_seconds = max(1.0, float(tool.timeout_seconds or self.timeout_seconds))
        try:
            return await asyncio.wait_for(
                tool.execute(invocation, **arguments),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(name, f"Execution timed out after {timeout_label}s")
        except ToolError:
            raise
        except BackendAPIError as e:
            raise ToolExecutionError(name, f"Appwrite API Error: {e}")
        except Exception as e:
            log.error("Tool handler failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e))

    async def close(self) -> None:
        """Close cached backend clients."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()


# Global registry
_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry, populated with the backend tool catalog."""
    global _registry
    if _registry is None:
        from appwrite_agent.tools import register_default_tools

        _registry = ToolRegistry(timeout_seconds=get_config().tools.timeout_seconds)
        register_default_tools(_registry)
    return _registry


def set_tool_registry(registry: ToolRegistry) -> None:
    """Set the global tool registry."""
    global _registry
    _registry = registry
