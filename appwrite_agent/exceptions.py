"""Custom exceptions for the Appwrite agent."""


class AgentError(Exception):
    """Base exception for the Appwrite agent."""

    pass


class ConfigurationError(AgentError):
    """Configuration-related errors."""

    pass


class ValidationError(AgentError):
    """Input rejected before any message is created."""

    pass


class AttachmentValidationError(ValidationError):
    """Attached files exceed the count or size limits."""

    pass


class LLMError(AgentError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackendAPIError(AgentError):
    """Backend platform API returned an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class ToolError(AgentError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool {tool_name} not found.")
        self.tool_name = tool_name


class ToolDisabledError(ToolError):
    """Tool exists but its category is switched off."""

    def __init__(self, tool_name: str, category: str):
        super().__init__(f"Tool {tool_name} is disabled ({category} tools are turned off).")
        self.tool_name = tool_name
        self.category = category


class SessionError(AgentError):
    """Session-related errors."""

    pass


class SessionUnavailableError(SessionError):
    """No usable model session exists."""

    pass


class SessionBusyError(SessionError):
    """Session rebuild requested while a turn is in flight."""

    pass


class ProtocolError(AgentError):
    """Model conversation did not follow the turn protocol."""

    pass


class ToolRoundLimitError(ProtocolError):
    """Model kept requesting tools past the configured round limit."""

    def __init__(self, rounds: int):
        super().__init__(
            f"Model requested tools for {rounds} consecutive rounds without a final answer."
        )
        self.rounds = rounds
