"""Model session lifecycle tied to the active configuration."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from appwrite_agent.context import AIContext, describe, render_system_instruction
from appwrite_agent.exceptions import SessionBusyError
from appwrite_agent.instructions import InstructionLoader
from appwrite_agent.llm import ModelBackend, ModelSession, SessionSettings
from appwrite_agent.logging import LogSink, emit, get_logger
from appwrite_agent.messages import MessageTimeline
from appwrite_agent.tools.registry import ToolCategory, ToolRegistry

log = get_logger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    REBUILDING = "rebuilding"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionConfig:
    """Inputs a session is built from; any change triggers a rebuild."""

    project_id: str | None
    enabled_tools: frozenset[ToolCategory]
    model: str
    context: AIContext | None = None
    thinking_enabled: bool = True
    api_key: str | None = None


class SessionManager:
    """Owns the single model session and rebuilds it when its config changes.

    The previous session's history is replayed into the rebuilt one unless
    the active project changed, in which case the timeline is cleared and the
    new session starts empty.
    """

    def __init__(
        self,
        backend: ModelBackend,
        registry: ToolRegistry,
        timeline: MessageTimeline,
        log_sink: LogSink | None = None,
        replay_history: bool = True,
        temperature: float | None = None,
        instructions: InstructionLoader | None = None,
        is_busy: Callable[[], bool] | None = None,
    ):
        self.backend = backend
        self.registry = registry
        self.timeline = timeline
        self.log_sink = log_sink
        self.replay_history = replay_history
        self.temperature = temperature
        self.instructions = instructions or InstructionLoader()
        self._is_busy = is_busy or (lambda: False)

        self.state = SessionState.UNINITIALIZED
        self.error: str | None = None
        self._config: SessionConfig | None = None
        self._session: ModelSession | None = None

    @property
    def session(self) -> ModelSession | None:
        return self._session

    @property
    def config(self) -> SessionConfig | None:
        return self._config

    def ensure_session(self, config: SessionConfig) -> ModelSession | None:
        """Return a session matching ``config``, rebuilding it if needed.

        Raises:
            SessionBusyError if a turn is in flight
        """
        if config == self._config and self.state == SessionState.READY:
            return self._session
        if self._is_busy():
            raise SessionBusyError("Cannot rebuild the AI session while a turn is in progress.")

        previous = self._config
        project_changed = previous is None or previous.project_id != config.project_id

        if not config.project_id or config.context is None:
            self._config = config
            self._session = None
            self.error = None
            self.state = SessionState.UNINITIALIZED
            if project_changed:
                self._clear_timeline()
            emit(self.log_sink, "No active project. AI session not initialized.")
            return None

        history = None
        if not project_changed and self.replay_history and self._session is not None:
            history = self._session.history
        return self._build(config, history=history, clear_timeline=project_changed)

    def reset(self) -> ModelSession | None:
        """Rebuild the current session with an empty history.

        No-op while a rebuild is already running, so clearing the timeline
        from inside ``ensure_session`` does not build twice.
        """
        if self.state == SessionState.REBUILDING:
            return self._session
        config = self._config
        if config is None or not config.project_id or config.context is None:
            return None
        if self._is_busy():
            raise SessionBusyError("Cannot reset the AI session while a turn is in progress.")
        emit(self.log_sink, "Resetting AI session.")
        return self._build(config, history=None, clear_timeline=False)

    def _clear_timeline(self) -> None:
        state = self.state
        self.state = SessionState.REBUILDING
        try:
            self.timeline.clear()
        finally:
            self.state = state

    def _build(
        self,
        config: SessionConfig,
        history: list[dict[str, Any]] | None,
        clear_timeline: bool,
    ) -> ModelSession | None:
        self.state = SessionState.REBUILDING
        self._config = config
        emit(
            self.log_sink,
            f"Project context updated. {describe(config.context) or 'No specific context.'} "
            "Initializing AI session...",
        )
        if clear_timeline:
            self.timeline.clear()

        try:
            declarations = tuple(
                schema.declaration() for schema in self.registry.resolve(config.enabled_tools)
            )
            settings = SessionSettings(
                model=config.model,
                api_key=config.api_key,
                tools=declarations,
                system_instruction=render_system_instruction(config.context, self.instructions),
                thinking_enabled=config.thinking_enabled,
                temperature=self.temperature,
            )
            session = self.backend.create_session(settings, history=history)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            log.error("Failed to create AI session", project=config.project_id, error=message)
            self._session = None
            self.error = message
            self.state = SessionState.FAILED
            emit(self.log_sink, f"ERROR: {message}")
            return None

        self._session = session
        self.error = None
        self.state = SessionState.READY
        log.info(
            "AI session ready",
            project=config.project_id,
            model=config.model,
            tools=len(declarations),
            replayed_turns=len(history or []),
        )
        emit(self.log_sink, "AI session ready.")
        return session


__all__ = ["SessionConfig", "SessionManager", "SessionState"]
