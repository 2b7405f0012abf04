"""Application-facing controller tying selection, session and turns together."""

from typing import Any, Callable, Sequence, TypeVar

from appwrite_agent.attachments import FileAttachment, validate_attachments
from appwrite_agent.audit import AuditLog
from appwrite_agent.config import Config, ProjectConfig, get_config
from appwrite_agent.context import (
    AIContext,
    BackendFunction,
    Bucket,
    Collection,
    ContextSelection,
    Database,
    Project,
    Resource,
)
from appwrite_agent.dispatcher import ToolExecutionDispatcher
from appwrite_agent.exceptions import AgentError, SessionBusyError, ValidationError
from appwrite_agent.llm import ModelBackend, create_backend
from appwrite_agent.logging import ExecutionLog, LogSink, get_logger
from appwrite_agent.messages import Message, MessageCallback, MessageTimeline
from appwrite_agent.orchestrator import SESSION_NOT_READY, TurnOrchestrator
from appwrite_agent.session import SessionConfig, SessionManager, SessionState
from appwrite_agent.tools.registry import (
    ToolCategory,
    ToolRegistry,
    get_tool_registry,
    normalize_categories,
)

log = get_logger(__name__)

ResourceT = TypeVar("ResourceT", bound=Resource)
ErrorCallback = Callable[[str | None], None]


def _coerce(model: type[ResourceT], value: ResourceT | dict[str, Any] | None) -> ResourceT | None:
    if value is None or isinstance(value, model):
        return value
    return model.model_validate(value)


class AgentController:
    """Single owner of the chat state a UI renders.

    Every mutation re-synchronises the model session. While a turn is in
    flight the rebuild is deferred and applied when the turn ends.
    """

    def __init__(
        self,
        config: Config | None = None,
        backend: ModelBackend | None = None,
        registry: ToolRegistry | None = None,
        audit: AuditLog | None = None,
        on_message: MessageCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_log: LogSink | None = None,
    ):
        self.config = config or get_config()
        self.registry = registry or get_tool_registry()
        self.backend = backend or create_backend(
            provider=self.config.model.provider,
            base_url=self.config.model.base_url or None,
            allowed_models=self.config.model.allowed,
            streaming=self.config.model.streaming,
            timeout=self.config.model.timeout,
        )
        if audit is None and self.config.audit.enabled:
            audit = AuditLog(self.config.audit.path)
        self.audit = audit
        self.on_error = on_error

        self.execution_log = ExecutionLog(listener=on_log)
        self.timeline = MessageTimeline()
        if on_message is not None:
            self.timeline.subscribe(on_message)

        self.selection = ContextSelection()
        self.model = self.config.model.model
        self.thinking_enabled = self.config.model.thinking_enabled
        self.api_key: str | None = self.config.model.api_key or None
        self._enabled = normalize_categories(self.config.tools.enabled_categories())
        self._error: str | None = None
        self._rebuild_pending = False

        self.dispatcher = ToolExecutionDispatcher(
            self.registry,
            log_sink=self.execution_log,
            audit=self.audit,
        )
        self.orchestrator = TurnOrchestrator(
            self.timeline,
            self.dispatcher,
            log_sink=self.execution_log,
            max_tool_rounds=self.config.chat.max_tool_rounds,
        )
        self.sessions = SessionManager(
            self.backend,
            self.registry,
            self.timeline,
            log_sink=self.execution_log,
            replay_history=self.config.chat.replay_history_on_rebuild,
            temperature=self.config.model.temperature,
            is_busy=lambda: self.orchestrator.is_busy,
        )
        self.timeline.on_clear(self.sessions.reset)

        if self.config.active_project:
            self.select_project(self.config.active_project)

    # Read API

    @property
    def messages(self) -> list[Message]:
        return self.timeline.snapshot()

    @property
    def is_busy(self) -> bool:
        return self.orchestrator.is_busy

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def context(self) -> AIContext | None:
        return self.selection.bind()

    @property
    def enabled_categories(self) -> frozenset[ToolCategory]:
        return self._enabled

    @property
    def session_state(self) -> SessionState:
        return self.sessions.state

    @property
    def logs(self) -> list[str]:
        return self.execution_log.lines()

    @property
    def projects(self) -> list[ProjectConfig]:
        return list(self.config.projects)

    # Mutations

    def select_project(self, project: Project | ProjectConfig | str | None) -> None:
        """Switch the active project by instance or configured id."""
        if isinstance(project, str):
            entry = self.config.get_project(project)
            if entry is None:
                raise ValidationError(f"Unknown project: {project}")
            project = entry
        if isinstance(project, ProjectConfig):
            project = Project.from_config(project)
        self.selection.select_project(project)
        self._sync_session()

    def select_database(self, database: Database | dict[str, Any] | None) -> None:
        self.selection.select_database(_coerce(Database, database))
        self._sync_session()

    def select_collection(self, collection: Collection | dict[str, Any] | None) -> None:
        self.selection.select_collection(_coerce(Collection, collection))
        self._sync_session()

    def select_bucket(self, bucket: Bucket | dict[str, Any] | None) -> None:
        self.selection.select_bucket(_coerce(Bucket, bucket))
        self._sync_session()

    def select_function(self, function: BackendFunction | dict[str, Any] | None) -> None:
        self.selection.select_function(_coerce(BackendFunction, function))
        self._sync_session()

    def set_tool_enabled(self, category: ToolCategory | str, enabled: bool) -> None:
        target = normalize_categories([category])
        if not target:
            raise ValidationError(f"Unknown tool category: {category}")
        self._enabled = self._enabled | target if enabled else self._enabled - target
        self.execution_log.write(
            f"{'Enabled' if enabled else 'Disabled'} {', '.join(c.value for c in target)} tools."
        )
        self._sync_session()

    def set_model(self, model: str) -> None:
        self.model = str(model).strip()
        self._sync_session()

    def set_thinking(self, enabled: bool) -> None:
        self.thinking_enabled = bool(enabled)
        self._sync_session()

    def set_api_key(self, api_key: str | None) -> None:
        self.api_key = (api_key or "").strip() or None
        self._sync_session()

    def clear_chat(self) -> None:
        """Empty the timeline and start a fresh session for the same context."""
        if self.is_busy:
            raise SessionBusyError("Cannot clear the chat while a turn is in progress.")
        self.timeline.clear()
        self.execution_log.write("Chat history cleared by user.")
        self._update_error_from_session()

    def validate_files(self, files: Sequence[FileAttachment]) -> None:
        """Check attachment limits, reporting a violation as the current error."""
        try:
            validate_attachments(
                files,
                max_count=self.config.chat.max_files,
                max_bytes=self.config.chat.max_file_bytes,
            )
        except ValidationError as e:
            self._set_error(str(e))
            raise

    async def send(self, text: str, files: Sequence[FileAttachment] = ()) -> bool:
        """Submit a user turn.

        Returns:
            False if a turn is already in flight or there is no usable
            session; the timeline is left untouched in both cases

        Raises:
            ValidationError for empty input or attachments over the limits
        """
        files = list(files or ())
        self.validate_files(files)
        if self.is_busy:
            return False

        self._sync_session()
        if self.sessions.session is None:
            log.warning("Send refused, no AI session", state=self.sessions.state.value)
            self._set_error(self.sessions.error or SESSION_NOT_READY)
            return False

        self._set_error(None)
        try:
            ran = await self.orchestrator.run_turn(
                text,
                files,
                session=self.sessions.session,
                context=self.selection.bind(),
                enabled_categories=self._enabled,
            )
        finally:
            if self._rebuild_pending:
                self._rebuild_pending = False
                self._sync_session()
        if self.orchestrator.last_error:
            self._set_error(self.orchestrator.last_error)
        return ran

    async def refresh_context(self) -> dict[str, list[dict[str, Any]]]:
        """Fetch the project's resources and drop selections that vanished.

        Returns:
            Listings keyed by ``databases``, ``collections``, ``buckets`` and
            ``functions`` (``collections`` only when a database is selected)
        """
        context = self.selection.bind()
        if context is None:
            return {}
        self.execution_log.write(f'Refreshing context for project "{context.project.name}"...')
        listings: dict[str, list[dict[str, Any]]] = {}
        try:
            for key, tool_name, payload_key in (
                ("databases", "listDatabases", "databases"),
                ("buckets", "listBuckets", "buckets"),
                ("functions", "listFunctions", "functions"),
            ):
                response = await self.registry.dispatch(tool_name, {}, context)
                listings[key] = list(response.get(payload_key) or [])
            if context.database is not None:
                response = await self.registry.dispatch(
                    "listCollections",
                    {"databaseId": context.database.id},
                    context,
                )
                listings["collections"] = list(response.get("collections") or [])
        except AgentError as e:
            self.execution_log.write(f"ERROR fetching context: {e}")
            self._set_error(str(e))
            return listings

        cleared = self.selection.prune(
            databases=listings.get("databases"),
            collections=listings.get("collections"),
            buckets=listings.get("buckets"),
            functions=listings.get("functions"),
        )
        self.execution_log.write(
            f"Refreshed context: Found {len(listings['databases'])} databases, "
            f"{len(listings['buckets'])} buckets, and {len(listings['functions'])} functions."
        )
        if cleared:
            log.info("Cleared stale selections", cleared=cleared)
            self._sync_session()
        return listings

    async def close(self) -> None:
        await self.backend.close()
        await self.registry.close()
        if self.audit is not None:
            await self.audit.close()

    # Internals

    def _session_config(self) -> SessionConfig:
        project = self.selection.project
        return SessionConfig(
            project_id=project.id if project else None,
            enabled_tools=self._enabled,
            model=self.model,
            context=self.selection.bind(),
            thinking_enabled=self.thinking_enabled,
            api_key=self.api_key,
        )

    def _sync_session(self) -> None:
        if self.is_busy:
            self._rebuild_pending = True
            return
        try:
            self.sessions.ensure_session(self._session_config())
        except SessionBusyError:
            self._rebuild_pending = True
            return
        self._update_error_from_session()

    def _update_error_from_session(self) -> None:
        if self.sessions.state == SessionState.FAILED:
            self._set_error(self.sessions.error)
        elif self.sessions.state == SessionState.READY:
            self._set_error(None)

    def _set_error(self, message: str | None) -> None:
        if message == self._error:
            return
        self._error = message
        if self.on_error is not None:
            self.on_error(message)
