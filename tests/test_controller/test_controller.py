from typing import Any

import pytest

from appwrite_agent.attachments import FileAttachment
from appwrite_agent.config import Config
from appwrite_agent.controller import AgentController
from appwrite_agent.exceptions import AttachmentValidationError, SessionBusyError, ValidationError
from appwrite_agent.llm import FinalText, ModelBackend, ModelSession, ToolCall, ToolCallRequest
from appwrite_agent.messages import ActionMessage, ModelMessage, UserMessage
from appwrite_agent.orchestrator import SESSION_NOT_READY
from appwrite_agent.session import SessionState
from appwrite_agent.tools import register_default_tools
from appwrite_agent.tools.registry import ToolRegistry

PROJECTS = [
    {"id": "shop", "name": "Shop", "endpoint": "https://example.test/v1", "project_id": "shop-1", "api_key": "k1"},
    {"id": "blog", "name": "Blog", "endpoint": "https://example.test/v1", "project_id": "blog-1", "api_key": "k2"},
]


class StubClient:
    def __init__(self, listings: dict[str, Any] | None = None):
        self.listings = listings or {}
        self.paths: list[str] = []

    async def get(self, path: str, limit: int | None = None, **params: Any) -> Any:
        self.paths.append(path)
        return self.listings.get(path, {"total": 0})

    async def close(self) -> None:
        pass


class ScriptedChat(ModelSession):
    def __init__(self, backend: "ScriptedBackend", settings, history):
        self.backend = backend
        self.settings = settings
        self._history = list(history or [])

    @property
    def history(self) -> list:
        return list(self._history)

    def _next(self):
        item = self.backend.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message, files=()):
        self._history.append({"role": "user", "parts": [{"text": message}]})
        for event in self._next():
            yield event

    async def send_tool_results(self, results):
        for event in self._next():
            yield event

    def discard_turn(self):
        self.backend.discarded += 1


class ScriptedBackend(ModelBackend):
    def __init__(self):
        self.script: list = []
        self.sessions: list[ScriptedChat] = []
        self.fail_with: Exception | None = None
        self.discarded = 0

    def create_session(self, settings, history=None):
        if self.fail_with is not None:
            raise self.fail_with
        session = ScriptedChat(self, settings, history)
        self.sessions.append(session)
        return session


def _controller(client: StubClient | None = None, **config_values):
    client = client or StubClient()
    backend = ScriptedBackend()
    registry = register_default_tools(ToolRegistry(client_factory=lambda project: client))
    errors: list[str | None] = []
    values = {"projects": PROJECTS, "audit": {"enabled": False}}
    values.update(config_values)
    controller = AgentController(
        config=Config(**values),
        backend=backend,
        registry=registry,
        on_error=errors.append,
    )
    return controller, backend, client, errors


def test_no_project_means_no_session():
    controller, backend, _, _ = _controller()

    assert controller.context is None
    assert controller.session_state == SessionState.UNINITIALIZED
    assert backend.sessions == []


def test_active_project_is_selected_on_start():
    controller, backend, _, _ = _controller(active_project="blog")

    assert controller.context.project.name == "Blog"
    assert controller.session_state == SessionState.READY
    assert len(backend.sessions) == 1


def test_select_project_builds_session():
    controller, backend, _, _ = _controller()

    controller.select_project("shop")

    assert controller.session_state == SessionState.READY
    assert len(backend.sessions) == 1
    assert any(line.endswith("AI session ready.") for line in controller.logs)


def test_unknown_project_is_rejected():
    controller, _, _, _ = _controller()

    with pytest.raises(ValidationError, match="Unknown project"):
        controller.select_project("missing")


def test_project_switch_clears_chat():
    controller, backend, _, _ = _controller(active_project="shop")
    controller.timeline.append(UserMessage(content="hi"))

    controller.select_project("blog")

    assert controller.messages == []
    assert len(backend.sessions) == 2


def test_database_selection_keeps_chat_and_updates_instruction():
    controller, backend, _, _ = _controller(active_project="shop")
    controller.timeline.append(UserMessage(content="hi"))

    controller.select_database({"$id": "main", "name": "Main"})

    assert len(controller.messages) == 1
    assert controller.context.database.id == "main"
    assert 'active database is "Main"' in backend.sessions[-1].settings.system_instruction


def test_disabling_storage_removes_storage_tools():
    controller, backend, _, _ = _controller(active_project="shop")

    controller.set_tool_enabled("storage", False)

    names = {tool["name"] for tool in backend.sessions[-1].settings.tools}
    assert "listBuckets" not in names
    assert "listDatabases" in names
    assert any(line.endswith("Disabled storage tools.") for line in controller.logs)


def test_session_failure_is_reported_as_error():
    controller, backend, _, errors = _controller()
    backend.fail_with = ValueError("Gemini API Key is not configured.")

    controller.select_project("shop")

    assert controller.session_state == SessionState.FAILED
    assert controller.error == "Gemini API Key is not configured."
    assert errors[-1] == "Gemini API Key is not configured."


def test_too_many_files_set_error():
    controller, _, _, errors = _controller(active_project="shop")
    files = [FileAttachment(name=f"{i}.txt", data=b"x") for i in range(6)]

    with pytest.raises(AttachmentValidationError):
        controller.validate_files(files)

    assert controller.error == "You can select a maximum of 5 files at a time."
    assert errors == ["You can select a maximum of 5 files at a time."]


@pytest.mark.asyncio
async def test_send_runs_tools_and_answers():
    client = StubClient({"/databases": {"total": 1, "databases": [{"$id": "main", "name": "Main"}]}})
    controller, backend, _, _ = _controller(client, active_project="shop")
    backend.script = [
        [ToolCallRequest(calls=[ToolCall(name="listDatabases")])],
        [FinalText(text="You have one database: Main.")],
    ]

    assert await controller.send("what databases do I have?") is True

    messages = controller.messages
    assert [type(m) for m in messages] == [UserMessage, ActionMessage, ModelMessage]
    assert messages[1].tool_results[0].response["total"] == 1
    assert messages[2].content == "You have one database: Main."
    assert client.paths == ["/databases"]
    assert controller.error is None
    assert controller.is_busy is False


@pytest.mark.asyncio
async def test_send_failure_sets_error():
    controller, backend, _, _ = _controller(active_project="shop")
    backend.script = [RuntimeError("quota exceeded")]

    await controller.send("hi")

    assert controller.error == "quota exceeded"
    assert controller.messages[-1].content == "Error: quota exceeded"


@pytest.mark.asyncio
async def test_send_without_project_is_refused():
    controller, _, _, _ = _controller()

    assert await controller.send("hi") is False

    assert controller.messages == []
    assert controller.error == SESSION_NOT_READY


@pytest.mark.asyncio
async def test_send_with_failed_session_keeps_session_error():
    controller, backend, _, errors = _controller()
    backend.fail_with = ValueError("Gemini API Key is not configured.")
    controller.select_project("shop")

    assert await controller.send("hi") is False

    assert controller.messages == []
    assert controller.error == "Gemini API Key is not configured."
    assert None not in errors


@pytest.mark.asyncio
async def test_failed_turn_is_discarded_from_session():
    controller, backend, _, _ = _controller(active_project="shop")
    backend.script = [RuntimeError("quota exceeded")]

    await controller.send("hi")

    assert backend.discarded == 1


def test_clear_chat_starts_fresh_session():
    controller, backend, _, _ = _controller(active_project="shop")
    controller.timeline.append(UserMessage(content="hi"))

    controller.clear_chat()

    assert controller.messages == []
    assert len(backend.sessions) == 2
    assert backend.sessions[-1].history == []
    assert any(line.endswith("Chat history cleared by user.") for line in controller.logs)


def test_clear_chat_refused_while_busy():
    controller, _, _, _ = _controller(active_project="shop")
    controller.orchestrator._busy = True

    with pytest.raises(SessionBusyError):
        controller.clear_chat()


@pytest.mark.asyncio
async def test_refresh_context_drops_vanished_selections():
    client = StubClient({
        "/databases": {"total": 1, "databases": [{"$id": "main", "name": "Main"}]},
        "/storage/buckets": {"total": 0, "buckets": []},
        "/functions": {"total": 0, "functions": []},
    })
    controller, backend, _, _ = _controller(client, active_project="shop")
    controller.select_database({"$id": "main", "name": "Main"})
    controller.select_bucket({"$id": "avatars", "name": "Avatars"})
    sessions_before = len(backend.sessions)

    listings = await controller.refresh_context()

    assert [d["$id"] for d in listings["databases"]] == ["main"]
    assert controller.context.database.id == "main"
    assert controller.context.bucket is None
    assert "/databases/main/collections" in client.paths
    assert len(backend.sessions) == sessions_before + 1
    assert any("Found 1 databases, 0 buckets, and 0 functions" in line for line in controller.logs)
