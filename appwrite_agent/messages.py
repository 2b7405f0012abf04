"""Chat messages and the ordered timeline exposed to the UI."""

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, Literal

from appwrite_agent.attachments import AttachmentInfo
from appwrite_agent.llm import ToolCall
from appwrite_agent.logging import get_logger
from appwrite_agent.tools.registry import ToolResult

log = get_logger(__name__)


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class UserMessage:
    """What the user submitted."""

    content: str
    files: list[AttachmentInfo] = field(default_factory=list)
    id: str = field(default_factory=new_message_id)
    role: Literal["user"] = "user"


@dataclass(frozen=True)
class ModelMessage:
    """Natural-language output from the model (or a turn error)."""

    content: str
    grounding_chunks: list[dict[str, Any]] | None = None
    id: str = field(default_factory=new_message_id)
    role: Literal["model"] = "model"


@dataclass(frozen=True)
class ActionMessage:
    """A batch of tool calls, loading until every call has resolved."""

    tool_calls: list[ToolCall]
    tool_results: list[ToolResult] | None = None
    is_loading: bool = True
    id: str = field(default_factory=new_message_id)
    role: Literal["action"] = "action"

    def completed(self, results: list[ToolResult]) -> "ActionMessage":
        """Same message, resolved with results."""
        return replace(self, tool_results=list(results), is_loading=False)


Message = UserMessage | ModelMessage | ActionMessage
MessageCallback = Callable[[Message], None]


class MessageTimeline:
    """Ordered, identity-keyed sequence of chat messages.

    ``patch`` replaces a message in place and falls back to ``append`` for an
    unknown id, so producers never need to know whether an id is new.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}
        self._subscribers: list[MessageCallback] = []
        self._clear_hooks: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._index

    def subscribe(self, callback: MessageCallback) -> None:
        """Register a callback invoked for every appended or patched message."""
        self._subscribers.append(callback)

    def on_clear(self, hook: Callable[[], None]) -> None:
        """Register a hook run after the timeline is cleared."""
        self._clear_hooks.append(hook)

    def _notify(self, message: Message) -> None:
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception as e:
                log.warning("Message subscriber failed", message_id=message.id, error=str(e))

    def append(self, message: Message) -> None:
        if message.id in self._index:
            raise ValueError(f"Message {message.id} is already in the timeline")
        self._index[message.id] = len(self._messages)
        self._messages.append(message)
        self._notify(message)

    def patch(self, message_id: str, message: Message) -> None:
        if message.id != message_id:
            raise ValueError("Patched message must keep its id")
        position = self._index.get(message_id)
        if position is None:
            self.append(message)
            return
        self._messages[position] = message
        self._notify(message)

    def get(self, message_id: str) -> Message | None:
        position = self._index.get(message_id)
        if position is None:
            return None
        return self._messages[position]

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()
        self._index.clear()
        for hook in list(self._clear_hooks):
            hook()
