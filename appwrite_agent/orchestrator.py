"""Turn orchestration: user input to model, tools, and back."""

from enum import Enum
from typing import AsyncIterator, Iterable, Sequence

from appwrite_agent.attachments import FileAttachment, describe_attachments
from appwrite_agent.context import AIContext
from appwrite_agent.dispatcher import ToolExecutionDispatcher
from appwrite_agent.exceptions import SessionUnavailableError, ToolRoundLimitError, ValidationError
from appwrite_agent.instructions import InstructionLoader
from appwrite_agent.llm import (
    FinalText,
    GroundingChunks,
    ModelEvent,
    ModelSession,
    TextDelta,
    ToolCall,
    ToolCallRequest,
)
from appwrite_agent.logging import LogSink, emit, get_logger
from appwrite_agent.messages import ActionMessage, MessageTimeline, ModelMessage, UserMessage
from appwrite_agent.tools.registry import ToolCategory, ToolResult

log = get_logger(__name__)

SESSION_NOT_READY = "AI session is not initialized. Please select a project and check your settings."


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FAILED = "failed"


class TurnOrchestrator:
    """Drives one chat turn at a time against a model session.

    Messages are published through the timeline: the user message first,
    then for every tool round a loading ActionMessage that is patched once
    with its results, and finally the model's text. Failures end the turn
    with an ``Error: ...`` model message, drop the failed turn from the
    session history and return the orchestrator to IDLE; nothing is retried.
    """

    def __init__(
        self,
        timeline: MessageTimeline,
        dispatcher: ToolExecutionDispatcher,
        log_sink: LogSink | None = None,
        max_tool_rounds: int = 10,
        instructions: InstructionLoader | None = None,
    ):
        self.timeline = timeline
        self.dispatcher = dispatcher
        self.log_sink = log_sink
        self.max_tool_rounds = max(1, int(max_tool_rounds))
        self.instructions = instructions or InstructionLoader()
        self.state = TurnState.IDLE
        self.last_error: str | None = None
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def run_turn(
        self,
        text: str,
        files: Sequence[FileAttachment] = (),
        session: ModelSession | None = None,
        context: AIContext | None = None,
        enabled_categories: Iterable[ToolCategory | str] | None = None,
    ) -> bool:
        """Run one turn to completion or failure.

        Returns:
            False when another turn is in flight and nothing was done

        Raises:
            ValidationError for empty input without files
        """
        prompt = (text or "").strip()
        files = list(files or ())
        if not prompt and not files:
            raise ValidationError("Message is empty.")
        if self._busy:
            log.warning("Turn rejected, another turn is in flight")
            return False

        self._busy = True
        self.last_error = None
        pending: ActionMessage | None = None
        try:
            self.state = TurnState.SENDING
            self.timeline.append(UserMessage(content=prompt, files=[f.info() for f in files]))
            file_note = f" (with files: {', '.join(f.name for f in files)})" if files else ""
            emit(self.log_sink, f"--- USER: {prompt}{file_note} ---")

            if session is None or context is None:
                raise SessionUnavailableError(SESSION_NOT_READY)

            emit(
                self.log_sink,
                f'Targeting project: "{context.project.name}" ({context.project.project_id})',
            )
            events = session.send(describe_attachments(prompt, files, self.instructions), files)
            rounds = 0
            while True:
                self.state = TurnState.AWAITING_MODEL
                calls = await self._consume(events)
                if not calls:
                    emit(self.log_sink, "No more tool calls. AI run finished.")
                    break

                rounds += 1
                if rounds > self.max_tool_rounds:
                    raise ToolRoundLimitError(self.max_tool_rounds)

                emit(self.log_sink, f"Model wants to call tools: {[c.name for c in calls]}")
                pending = ActionMessage(tool_calls=list(calls))
                self.timeline.append(pending)

                self.state = TurnState.EXECUTING_TOOLS
                results = await self.dispatcher.execute_batch(
                    calls,
                    context,
                    enabled_categories=enabled_categories,
                    attachments=files,
                )
                self.timeline.patch(pending.id, pending.completed(results))
                pending = None

                emit(self.log_sink, f"Sending {len(results)} tool result(s) to AI.")
                events = session.send_tool_results(results)
        except Exception as e:
            self._fail(e, pending, session)
        finally:
            self.state = TurnState.IDLE
            self._busy = False
        return True

    async def _consume(self, events: AsyncIterator[ModelEvent]) -> list[ToolCall]:
        """Publish the text of one model response and return its tool calls."""
        text_parts: list[str] = []
        grounding: list[dict] = []
        calls: list[ToolCall] = []
        async for event in events:
            if isinstance(event, (TextDelta, FinalText)):
                text_parts.append(event.text)
            elif isinstance(event, GroundingChunks):
                grounding.extend(event.chunks)
            elif isinstance(event, ToolCallRequest):
                calls.extend(event.calls)

        text = "".join(text_parts)
        if text.strip():
            if calls:
                emit(self.log_sink, f"AI intermediate response: {text}")
            self.timeline.append(ModelMessage(content=text, grounding_chunks=grounding or None))
        return calls

    def _fail(
        self,
        error: Exception,
        pending: ActionMessage | None,
        session: ModelSession | None,
    ) -> None:
        message = str(error) or error.__class__.__name__
        log.error("Turn failed", error=message, error_type=error.__class__.__name__)
        emit(self.log_sink, f"ERROR: {message}")
        if pending is not None:
            self.timeline.patch(
                pending.id,
                pending.completed([ToolResult.failure(c.name, message) for c in pending.tool_calls]),
            )
        if session is not None:
            session.discard_turn()
        self.timeline.append(ModelMessage(content=f"Error: {message}"))
        self.last_error = message
        self.state = TurnState.FAILED
