"""Concurrent execution of a batch of model tool calls."""

import asyncio
import json
import time
from typing import Any, Iterable, Sequence

from appwrite_agent.attachments import FileAttachment
from appwrite_agent.audit import AuditEntry, AuditLog
from appwrite_agent.context import AIContext
from appwrite_agent.llm import ToolCall
from appwrite_agent.logging import LogSink, emit, get_logger
from appwrite_agent.tools.registry import ToolCategory, ToolRegistry, ToolResult

log = get_logger(__name__)


def _compact(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


class ToolExecutionDispatcher:
    """Runs every call of a model round concurrently and collects results.

    A failing call never fails the batch; it becomes an ``{"error": ...}``
    result at the same position as its call.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        log_sink: LogSink | None = None,
        audit: AuditLog | None = None,
    ):
        self.registry = registry
        self.log_sink = log_sink
        self.audit = audit

    async def execute_batch(
        self,
        calls: Sequence[ToolCall],
        context: AIContext,
        enabled_categories: Iterable[ToolCategory | str] | None = None,
        attachments: Sequence[FileAttachment] = (),
    ) -> list[ToolResult]:
        if not calls:
            return []
        enabled = None if enabled_categories is None else list(enabled_categories)
        log.info("Executing tool batch", calls=[c.name for c in calls])
        return list(await asyncio.gather(*(
            self._execute_one(call, context, enabled, attachments)
            for call in calls
        )))

    async def _execute_one(
        self,
        call: ToolCall,
        context: AIContext,
        enabled_categories: list[ToolCategory | str] | None,
        attachments: Sequence[FileAttachment],
    ) -> ToolResult:
        emit(self.log_sink, f"Executing tool: {call.name} with args: {_compact(call.args)}")
        started = time.perf_counter()
        try:
            response = await self.registry.dispatch(
                call.name,
                call.args,
                context,
                enabled_categories=enabled_categories,
                attachments=attachments,
            )
            result = ToolResult(name=call.name, response=response)
        except Exception as e:
            log.error("Tool execution failed", tool=call.name, error=str(e))
            result = ToolResult.failure(call.name, str(e))
        duration_ms = int((time.perf_counter() - started) * 1000)

        status = "error" if result.is_error else "success"
        emit(
            self.log_sink,
            f"Tool execution result for {call.name} ({status}, {duration_ms}ms): {_compact(result.response)}",
        )
        log.info("Tool finished", tool=call.name, status=status, duration_ms=duration_ms)

        if self.audit is not None:
            await self.audit.record(AuditEntry(
                project_id=context.project.id,
                tool_name=call.name,
                args=dict(call.args or {}),
                status=status,
                result=result.response,
                duration_ms=duration_ms,
            ))
        return result
