import asyncio

import pytest

from appwrite_agent.audit import AuditLog
from appwrite_agent.context import Project, bind
from appwrite_agent.dispatcher import ToolExecutionDispatcher
from appwrite_agent.llm import ToolCall
from appwrite_agent.logging import ExecutionLog
from appwrite_agent.tools.registry import Tool, ToolCategory, ToolRegistry

PROJECT = Project(
    id="p1",
    name="Shop",
    endpoint="https://cloud.example.test/v1",
    project_id="shop-prod",
    api_key="secret",
)


class DelayedTool(Tool):
    name = "delayed"
    category = ToolCategory.DATABASE

    async def execute(self, invocation, delay: float = 0, label: str = "", **kwargs):
        await asyncio.sleep(delay)
        return {"label": label}


class BrokenTool(Tool):
    name = "broken"
    category = ToolCategory.DATABASE

    async def execute(self, invocation, **kwargs):
        raise RuntimeError("disk on fire")


class BucketTool(Tool):
    name = "bucketTool"
    category = ToolCategory.STORAGE

    async def execute(self, invocation, **kwargs):
        return {"ok": True}


def _dispatcher(audit: AuditLog | None = None) -> tuple[ToolExecutionDispatcher, ExecutionLog]:
    registry = ToolRegistry(client_factory=lambda project: object())
    registry.register(DelayedTool())
    registry.register(BrokenTool())
    registry.register(BucketTool())
    sink = ExecutionLog()
    return ToolExecutionDispatcher(registry, log_sink=sink, audit=audit), sink


@pytest.mark.asyncio
async def test_results_follow_call_order_not_completion_order():
    dispatcher, _ = _dispatcher()
    calls = [
        ToolCall(name="delayed", args={"delay": 0.05, "label": "slow"}),
        ToolCall(name="delayed", args={"delay": 0, "label": "fast"}),
    ]

    results = await dispatcher.execute_batch(calls, bind(PROJECT))

    assert [r.response["label"] for r in results] == ["slow", "fast"]


@pytest.mark.asyncio
async def test_one_failure_does_not_fail_the_batch():
    dispatcher, sink = _dispatcher()
    calls = [
        ToolCall(name="delayed", args={"label": "ok"}),
        ToolCall(name="broken"),
    ]

    results = await dispatcher.execute_batch(calls, bind(PROJECT))

    assert len(results) == 2
    assert [r.is_error for r in results] == [False, True]
    assert results[1].response == {"error": "disk on fire"}
    assert any("Executing tool: broken" in line for line in sink.lines())
    assert any("Tool execution result for broken (error" in line for line in sink.lines())


@pytest.mark.asyncio
async def test_unknown_and_disabled_tools_become_error_results():
    dispatcher, _ = _dispatcher()
    calls = [ToolCall(name="missing"), ToolCall(name="bucketTool")]

    results = await dispatcher.execute_batch(calls, bind(PROJECT), enabled_categories={"database"})

    assert results[0].response == {"error": "Tool missing not found."}
    assert results[1].is_error
    assert "disabled" in results[1].response["error"]


@pytest.mark.asyncio
async def test_empty_batch():
    dispatcher, _ = _dispatcher()

    assert await dispatcher.execute_batch([], bind(PROJECT)) == []


@pytest.mark.asyncio
async def test_each_call_is_audited(tmp_path):
    audit = AuditLog(tmp_path / "audit.db")
    dispatcher, _ = _dispatcher(audit)
    try:
        await dispatcher.execute_batch(
            [ToolCall(name="delayed", args={"label": "a"}), ToolCall(name="broken")],
            bind(PROJECT),
        )
        entries = await audit.list_entries("p1")
    finally:
        await audit.close()

    assert {(e.tool_name, e.status) for e in entries} == {("delayed", "success"), ("broken", "error")}
    assert all(e.duration_ms is not None for e in entries)
