"""Tests for tool execution."""

import asyncio

import pytest

from agentcore._exceptions import ToolExecutionError
from agentcore.tools import ToolRegistry, ToolRuntime
from agentcore.types import ToolCall


class Counter:
    def __init__(self):
        self.calls = 0

    def add(self, a: int, b: int, *, scale: int = 1) -> int:
        self.calls += 1
        return (a + b) * scale

    async def slow_upper(self, text: str, delay: float = 0.0) -> str:
        await asyncio.sleep(delay)
        return text.upper()

    def explode(self, reason: str) -> None:
        raise RuntimeError(reason)


@pytest.fixture
def counter():
    return Counter()


@pytest.fixture
def runtime(counter):
    registry = ToolRegistry()
    registry.register_many([counter.add, counter.slow_upper, counter.explode])
    return ToolRuntime(registry)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_sync_function_with_keyword_only_argument(self, runtime):
        value = await runtime.invoke(ToolCall(name="add", arguments={"a": 2, "b": 3, "scale": 10}))
        assert value == 50

    @pytest.mark.asyncio
    async def test_async_function_is_awaited(self, runtime):
        value = await runtime.invoke(ToolCall(name="slow_upper", arguments={"text": "hi"}))
        assert value == "HI"

    @pytest.mark.asyncio
    async def test_failure_is_wrapped(self, runtime):
        with pytest.raises(ToolExecutionError) as exc_info:
            await runtime.invoke(ToolCall(name="explode", arguments={"reason": "kaboom"}))

        assert exc_info.value.tool_name == "explode"
        assert exc_info.value.detail == "kaboom"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unknown_tool(self, runtime):
        with pytest.raises(ToolExecutionError):
            await runtime.invoke(ToolCall(name="missing"))

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, runtime):
        task = asyncio.create_task(
            runtime.invoke(ToolCall(name="slow_upper", arguments={"text": "x", "delay": 10}))
        )
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestHandleToolCalls:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrent", [True, False])
    async def test_failing_call_does_not_abort_batch(self, runtime, concurrent):
        calls = [
            ToolCall(name="add", arguments={"a": 1, "b": 1}),
            ToolCall(name="explode", arguments={"reason": "nope"}),
            ToolCall(name="slow_upper", arguments={"text": "ok"}),
        ]

        results = await runtime.handle_tool_calls(calls, concurrent=concurrent)

        assert len(results) == 3
        assert [r.call for r in results] == calls
        assert results[0].value == 2
        assert results[1].error is not None
        assert results[1].value is None
        assert results[2].value == "OK"

    @pytest.mark.asyncio
    async def test_results_keep_submission_order(self, runtime):
        calls = [
            ToolCall(name="slow_upper", arguments={"text": "first", "delay": 0.05}),
            ToolCall(name="slow_upper", arguments={"text": "second"}),
        ]

        results = await runtime.handle_tool_calls(calls)

        assert [r.value for r in results] == ["FIRST", "SECOND"]

    @pytest.mark.asyncio
    async def test_message_only_calls_pass_through(self, runtime):
        reply = ToolCall.from_message("All done")

        results = await runtime.handle_tool_calls([reply])

        assert results[0].call is reply
        assert results[0].value is None
        assert results[0].ok

    @pytest.mark.asyncio
    async def test_identical_calls_share_one_invocation(self, runtime, counter):
        calls = [
            ToolCall(name="add", arguments={"a": 1, "b": 2}),
            ToolCall(name="ADD", arguments={"b": 2, "a": 1}),
        ]

        results = await runtime.handle_tool_calls(calls)

        assert counter.calls == 1
        assert [r.value for r in results] == [3, 3]
        assert results[1].call is calls[1]

    @pytest.mark.asyncio
    async def test_empty_batch(self, runtime):
        assert await runtime.handle_tool_calls([]) == []
