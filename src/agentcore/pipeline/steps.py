from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, ClassVar, Sequence, Union

from agentcore.pipeline.context import StepContext, StepFailure
from agentcore.types.request import LLMRequest, ToolCallMode

__all__ = ["AgentStep", "FunctionStep", "MapStep", "RetryStep", "ToolCallingStep"]

InputType = Union[type, tuple[type, ...]]


class AgentStep:
    """
    Base class for pipeline steps.

    Subclasses set ``input_type`` (a type or tuple of types; ``None`` input is
    always accepted) and implement ``run``. Declaring ``StepFailure`` as the
    input type turns a step into an error handler.
    """

    input_type: ClassVar[InputType] = object

    @property
    def name(self) -> str:
        return type(self).__name__

    async def run(self, ctx: StepContext, value: Any) -> Any:
        raise NotImplementedError


class FunctionStep(AgentStep):
    """Wrap a sync or async ``fn(ctx, value)`` as a step."""

    def __init__(
        self,
        fn: Callable[[StepContext, Any], Any],
        *,
        input_type: InputType = object,
        name: str | None = None,
    ) -> None:
        self.fn = fn
        self.input_type = input_type  # type: ignore[misc]
        self._name = name or getattr(fn, "__name__", None)

    @property
    def name(self) -> str:
        if self._name and self._name != "<lambda>":
            return self._name
        return super().name

    async def run(self, ctx: StepContext, value: Any) -> Any:
        result = self.fn(ctx, value)
        if inspect.isawaitable(result):
            result = await result
        return result


class MapStep(FunctionStep):
    """Transform the value with ``fn(value)``; the context is not passed."""

    def __init__(
        self,
        fn: Callable[[Any], Any | Awaitable[Any]],
        *,
        input_type: InputType = object,
        name: str | None = None,
    ) -> None:
        super().__init__(lambda _ctx, value: fn(value), input_type=input_type, name=name or "Map")


class RetryStep(AgentStep):
    """
    Re-run ``inner`` with exponential backoff when it raises or returns a
    StepFailure. The last error is re-raised once retries are spent.
    """

    def __init__(
        self,
        inner: AgentStep,
        max_retries: int = 3,
        base_delay: float = 0.2,
        backoff_factor: float = 2.0,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.inner = inner
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self.input_type = inner.input_type  # type: ignore[misc]

    @property
    def name(self) -> str:
        return f"Retry({self.inner.name})"

    async def run(self, ctx: StepContext, value: Any) -> Any:
        delay = self.base_delay
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self.inner.run(ctx, value)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error: BaseException = exc
            else:
                if not isinstance(result, StepFailure):
                    return result
                error = result.error

            if attempt > self.max_retries:
                raise error
            ctx.logger.warning(
                "%s attempt %d failed: %s; retrying in %.2fs",
                self.inner.name,
                attempt,
                error,
                delay,
            )
            await self._sleep(delay)
            delay *= self.backoff_factor


class ToolCallingStep(AgentStep):
    """
    One agent turn: ask the model, run any tool calls it makes and record the
    results in the conversation.

    Returns ``None`` after a tool round so an enclosing ``loop`` asks the model
    again, and the final assistant text once the model answers directly. That
    text also lands in ``ctx.response``.
    """

    def __init__(
        self,
        mode: ToolCallMode = ToolCallMode.AUTO,
        allowed_tools: Sequence[str] | None = None,
        *,
        concurrent: bool = True,
    ) -> None:
        self.mode = mode
        self.allowed_tools = list(allowed_tools) if allowed_tools is not None else None
        self.concurrent = concurrent

    async def run(self, ctx: StepContext, value: Any) -> Any:
        if ctx.llm is None or ctx.runtime is None:
            raise RuntimeError("ToolCallingStep needs ctx.llm and ctx.runtime")

        request = LLMRequest(
            ctx.conversation, tool_call_mode=self.mode, allowed_tools=self.allowed_tools
        )
        response = await ctx.llm.execute(request, on_stream=ctx.on_stream)

        if response.has_tool_calls:
            results = await ctx.runtime.handle_tool_calls(
                response.tool_calls, concurrent=self.concurrent
            )
            ctx.conversation.append_tool_results(results)
            failed = sum(1 for r in results if not r.ok)
            ctx.logger.log(
                logging.WARNING if failed else logging.DEBUG,
                "%d tool call(s) executed, %d failed",
                len(results),
                failed,
            )
            return None

        message = response.assistant_message or response.text
        if message:
            ctx.conversation.add_assistant(message)
            ctx.response = message
        return message
