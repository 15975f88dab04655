"""Execute validated tool calls against the registry."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Optional, Sequence

from agentcore._exceptions import ToolExecutionError
from agentcore.tools.parser import bind_arguments
from agentcore.tools.registry import ToolRegistry
from agentcore.types.tool import ToolCall, ToolCallResult

__all__ = ["ToolRuntime"]


class ToolRuntime:
    """Runs bound tool functions; failures are returned as data, never raised."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    async def invoke(self, call: ToolCall) -> Any:
        """Run one call and return the function's value.

        Raises ToolExecutionError wrapping whatever the function raised.
        """
        if call.is_message_only:
            return None
        tool = self.registry.get(call.name)
        if tool is None:
            raise ToolExecutionError(call.name, "tool is not registered")

        try:
            values = (
                call.parameters
                if call.parameters is not None
                else bind_arguments(tool, call.arguments)
            )
            args, kwargs = tool.split_arguments(values)
            outcome = tool.function(*args, **kwargs)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except asyncio.CancelledError:
            raise
        except ToolExecutionError:
            raise
        except Exception as exc:
            raise ToolExecutionError(tool.name, str(exc) or exc.__class__.__name__) from exc
        return outcome

    async def _run(self, call: ToolCall) -> ToolCallResult:
        if call.is_message_only:
            return ToolCallResult(call, None)
        try:
            value = await self.invoke(call)
        except ToolExecutionError as exc:
            self._log(f"Tool {call.name} failed: {exc}", logging.WARNING)
            return ToolCallResult(call, error=exc)
        return ToolCallResult(call, value)

    async def handle_tool_calls(
        self, calls: Sequence[ToolCall], *, concurrent: bool = True
    ) -> list[ToolCallResult]:
        """Run a batch and return one result per call, in submission order.

        Identical calls inside one batch share a single invocation.
        """
        if not calls:
            return []
        self._log(f"Executing {len(calls)} tool call(s)", logging.DEBUG)

        unique: dict[tuple[str, str], ToolCall] = {}
        keys: list[tuple[str, str] | None] = []
        for call in calls:
            if call.is_message_only:
                keys.append(None)
                continue
            key = (call.name.casefold(), call.canonical_arguments)
            unique.setdefault(key, call)
            keys.append(key)

        pending = list(unique.items())
        if concurrent:
            outcomes = await asyncio.gather(*(self._run(call) for _, call in pending))
        else:
            outcomes = [await self._run(call) for _, call in pending]
        by_key = dict(zip((key for key, _ in pending), outcomes))

        results: list[ToolCallResult] = []
        for call, key in zip(calls, keys):
            if key is None:
                results.append(ToolCallResult(call, None))
                continue
            shared = by_key[key]
            results.append(ToolCallResult(call, shared.value, shared.error))
        return results
