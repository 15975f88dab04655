"""Shared streaming utilities for LLM providers."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from openai.types.chat import ChatCompletionChunk

from agentcore.types.tool import ToolCall

__all__ = ["ToolCallAccumulator"]

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class ToolCallAccumulator:
    """
    Collects streamed OpenAI tool-call deltas, which arrive as fragments keyed
    by index, into complete ToolCall objects.
    """

    def __init__(self) -> None:
        self._calls: List[Dict[str, Any]] = []

    def add_chunk(self, chunk: ChatCompletionChunk) -> None:
        if not chunk.choices:
            return
        delta = chunk.choices[0].delta
        if delta is None or not delta.tool_calls:
            return

        for tc_chunk in delta.tool_calls:
            while len(self._calls) <= tc_chunk.index:
                self._calls.append({"id": "", "name": "", "arguments": ""})

            agg = self._calls[tc_chunk.index]
            if tc_chunk.id:
                agg["id"] = tc_chunk.id
            if tc_chunk.function:
                if tc_chunk.function.name:
                    agg["name"] += tc_chunk.function.name
                if tc_chunk.function.arguments:
                    agg["arguments"] += tc_chunk.function.arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def build(self) -> list[ToolCall]:
        """Return the finished calls; fragments without a name are dropped."""
        calls: list[ToolCall] = []
        for data in self._calls:
            if not data["name"]:
                continue
            raw_args = data["arguments"]
            arguments: dict[str, Any] = {}
            if raw_args.strip():
                try:
                    decoded = json.loads(raw_args)
                except json.JSONDecodeError as exc:
                    _logger.warning(f"Bad JSON in tool call: {raw_args}", exc_info=exc)
                    decoded = {}
                arguments = decoded if isinstance(decoded, dict) else {}
            kwargs: dict[str, Any] = {"name": data["name"], "arguments": arguments}
            if data["id"]:
                kwargs["id"] = data["id"]
            calls.append(ToolCall(**kwargs))
        self._calls.clear()
        return calls
