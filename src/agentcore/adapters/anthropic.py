"""Anthropic adapter for pure request/stream transformations."""

from __future__ import annotations

from typing import Any, Sequence

from pydantic_core import to_jsonable_python

from agentcore.types.chat import Message, Role
from agentcore.types.request import ToolCallMode
from agentcore.types.tool import Tool

_DEFAULT_MAX_TOKENS = 4096

# Keys with no Anthropic equivalent
_UNSUPPORTED = (
    "frequency_penalty",
    "presence_penalty",
    "response_format",
    "seed",
    "user",
    "parallel_tool_calls",
)

_TOOL_CHOICE: dict[ToolCallMode, dict[str, Any]] = {
    ToolCallMode.NONE: {"type": "none"},
    ToolCallMode.AUTO: {"type": "auto"},
    ToolCallMode.REQUIRED: {"type": "any"},
    ToolCallMode.ONE_TOOL: {"type": "auto", "disable_parallel_tool_use": True},
}


def ephemeral(text: str) -> dict[str, Any]:
    """Return a text block marked for Anthropic's 5-minute *ephemeral* prompt cache."""
    return {
        "type": "text",
        "text": text,
        "cache_control": {"type": "ephemeral"},
    }


class AnthropicRequestAdapter:
    """Adapter for converting between the generic conversation and Anthropic format."""

    def __init__(self, *, cache_system: bool = False) -> None:
        self.cache_system = cache_system

    def _blocks(self, message: Message) -> tuple[str, list[dict[str, Any]]]:
        if message.role is Role.TOOL:
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content or "",
            }
            if message.result is not None and message.result.error is not None:
                block["is_error"] = True
            return "user", [block]

        blocks: list[dict[str, Any]] = []
        if message.content and message.content.strip():
            blocks.append({"type": "text", "text": message.content})
        for call in message.tool_calls or ():
            if call.is_message_only:
                continue
            blocks.append(
                {
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": to_jsonable_python(call.arguments, fallback=str),
                }
            )
        return message.role.value, blocks

    def to_provider(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool],
        mode: ToolCallMode,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Convert generic messages, tools and normalized params to an Anthropic request.

        System messages are lifted into ``system``; consecutive messages with the
        same role are merged since the API requires alternating turns.
        """
        system_parts: list[str] = []
        anthropic_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role is Role.SYSTEM:
                if msg.content:
                    system_parts.append(msg.content)
                continue
            role, blocks = self._blocks(msg)
            if not blocks:
                continue
            if anthropic_messages and anthropic_messages[-1]["role"] == role:
                anthropic_messages[-1]["content"].extend(blocks)
            else:
                anthropic_messages.append({"role": role, "content": blocks})

        base_params = dict(params)
        base_params.pop("stream", None)
        extras = base_params.pop("extra", {})
        for key in _UNSUPPORTED:
            base_params.pop(key, None)

        if base_params.get("max_tokens") is None:
            base_params["max_tokens"] = _DEFAULT_MAX_TOKENS

        if "stop" in base_params:
            stop = base_params.pop("stop")
            if stop:
                base_params["stop_sequences"] = stop if isinstance(stop, list) else [stop]

        base_params.pop("tools", None)
        base_params.pop("tool_choice", None)
        if tools and mode is not ToolCallMode.DISABLED:
            base_params["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters_schema,
                }
                for t in tools
            ]
            base_params["tool_choice"] = _TOOL_CHOICE[mode]

        for k, v in extras.items():
            base_params.setdefault(k, v)

        base_params = {k: v for k, v in base_params.items() if v is not None}
        request: dict[str, Any] = {"messages": anthropic_messages, **base_params}
        if system_parts:
            system = "\n\n".join(system_parts)
            request["system"] = [ephemeral(system)] if self.cache_system else system
        return request

    def stream_text(self, event: Any) -> str:
        """Extract text from an Anthropic streaming event."""
        if getattr(event, "type", None) == "content_block_delta":
            delta = getattr(event, "delta", None)
            if getattr(delta, "type", None) == "text_delta":
                return delta.text
        return ""
