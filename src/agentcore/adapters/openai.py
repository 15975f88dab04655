"""OpenAI adapter for pure request/stream transformations."""

from __future__ import annotations

import json
from typing import Any, Sequence

from openai.types.chat import ChatCompletionChunk
from pydantic_core import to_jsonable_python

from agentcore.types.chat import Message, Role
from agentcore.types.request import ToolCallMode
from agentcore.types.tool import Tool

_TOOL_CHOICE: dict[ToolCallMode, str] = {
    ToolCallMode.NONE: "none",
    ToolCallMode.AUTO: "auto",
    ToolCallMode.REQUIRED: "required",
    ToolCallMode.ONE_TOOL: "auto",
}


class OpenAIRequestAdapter:
    """Adapter for converting between the generic conversation and OpenAI format."""

    def message_to_provider(self, message: Message) -> dict[str, Any]:
        if message.role is Role.TOOL:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content or "",
            }

        openai_msg: dict[str, Any] = {"role": message.role.value}
        if message.content is not None:
            openai_msg["content"] = message.content

        calls = [c for c in message.tool_calls or () if not c.is_message_only]
        if calls:
            openai_msg["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(to_jsonable_python(call.arguments, fallback=str)),
                    },
                }
                for call in calls
            ]
            # content should be null when tool_calls is present
            openai_msg.setdefault("content", None)

        if "content" not in openai_msg:
            openai_msg["content"] = ""
        return openai_msg

    def to_provider(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool],
        mode: ToolCallMode,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Convert generic messages, tools and normalized params to an OpenAI request."""
        openai_messages = [self.message_to_provider(m) for m in messages]

        base_params = dict(params)
        base_params.pop("stream", None)
        extras = base_params.pop("extra", {})

        if tools and mode is not ToolCallMode.DISABLED:
            base_params["tools"] = [t.to_openai() for t in tools]
            base_params["tool_choice"] = _TOOL_CHOICE[mode]
            if mode is ToolCallMode.ONE_TOOL:
                base_params["parallel_tool_calls"] = False
        else:
            base_params.pop("tools", None)
            base_params.pop("tool_choice", None)
            base_params.pop("parallel_tool_calls", None)

        for k, v in extras.items():
            base_params.setdefault(k, v)

        base_params = {k: v for k, v in base_params.items() if v is not None}
        return {"messages": openai_messages, **base_params}

    def stream_text(self, raw_chunk: ChatCompletionChunk) -> str:
        """Extract content from a streaming chunk."""
        if raw_chunk.choices and raw_chunk.choices[0].delta:
            return raw_chunk.choices[0].delta.content or ""
        return ""

    def finish_reason(self, raw_chunk: ChatCompletionChunk) -> str | None:
        if raw_chunk.choices:
            return raw_chunk.choices[0].finish_reason
        return None

    def usage(self, raw_chunk: ChatCompletionChunk) -> tuple[int, int] | None:
        if raw_chunk.usage is None:
            return None
        return raw_chunk.usage.prompt_tokens, raw_chunk.usage.completion_tokens
