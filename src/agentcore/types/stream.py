"""Tagged chunks produced by provider streams and the retry policy."""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from agentcore.types.tool import ToolCall

__all__ = ["StreamKind", "StreamChunk"]


class StreamKind(StrEnum):
    TEXT = "text"
    TOOL_CALL = "tool_call"
    USAGE = "usage"
    FINISH = "finish"


@dataclass(frozen=True, slots=True)
class StreamChunk:
    kind: StreamKind
    text: str | None = None
    tool_call: ToolCall | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    finish_reason: str | None = None
    retry_attempt: int | None = None

    @classmethod
    def text_chunk(cls, text: str) -> "StreamChunk":
        return cls(StreamKind.TEXT, text=text)

    @classmethod
    def tool_call_chunk(cls, call: ToolCall) -> "StreamChunk":
        return cls(StreamKind.TOOL_CALL, tool_call=call)

    @classmethod
    def usage_chunk(cls, input_tokens: int | None, output_tokens: int | None) -> "StreamChunk":
        return cls(StreamKind.USAGE, input_tokens=input_tokens, output_tokens=output_tokens)

    @classmethod
    def finish_chunk(cls, reason: str | None = "stop") -> "StreamChunk":
        return cls(StreamKind.FINISH, finish_reason=reason)

    @classmethod
    def retry_marker(cls, attempt: int) -> "StreamChunk":
        return cls(StreamKind.TEXT, text=f"[retry {attempt}]", retry_attempt=attempt)

    @property
    def is_retry_marker(self) -> bool:
        return self.retry_attempt is not None
