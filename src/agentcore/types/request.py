"""Request and response envelopes for the LLM client."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, Sequence, TypeVar

from agentcore.types.chat import Conversation
from agentcore.types.tool import ToolCall

__all__ = [
    "ToolCallMode",
    "ReasoningMode",
    "SamplingOptions",
    "LLMRequest",
    "LLMStructuredRequest",
    "LLMResponse",
    "LLMStructuredResponse",
]

T = TypeVar("T")


class ToolCallMode(StrEnum):
    NONE = "none"
    AUTO = "auto"
    REQUIRED = "required"
    ONE_TOOL = "one_tool"
    DISABLED = "disabled"


class ReasoningMode(StrEnum):
    DETERMINISTIC = "deterministic"
    PLANNING = "planning"
    BALANCED = "balanced"
    CREATIVE = "creative"


@dataclass(slots=True)
class SamplingOptions:
    """Explicit sampling values; ``None`` leaves the provider default in place."""

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    seed: int | None = None
    stop: list[str] | None = None


@dataclass(slots=True)
class LLMRequest:
    conversation: Conversation
    tool_call_mode: ToolCallMode = ToolCallMode.AUTO
    allowed_tools: Sequence[str] | None = None
    reasoning: ReasoningMode = ReasoningMode.BALANCED
    sampling: SamplingOptions | None = None
    params: dict[str, Any] = field(default_factory=dict)

    def clone(self) -> "LLMRequest":
        """Deep copy; attempts never share conversation state."""
        return copy.deepcopy(self)


@dataclass(slots=True)
class LLMStructuredRequest(LLMRequest):
    result_type: Any = None
    schema: dict[str, Any] | None = None


@dataclass(slots=True)
class LLMResponse:
    text: str = ""
    assistant_message: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def has_tool_calls(self) -> bool:
        return any(not call.is_message_only for call in self.tool_calls)


@dataclass(slots=True)
class LLMStructuredResponse(Generic[T]):
    raw: Any
    result: T
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
