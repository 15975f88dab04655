from .tool import Tool, ToolCall, ToolCallResult, ToolParameter
from .chat import Conversation, Message, Role
from .stream import StreamChunk, StreamKind
from .request import (
    LLMRequest,
    LLMResponse,
    LLMStructuredRequest,
    LLMStructuredResponse,
    ReasoningMode,
    SamplingOptions,
    ToolCallMode,
)

__all__ = [
    "Conversation",
    "LLMRequest",
    "LLMResponse",
    "LLMStructuredRequest",
    "LLMStructuredResponse",
    "Message",
    "ReasoningMode",
    "Role",
    "SamplingOptions",
    "StreamChunk",
    "StreamKind",
    "Tool",
    "ToolCall",
    "ToolCallMode",
    "ToolCallResult",
    "ToolParameter",
]
