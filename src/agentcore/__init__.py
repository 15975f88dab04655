"""
agentcore - LLM conversation, tool dispatch and step pipelines over multiple providers.
"""

from ._exceptions import (
    AgentCoreError,
    ProviderError,
    RetryExhaustedError,
    RetryRequested,
    SchemaViolation,
    ToolDefinitionError,
    ToolExecutionError,
    ToolValidationAggregateError,
    ToolValidationError,
)
from .adapters.anthropic import ephemeral
from .factory import create_client
from .pipeline import (
    AgentStep,
    FunctionStep,
    MapStep,
    PipelineBuilder,
    RetryStep,
    StepContext,
    StepFailure,
    StepPipeline,
    ToolCallingStep,
)
from .providers import (
    AnthropicLLMClient,
    BaseLLMClient,
    GeminiLLMClient,
    OpenAILLMClient,
    Provider,
    get_api_key,
    get_base_url,
)
from .retry import DefaultRetryPolicy, RetryPolicy, RetryPolicyOptions
from .store import FileConversationStore
from .tokens import (
    ContextTrimOptions,
    SlidingWindowTrimmer,
    TiktokenTokenizer,
    TokenUsageTracker,
)
from .tools import ToolCallParser, ToolRegistry, ToolRuntime, tool
from .types import (
    Conversation,
    LLMRequest,
    LLMResponse,
    LLMStructuredRequest,
    LLMStructuredResponse,
    Message,
    ReasoningMode,
    Role,
    SamplingOptions,
    StreamChunk,
    StreamKind,
    Tool,
    ToolCall,
    ToolCallMode,
    ToolCallResult,
)

__version__ = "0.1.0"

__all__ = [
    "AgentCoreError",
    "AgentStep",
    "AnthropicLLMClient",
    "BaseLLMClient",
    "ContextTrimOptions",
    "Conversation",
    "DefaultRetryPolicy",
    "FileConversationStore",
    "FunctionStep",
    "GeminiLLMClient",
    "LLMRequest",
    "LLMResponse",
    "LLMStructuredRequest",
    "LLMStructuredResponse",
    "MapStep",
    "Message",
    "OpenAILLMClient",
    "PipelineBuilder",
    "Provider",
    "ProviderError",
    "ReasoningMode",
    "RetryExhaustedError",
    "RetryPolicy",
    "RetryPolicyOptions",
    "RetryRequested",
    "RetryStep",
    "Role",
    "SamplingOptions",
    "SchemaViolation",
    "SlidingWindowTrimmer",
    "StepContext",
    "StepFailure",
    "StepPipeline",
    "StreamChunk",
    "StreamKind",
    "TiktokenTokenizer",
    "TokenUsageTracker",
    "Tool",
    "ToolCall",
    "ToolCallMode",
    "ToolCallParser",
    "ToolCallResult",
    "ToolDefinitionError",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolRuntime",
    "ToolValidationAggregateError",
    "ToolValidationError",
    "create_client",
    "ephemeral",
    "get_api_key",
    "get_base_url",
    "tool",
]
