"""Pure transformation adapters for different LLM providers."""

from .openai import OpenAIRequestAdapter
from .anthropic import AnthropicRequestAdapter, ephemeral

# Gemini speaks the OpenAI-compatible API, so it's the same adapter
GeminiRequestAdapter = OpenAIRequestAdapter

__all__ = [
    "OpenAIRequestAdapter",
    "AnthropicRequestAdapter",
    "GeminiRequestAdapter",
    "ephemeral",
]
