"""
Token counting, usage accounting and context trimming.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

import tiktoken

from agentcore.types.chat import Conversation, Message, Role

__all__ = [
    "Tokenizer",
    "TiktokenTokenizer",
    "TokenUsage",
    "TokenUsageTracker",
    "ContextTrimOptions",
    "SlidingWindowTrimmer",
]


class Tokenizer(Protocol):
    def count(self, text: str) -> int: ...


def _encoding_name_for_model(model_name: str | None) -> str:
    """
    Return a tiktoken encoding name for a given model.

    - gpt-4 / gpt-4-turbo / gpt-3.5-turbo use cl100k_base
    - gpt-4o / gpt-4o-mini / o-series / gpt-5* use o200k_base
    - anything else falls back to cl100k_base
    """
    if not model_name:
        return "cl100k_base"
    m = model_name.lower()
    if "gpt-4o" in m or "4o-mini" in m or m.startswith(("gpt-5", "o1", "o3", "o4")):
        return "o200k_base"
    return "cl100k_base"


class TiktokenTokenizer:
    """tiktoken-backed counter. The encoding is loaded on first use."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model
        self._encoding: tiktoken.Encoding | None = None
        self._lock = threading.Lock()

    def _load(self) -> tiktoken.Encoding:
        with self._lock:
            if self._encoding is None:
                try:
                    self._encoding = tiktoken.encoding_for_model(self.model or "")
                except KeyError:
                    self._encoding = tiktoken.get_encoding(_encoding_name_for_model(self.model))
            return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoding = self._encoding or self._load()
        return len(encoding.encode(text, disallowed_special=()))


@dataclass(frozen=True, slots=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    requests: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class TokenUsageTracker:
    """Aggregate counters shared by concurrent runs; updates happen under one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._input = 0
        self._output = 0
        self._requests = 0

    def record(self, input_tokens: int, output_tokens: int) -> None:
        with self._lock:
            self._input += max(input_tokens, 0)
            self._output += max(output_tokens, 0)
            self._requests += 1

    def snapshot(self) -> TokenUsage:
        with self._lock:
            return TokenUsage(self._input, self._output, self._requests)

    def reset(self) -> None:
        with self._lock:
            self._input = self._output = self._requests = 0


@dataclass(slots=True)
class ContextTrimOptions:
    max_context_tokens: int = 8000
    margin: float = 0.8

    def __post_init__(self) -> None:
        if self.max_context_tokens <= 0:
            self.max_context_tokens = 8000
        if self.margin <= 0 or self.margin > 1:
            self.margin = 1.0

    @property
    def limit(self) -> int:
        return int(self.max_context_tokens * self.margin)


class SlidingWindowTrimmer:
    """Shrink a prompt to fit the context window.

    System messages always survive. Tool traffic goes first, then the oldest
    user/assistant messages, keeping at least the most recent one.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        options: ContextTrimOptions | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.tokenizer = tokenizer
        self.options = options or ContextTrimOptions()
        self.logger = logger or logging.getLogger(__name__)

    def estimate(self, conversation: Conversation | list[Message]) -> int:
        items = [m.to_dict() for m in conversation]
        return self.tokenizer.count(json.dumps(items, ensure_ascii=False))

    def trim(self, conversation: Conversation, max_tokens: int | None = None) -> Conversation:
        limit = (
            int(max_tokens * self.options.margin) if max_tokens else self.options.limit
        )
        messages = list(conversation)
        before = self.estimate(messages)
        if before <= limit:
            return conversation

        messages = [
            m for m in messages
            if m.role is not Role.TOOL and not (m.role is Role.ASSISTANT and m.tool_calls)
        ]
        count = self.estimate(messages)

        while count > limit:
            core = [i for i, m in enumerate(messages) if m.role in (Role.USER, Role.ASSISTANT)]
            if len(core) <= 1:
                break
            del messages[core[0]]
            count = self.estimate(messages)

        self.logger.debug("Trimmed context from %d to %d tokens", before, count)
        return Conversation(messages)
