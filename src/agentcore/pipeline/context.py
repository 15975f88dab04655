from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

from agentcore.types.chat import Conversation

if TYPE_CHECKING:
    from agentcore.providers.base import BaseLLMClient, StreamCallback
    from agentcore.tools.runtime import ToolRuntime

__all__ = ["StepContext", "StepFailure"]


@dataclass(frozen=True, slots=True)
class StepFailure:
    """A failed step, carried down the pipeline as a value."""

    step: str
    expected: str
    actual: str | None
    error: BaseException

    def __str__(self) -> str:
        return f"{self.step} failed: {self.error}"


@dataclass(slots=True)
class StepContext:
    """State threaded through every step of one agent run.

    ``step_name`` always names the step currently executing; nested pipelines
    restore the outer name when they finish.
    """

    conversation: Conversation = field(default_factory=Conversation)
    llm: "BaseLLMClient | None" = None
    runtime: "ToolRuntime | None" = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("agentcore.pipeline"))
    items: dict[str, Any] = field(default_factory=dict)
    on_stream: "StreamCallback | None" = None
    user_request: str | None = None
    step_name: str | None = None
    response: Any = None

    @classmethod
    def start(
        cls,
        user_request: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> "StepContext":
        """New context whose conversation holds the optional system prompt and the request."""
        conversation = Conversation()
        if system_prompt:
            conversation.add_system(system_prompt)
        conversation.add_user(user_request)
        return cls(conversation=conversation, user_request=user_request, **kwargs)

    @contextmanager
    def for_step(self, step_name: str) -> Iterator["StepContext"]:
        outer = self.step_name
        self.step_name = step_name
        try:
            yield self
        finally:
            self.step_name = outer
