"""
Exception hierarchy for agentcore.

Provider tracebacks are translated into a unified `ProviderError` while the
original exception is preserved for full tracebacks. Tool and retry errors
carry enough structure for the client to turn them into corrective prompts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Optional, Sequence, Type

import anthropic
import openai

if TYPE_CHECKING:
    from agentcore.types.tool import ToolCallResult

__all__: tuple[str, ...] = (
    "AgentCoreError",
    "ProviderError",
    "RetryRequested",
    "RetryExhaustedError",
    "ToolDefinitionError",
    "ToolValidationError",
    "ToolValidationAggregateError",
    "ToolExecutionError",
    "SchemaViolation",
    "classify_error",
)


class AgentCoreError(RuntimeError):
    """Base class for every error raised by agentcore."""


class ProviderError(AgentCoreError):
    """Public provider-level exception.

    Attributes:
        original_exc: The underlying provider exception.
    """

    original_exc: Exception

    def __init__(self, message: str, original_exc: Exception) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        self.__cause__ = original_exc


class RetryRequested(AgentCoreError):
    """Signal that the current attempt should be abandoned and retried.

    The message is fed back to the model as a correction, so it should say
    what must change.
    """

    def __init__(
        self, message: str, previous_result: "ToolCallResult | None" = None
    ) -> None:
        super().__init__(message)
        self.previous_result = previous_result


class RetryExhaustedError(AgentCoreError):
    """Raised when an operation produced no complete attempt."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class ToolDefinitionError(AgentCoreError):
    """Raised when a callable cannot be adapted into a tool."""


@dataclass(frozen=True, slots=True)
class SchemaViolation:
    """One mismatch between a JSON value and its schema."""

    param: str
    path: str
    message: str
    error_type: str

    def __str__(self) -> str:
        return f"{self.path or self.param}: {self.message}"


class ToolValidationError(AgentCoreError):
    """A single tool parameter is missing or could not be converted."""

    def __init__(
        self,
        tool_name: str,
        param: str,
        message: str,
        *,
        description: str | None = None,
        received: Any = None,
    ) -> None:
        detail = f"Validation failed for parameter '{param}' of tool '{tool_name}'. Details: '{message}'"
        if description:
            detail += f" Parameter description: {description}."
        if received is not None:
            detail += f" Received: {received!r}."
        super().__init__(detail)
        self.tool_name = tool_name
        self.param = param


class ToolValidationAggregateError(AgentCoreError):
    """Several schema violations reported together for one tool call."""

    def __init__(self, tool_name: str, violations: Sequence[SchemaViolation]) -> None:
        self.tool_name = tool_name
        self.violations: tuple[SchemaViolation, ...] = tuple(violations)
        listed = ", ".join(str(v) for v in self.violations)
        super().__init__(
            f"Validation failed for tool '{tool_name}' on {len(self.violations)} "
            f"parameter(s): {listed}"
        )


class ToolExecutionError(AgentCoreError):
    """The bound function of a tool raised."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.detail = message


# most specific first: RateLimitError subclasses APIError in both SDKs
_PROVIDER_MESSAGES: Final[tuple[tuple[tuple[Type[BaseException], ...], str], ...]] = (
    (
        (openai.RateLimitError, anthropic.RateLimitError),
        "Rate-limit exceeded, please retry later",
    ),
    (
        (openai.APIConnectionError, anthropic.APIConnectionError, ConnectionError, TimeoutError),
        "Connection problem, unable to reach the LLM provider",
    ),
    (
        (openai.APIError, anthropic.APIError),
        "Provider reported an error",
    ),
)


def classify_error(
    exc: Exception,
    logger: Optional[logging.Logger] = None,
) -> ProviderError:
    """Wrap an SDK exception in ProviderError with a short, readable message."""
    log = logger or logging.getLogger("agentcore.exceptions")
    msg = next(
        (text for types, text in _PROVIDER_MESSAGES if isinstance(exc, types)),
        exc.__class__.__name__,
    )
    log.warning("Provider call failed (%s): %s", type(exc).__name__, exc)
    return ProviderError(f"{msg}: {exc}", exc)
