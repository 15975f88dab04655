"""
Streaming retry policy.

Each attempt runs on a clone of the working request. When the stream raises
``RetryRequested`` (or an attempt outlives its timeout) the attempt is
abandoned, a temporary correction is added to the working conversation so the
model sees what went wrong, a ``[retry n]`` marker chunk is emitted and the
next attempt starts after an exponential backoff.

With retries disabled the single attempt runs as is and ``RetryRequested``
propagates to the caller. Exhausting the retries ends the stream without a
finish chunk; callers treat the missing finish as failure.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Self

from agentcore._exceptions import RetryRequested
from agentcore.types.request import LLMRequest
from agentcore.types.stream import StreamChunk

__all__ = ["RetryPolicy", "RetryPolicyOptions", "DefaultRetryPolicy", "StreamFactory"]

StreamFactory = Callable[[LLMRequest], AsyncIterator[StreamChunk]]


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class RetryPolicyOptions:
    max_retries: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    timeout: float | None = 120.0
    enabled: bool = True

    @classmethod
    def from_env(cls, prefix: str = "AGENTCORE_RETRY_") -> Self:
        """Build options from ``{prefix}MAX_RETRIES`` etc., keeping defaults for unset keys."""
        opts = cls()
        readers: dict[str, Callable[[str], Any]] = {
            "max_retries": int,
            "initial_delay": float,
            "backoff_factor": float,
            "timeout": float,
            "enabled": _env_bool,
        }
        for attr, convert in readers.items():
            raw = os.environ.get(f"{prefix}{attr.upper()}")
            if raw is not None and raw.strip():
                setattr(opts, attr, convert(raw))
        return opts


class RetryPolicy(Protocol):
    def execute_stream(
        self, request: LLMRequest, factory: StreamFactory
    ) -> AsyncIterator[StreamChunk]: ...


async def _aclose(stream: AsyncIterator[StreamChunk]) -> None:
    close = getattr(stream, "aclose", None)
    if close:
        await close()


class DefaultRetryPolicy:
    """Bounded retry with backoff, per-attempt timeout and corrective prompts."""

    def __init__(
        self,
        options: RetryPolicyOptions | None = None,
        *,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.options = options or RetryPolicyOptions()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1``."""
        return self.options.initial_delay * (self.options.backoff_factor ** attempt)

    async def execute_stream(
        self, request: LLMRequest, factory: StreamFactory
    ) -> AsyncIterator[StreamChunk]:
        opts = self.options
        if not opts.enabled:
            stream = factory(request.clone())
            try:
                async for chunk in stream:
                    yield chunk
            finally:
                await _aclose(stream)
            return

        working = request.clone()
        loop = asyncio.get_running_loop()

        for attempt in range(opts.max_retries + 1):
            reason: str | None = None
            deadline = loop.time() + opts.timeout if opts.timeout else None
            stream = factory(working.clone())
            try:
                while True:
                    try:
                        if deadline is None:
                            chunk = await anext(stream)
                        else:
                            remaining = deadline - loop.time()
                            if remaining <= 0:
                                raise TimeoutError
                            chunk = await asyncio.wait_for(anext(stream), remaining)
                    except StopAsyncIteration:
                        break
                    except RetryRequested as exc:
                        reason = str(exc) or "an error occurred"
                        break
                    except TimeoutError:
                        reason = f"the attempt timed out after {opts.timeout}s"
                        break
                    yield chunk
            finally:
                await _aclose(stream)

            if reason is None:
                return

            self.logger.warning("Attempt %d failed: %s", attempt + 1, reason)
            if attempt == opts.max_retries:
                self.logger.warning("Giving up after %d attempts", attempt + 1)
                return

            number = attempt + 1
            working.conversation.add_system(f"Retry {number} because: {reason}", temporary=True)
            yield StreamChunk.retry_marker(number)
            await self._sleep(self.delay_for(attempt))
