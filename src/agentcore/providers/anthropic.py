from __future__ import annotations

from typing import Any, AsyncIterator, Self, Sequence

from anthropic import AsyncAnthropic

from agentcore.adapters import AnthropicRequestAdapter
from agentcore.types.request import LLMRequest
from agentcore.types.stream import StreamChunk
from agentcore.types.tool import Tool, ToolCall

from .base import BaseLLMClient


class AnthropicLLMClient(BaseLLMClient):
    """
    Anthropic client (async-only) over the streaming messages API.

    Use ``AnthropicLLMClient.from_client`` when you already have an ``AsyncAnthropic`` instance.
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: str | None = None,
        cache_system: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self.api_key = api_key
        self._client = AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
        )
        self._adapter = AnthropicRequestAdapter(cache_system=cache_system)

    @classmethod
    def from_client(
        cls, model: str, client: AsyncAnthropic, *, cache_system: bool = False, **kwargs: Any
    ) -> Self:
        """
        Wrap an existing ``AsyncAnthropic`` client.
        """
        if not isinstance(client, AsyncAnthropic):
            raise TypeError(
                f"AnthropicLLMClient.from_client expects AsyncAnthropic; got {type(client).__name__}"
            )

        self = cls.__new__(cls)  # bypass __init__
        BaseLLMClient.__init__(self, model, **kwargs)
        self.api_key = client.api_key or ""
        self._client = client
        self._adapter = AnthropicRequestAdapter(cache_system=cache_system)
        return self

    async def _stream_impl(
        self,
        request: LLMRequest,
        tools: Sequence[Tool],
        params: dict[str, Any],
    ) -> AsyncIterator[StreamChunk]:
        request_data = self._adapter.to_provider(
            request.conversation, tools, request.tool_call_mode, params
        )
        args = {"model": self.model, **request_data}
        self._log(f"Sending request to Anthropic model {self.model}")

        async with self._client.messages.stream(**args) as stream:
            async for event in stream:
                text = self._adapter.stream_text(event)
                if text:
                    yield StreamChunk.text_chunk(text)
            final = await stream.get_final_message()

        for block in final.content:
            if block.type == "tool_use":
                arguments = dict(block.input) if isinstance(block.input, dict) else {}
                yield StreamChunk.tool_call_chunk(
                    ToolCall(id=block.id, name=block.name, arguments=arguments)
                )
        yield StreamChunk.usage_chunk(final.usage.input_tokens, final.usage.output_tokens)
        yield StreamChunk.finish_chunk(final.stop_reason or "end_turn")
