from __future__ import annotations

from typing import Any, AsyncIterator, Self, Sequence

from openai import AsyncOpenAI

from agentcore.adapters import OpenAIRequestAdapter
from agentcore.stream_utils import ToolCallAccumulator
from agentcore.types.request import LLMRequest
from agentcore.types.stream import StreamChunk
from agentcore.types.tool import Tool

from .base import BaseLLMClient

# Keys OpenAI's SDK does not accept as named arguments
_PASSTHROUGH_KEYS = ("verbosity", "reasoning_effort")


class OpenAILLMClient(BaseLLMClient):
    """
    OpenAI client (async-only) over streaming chat completions.

    Use ``OpenAILLMClient.from_client`` when you already have an ``AsyncOpenAI`` instance.
    """

    provider_label = "OpenAI"

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self.api_key = api_key
        self._client = AsyncOpenAI(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
        )
        self._adapter = OpenAIRequestAdapter()

    @classmethod
    def from_client(cls, model: str, client: AsyncOpenAI, **kwargs: Any) -> Self:
        """
        Build a client around an already-configured ``AsyncOpenAI`` instance.
        """
        if not isinstance(client, AsyncOpenAI):
            raise TypeError(
                f"{cls.__name__}.from_client expects AsyncOpenAI; got {type(client).__name__}"
            )

        self = cls.__new__(cls)  # bypass __init__
        BaseLLMClient.__init__(self, model, **kwargs)
        self.api_key = client.api_key or ""
        self._client = client
        self._adapter = OpenAIRequestAdapter()
        return self

    def _build_args(
        self, request: LLMRequest, tools: Sequence[Tool], params: dict[str, Any]
    ) -> dict[str, Any]:
        request_data = self._adapter.to_provider(
            request.conversation, tools, request.tool_call_mode, params
        )
        args: dict[str, Any] = {
            "model": self.model,
            "stream": True,
            "stream_options": {"include_usage": True},
            **request_data,
        }

        extra_body = {}
        for k in _PASSTHROUGH_KEYS:
            if k in args:
                extra_body[k] = args.pop(k)
        if extra_body:
            args["extra_body"] = {**args.get("extra_body", {}), **extra_body}
        return args

    async def _stream_impl(
        self,
        request: LLMRequest,
        tools: Sequence[Tool],
        params: dict[str, Any],
    ) -> AsyncIterator[StreamChunk]:
        args = self._build_args(request, tools, params)
        self._log(f"Sending request to {self.provider_label} model {self.model}")

        stream = await self._client.chat.completions.create(**args)
        accumulator = ToolCallAccumulator()
        finish: str | None = None

        async for raw in stream:
            text = self._adapter.stream_text(raw)
            if text:
                yield StreamChunk.text_chunk(text)
            accumulator.add_chunk(raw)
            reason = self._adapter.finish_reason(raw)
            if reason:
                finish = reason
            usage = self._adapter.usage(raw)
            if usage is not None:
                yield StreamChunk.usage_chunk(*usage)

        for call in accumulator.build():
            yield StreamChunk.tool_call_chunk(call)
        yield StreamChunk.finish_chunk(finish or "stop")
