from __future__ import annotations

import logging
from typing import Any, Type

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from agentcore.providers import (
    AnthropicLLMClient,
    BaseLLMClient,
    GeminiLLMClient,
    OpenAILLMClient,
    Provider,
    get_api_key,
    get_base_url,
)
from agentcore.tools.registry import ToolRegistry

_CLIENTS: dict[Provider, Type[BaseLLMClient]] = {
    Provider.OPENAI: OpenAILLMClient,
    Provider.ANTHROPIC: AnthropicLLMClient,
    Provider.GEMINI: GeminiLLMClient,
}


def create_client(
    provider: Provider | str,
    model: str,
    *,
    api_key: str | None = None,
    client: AsyncOpenAI | AsyncAnthropic | None = None,
    registry: ToolRegistry | None = None,
    logger: logging.Logger | None = None,
    **provider_kwargs: Any,
) -> BaseLLMClient:
    """
    Build a client for *provider* that can call the tools in *registry*.

    Args:
        provider: ``Provider`` member or its value ("openai", "anthropic", "gemini").
        model: Model identifier (e.g. "gpt-4o-mini").
        api_key: Overrides the ``*_API_KEY`` environment lookup.
        client: Pre-configured SDK client, wrapped as-is. ``AsyncOpenAI`` for
            OpenAI and Gemini (pointed at the compatible endpoint), ``AsyncAnthropic``
            for Anthropic.
        registry: Tools the model may call.
        logger: Optional custom logger.
        **provider_kwargs: Passed through (timeout, max_retries, base_url,
            retry_policy, tokenizer, trimmer, default_params, ...). ``base_url``
            falls back to ``*_BASE_URL`` from the environment.
    """
    try:
        kind = Provider(provider)
    except ValueError as exc:
        raise ValueError(f"Unsupported provider: {provider}") from exc
    client_cls = _CLIENTS[kind]

    if client is not None:
        return client_cls.from_client(
            model, client, registry=registry, logger=logger, **provider_kwargs
        )

    base_url = get_base_url(kind)
    if base_url is not None:
        provider_kwargs.setdefault("base_url", base_url)
    return client_cls(
        model,
        api_key=api_key or get_api_key(kind),
        registry=registry,
        logger=logger,
        **provider_kwargs,
    )
