from __future__ import annotations

from typing import Any

from .openai import OpenAILLMClient

_DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiLLMClient(OpenAILLMClient):
    """
    Gemini client via the OpenAI-compatible endpoint.

    ``from_client`` expects an ``AsyncOpenAI`` already pointed at Gemini's base URL.
    """

    provider_label = "Gemini"

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: str = _DEFAULT_GEMINI_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            model,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
            **kwargs,
        )
