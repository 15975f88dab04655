"""
Provider clients and their environment configuration.

Keys (and optional base URLs) are read from the process environment after
``load_dotenv()`` has merged a local ``.env`` file into it.
"""

from __future__ import annotations

import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv

from .anthropic import AnthropicLLMClient
from .base import BaseLLMClient, StreamCallback
from .gemini import GeminiLLMClient
from .openai import OpenAILLMClient

load_dotenv()


class Provider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


# provider -> (api key variable, base url variable)
_ENV_VARS: Final[dict[Provider, tuple[str, str]]] = {
    Provider.OPENAI: ("OPENAI_API_KEY", "OPENAI_BASE_URL"),
    Provider.ANTHROPIC: ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL"),
    Provider.GEMINI: ("GEMINI_API_KEY", "GEMINI_BASE_URL"),
}


def get_api_key(provider: Provider | str) -> str:
    """Return the API key for *provider* or raise RuntimeError."""
    key_var, _ = _ENV_VARS[Provider(provider)]
    key = os.environ.get(key_var, "").strip()
    if not key:
        raise RuntimeError(f"{key_var} missing; set it in the environment or a .env file")
    return key


def get_base_url(provider: Provider | str) -> str | None:
    """Base URL override for *provider*, if one is configured."""
    _, url_var = _ENV_VARS[Provider(provider)]
    return os.environ.get(url_var, "").strip() or None


__all__ = [
    "AnthropicLLMClient",
    "BaseLLMClient",
    "GeminiLLMClient",
    "OpenAILLMClient",
    "Provider",
    "StreamCallback",
    "get_api_key",
    "get_base_url",
]
