"""
Provider call parameters.

Every provider call receives one flat dict of "known" keys plus an ``extra``
dict. Known keys (``KNOWN_KEYS``) are the sampling and tool settings every
adapter understands; anything else is provider specific and travels in
``extra`` untouched, e.g. ``reasoning_effort`` for OpenAI reasoning models.

For a request the dict is layered, later layers winning:

1. client ``default_params``
2. the temperature / top_p pair of the request's ``ReasoningMode``
3. explicit ``SamplingOptions`` values
4. ``request.params``
"""

from __future__ import annotations

from typing import Any, Final, Mapping

from agentcore.types.request import LLMRequest, ReasoningMode

KNOWN_KEYS: Final[frozenset[str]] = frozenset(
    {
        "temperature",
        "top_p",
        "max_tokens",
        "seed",
        "stop",
        "stream",
        "tools",
        "tool_choice",
        "parallel_tool_calls",
        "response_format",
        "frequency_penalty",
        "presence_penalty",
        "user",
    }
)

# (temperature, top_p) per reasoning mode
REASONING_SAMPLING: Final[dict[ReasoningMode, tuple[float, float]]] = {
    ReasoningMode.DETERMINISTIC: (0.0, 1.0),
    ReasoningMode.PLANNING: (0.3, 1.0),
    ReasoningMode.BALANCED: (0.9, 0.5),
    ReasoningMode.CREATIVE: (0.9, 1.0),
}

_SAMPLING_FIELDS: Final = ("temperature", "top_p", "max_tokens", "seed", "stop")


def normalize_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Split *params* into known keys and ``extra``.

    ``stream`` defaults to False. Unknown keys land in ``extra``; an ``extra``
    mapping supplied by the caller wins over them. ``None`` values survive so
    each adapter decides whether to drop them.

    >>> normalize_params({"temperature": 0.2, "reasoning_effort": "high"})
    {'temperature': 0.2, 'stream': False, 'extra': {'reasoning_effort': 'high'}}
    """
    if params is None:
        params = {}
    elif not isinstance(params, Mapping):
        raise TypeError(f"params must be a mapping, got {type(params).__name__}")

    supplied = params.get("extra") or {}
    if not isinstance(supplied, Mapping):
        raise TypeError("params['extra'] must be a mapping")

    known = {k: v for k, v in params.items() if k in KNOWN_KEYS}
    unknown = {k: v for k, v in params.items() if k not in KNOWN_KEYS and k != "extra"}
    known.setdefault("stream", False)
    known["extra"] = unknown | dict(supplied)
    return known


def merge_params(
    base: Mapping[str, Any] | None, overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Layer *overrides* on *base* (``extra`` merged key by key) and normalize."""
    base_n = normalize_params(base)
    over_n = normalize_params(overrides)
    if "stream" not in (overrides or {}):
        over_n.pop("stream")
    extra = base_n.pop("extra") | over_n.pop("extra")
    return {**base_n, **over_n, "extra": extra}


def request_params(request: LLMRequest, defaults: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Resolve the layered params for one provider call of *request*."""
    temperature, top_p = REASONING_SAMPLING[request.reasoning]
    sampling: dict[str, Any] = {"temperature": temperature, "top_p": top_p}
    if request.sampling is not None:
        for key in _SAMPLING_FIELDS:
            value = getattr(request.sampling, key)
            if value is not None:
                sampling[key] = value

    return merge_params(merge_params(defaults, sampling), request.params)
