"""Test suite for parameter normalization and reasoning-mode sampling."""

import pytest

from agentcore.params import merge_params, normalize_params, request_params
from agentcore.types import Conversation, LLMRequest, ReasoningMode, SamplingOptions


class TestParamsNormalization:
    """Test parameter normalization functionality."""

    def test_basic_params_normalization(self):
        """Test basic parameter normalization with core parameters."""
        params = normalize_params(
            {
                "temperature": 0.7,
                "max_tokens": 100,
                "top_p": 0.9,
                "frequency_penalty": 0.5,
                "stream": True,
            }
        )

        assert params["temperature"] == 0.7
        assert params["max_tokens"] == 100
        assert params["top_p"] == 0.9
        assert params["frequency_penalty"] == 0.5
        assert params["stream"] is True

    def test_extra_params_handling(self):
        """Unknown top-level keys move under extra."""
        params = normalize_params(
            {"temperature": 0.7, "reasoning_effort": "minimal", "verbosity": "low"}
        )

        assert params["temperature"] == 0.7
        assert params["extra"] == {"reasoning_effort": "minimal", "verbosity": "low"}

    def test_existing_extra_dict_merge(self):
        params = normalize_params(
            {
                "reasoning_effort": "minimal",
                "extra": {"verbosity": "high", "custom": "value"},
            }
        )

        assert params["extra"]["reasoning_effort"] == "minimal"
        assert params["extra"]["verbosity"] == "high"
        assert params["extra"]["custom"] == "value"

    def test_empty_normalization(self):
        for raw in ({}, None):
            params = normalize_params(raw)
            assert params["stream"] is False
            assert params["extra"] == {}
            assert "temperature" not in params

    def test_non_dict_rejected(self):
        with pytest.raises(TypeError):
            normalize_params([("temperature", 0.1)])

    def test_merge_overrides_win(self):
        merged = merge_params(
            {"temperature": 0.1, "extra": {"a": 1, "b": 2}},
            {"temperature": 0.5, "extra": {"b": 3}},
        )

        assert merged["temperature"] == 0.5
        assert merged["extra"] == {"a": 1, "b": 3}


class TestRequestParams:
    """Reasoning mode picks the sampling values unless explicitly overridden."""

    def _request(self, **kwargs):
        return LLMRequest(Conversation().add_user("hi"), **kwargs)

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (ReasoningMode.DETERMINISTIC, (0.0, 1.0)),
            (ReasoningMode.PLANNING, (0.3, 1.0)),
            (ReasoningMode.BALANCED, (0.9, 0.5)),
            (ReasoningMode.CREATIVE, (0.9, 1.0)),
        ],
    )
    def test_reasoning_mode_sampling(self, mode, expected):
        params = request_params(self._request(reasoning=mode))
        assert (params["temperature"], params["top_p"]) == expected

    def test_sampling_options_override_mode(self):
        request = self._request(
            reasoning=ReasoningMode.CREATIVE,
            sampling=SamplingOptions(temperature=0.2, max_tokens=50),
        )
        params = request_params(request, {"max_tokens": 1000})

        assert params["temperature"] == 0.2
        assert params["top_p"] == 1.0
        assert params["max_tokens"] == 50

    def test_request_params_override_everything(self):
        request = self._request(
            sampling=SamplingOptions(temperature=0.2),
            params={"temperature": 0.0, "reasoning_effort": "low"},
        )
        params = request_params(request)

        assert params["temperature"] == 0.0
        assert params["extra"]["reasoning_effort"] == "low"
