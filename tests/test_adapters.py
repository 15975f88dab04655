"""Tests for the OpenAI and Anthropic request adapters."""

import pytest

from agentcore.adapters import AnthropicRequestAdapter, OpenAIRequestAdapter, ephemeral
from agentcore.params import normalize_params
from agentcore.tools import ToolRegistry
from agentcore.types import Conversation, ToolCall, ToolCallMode, ToolCallResult
from agentcore._exceptions import ToolExecutionError


def calc(a: int, b: int) -> int:
    """Add two numbers."""
    return a + b


@pytest.fixture
def tools():
    registry = ToolRegistry()
    registry.register(calc)
    return registry.tools


@pytest.fixture
def tool_conversation():
    call = ToolCall(id="call_1", name="calc", arguments={"a": 2, "b": 2})
    conversation = Conversation().add_system("You are helpful").add_user("Calculate 2+2")
    conversation.append_tool_results([ToolCallResult(call, 4)])
    return conversation


class TestOpenAIRequestAdapter:
    """Test OpenAI request adapter functionality."""

    @pytest.fixture
    def adapter(self):
        return OpenAIRequestAdapter()

    def test_to_provider_basic_functionality(self, adapter):
        conversation = Conversation().add_user("Hello")
        params = normalize_params({"temperature": 0.7, "max_tokens": 100})

        result = adapter.to_provider(conversation, [], ToolCallMode.AUTO, params)

        assert result["messages"] == [{"role": "user", "content": "Hello"}]
        assert result["temperature"] == 0.7
        assert result["max_tokens"] == 100
        assert "stream" not in result
        assert "tools" not in result

    def test_to_provider_tool_calls(self, adapter, tool_conversation):
        result = adapter.to_provider(tool_conversation, [], ToolCallMode.AUTO, normalize_params({}))

        messages = result["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool"]
        assert messages[2]["content"] is None
        assert messages[2]["tool_calls"][0]["function"] == {
            "name": "calc",
            "arguments": '{"a": 2, "b": 2}',
        }
        assert messages[3] == {"role": "tool", "tool_call_id": "call_1", "content": "4"}

    @pytest.mark.parametrize(
        "mode, choice",
        [
            (ToolCallMode.AUTO, "auto"),
            (ToolCallMode.REQUIRED, "required"),
            (ToolCallMode.NONE, "none"),
        ],
    )
    def test_tool_choice_follows_mode(self, adapter, tools, mode, choice):
        result = adapter.to_provider(Conversation().add_user("hi"), tools, mode, normalize_params({}))

        assert result["tool_choice"] == choice
        assert result["tools"][0]["function"]["name"] == "calc"
        assert "parallel_tool_calls" not in result

    def test_one_tool_disables_parallel_calls(self, adapter, tools):
        result = adapter.to_provider(
            Conversation().add_user("hi"), tools, ToolCallMode.ONE_TOOL, normalize_params({})
        )

        assert result["parallel_tool_calls"] is False

    def test_disabled_mode_strips_tools(self, adapter, tools):
        params = normalize_params({"tool_choice": "auto"})
        result = adapter.to_provider(
            Conversation().add_user("hi"), tools, ToolCallMode.DISABLED, params
        )

        assert "tools" not in result
        assert "tool_choice" not in result

    def test_none_values_dropped_and_extras_forwarded(self, adapter):
        params = normalize_params({"max_tokens": None, "logit_bias": {"1": 2}})
        result = adapter.to_provider(Conversation().add_user("hi"), [], ToolCallMode.AUTO, params)

        assert "max_tokens" not in result
        assert result["logit_bias"] == {"1": 2}


class TestAnthropicRequestAdapter:
    """Test Anthropic request adapter functionality."""

    def test_system_lifted_and_default_max_tokens(self):
        adapter = AnthropicRequestAdapter()
        conversation = Conversation().add_system("Be brief").add_user("Hello")

        result = adapter.to_provider(conversation, [], ToolCallMode.AUTO, normalize_params({}))

        assert result["system"] == "Be brief"
        assert result["max_tokens"] == 4096
        assert result["messages"] == [
            {"role": "user", "content": [{"type": "text", "text": "Hello"}]}
        ]

    def test_cached_system_prompt(self):
        adapter = AnthropicRequestAdapter(cache_system=True)
        conversation = Conversation().add_system("Be brief").add_user("Hello")

        result = adapter.to_provider(conversation, [], ToolCallMode.AUTO, normalize_params({}))

        assert result["system"] == [ephemeral("Be brief")]

    def test_tool_blocks_and_alternation(self, tool_conversation, tools):
        adapter = AnthropicRequestAdapter()
        tool_conversation.add_user("thanks")

        result = adapter.to_provider(
            tool_conversation, tools, ToolCallMode.REQUIRED, normalize_params({"seed": 1})
        )

        messages = result["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[1]["content"][0] == {
            "type": "tool_use",
            "id": "call_1",
            "name": "calc",
            "input": {"a": 2, "b": 2},
        }
        # tool result and the following user text share one user turn
        assert messages[2]["content"][0]["type"] == "tool_result"
        assert messages[2]["content"][1] == {"type": "text", "text": "thanks"}
        assert result["tool_choice"] == {"type": "any"}
        assert result["tools"][0]["input_schema"]["required"] == ["a", "b"]
        assert "seed" not in result

    def test_failed_tool_result_marked_as_error(self):
        call = ToolCall(id="c1", name="calc", arguments={})
        conversation = Conversation().add_user("go")
        conversation.append_tool_results(
            [ToolCallResult(call, error=ToolExecutionError("calc", "boom"))]
        )

        result = AnthropicRequestAdapter().to_provider(
            conversation, [], ToolCallMode.AUTO, normalize_params({})
        )

        block = result["messages"][-1]["content"][0]
        assert block["is_error"] is True
        assert "boom" in block["content"]

    def test_stop_becomes_stop_sequences(self):
        result = AnthropicRequestAdapter().to_provider(
            Conversation().add_user("hi"), [], ToolCallMode.AUTO, normalize_params({"stop": "END"})
        )

        assert result["stop_sequences"] == ["END"]
        assert "stop" not in result
