"""Tests for the OpenAI and Anthropic providers over faked SDK streams."""

from types import SimpleNamespace

import pytest
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionChunk

from agentcore import create_client
from agentcore.providers import AnthropicLLMClient, OpenAILLMClient, Provider
from agentcore.types import Conversation, LLMRequest

from scripted import WordTokenizer


def completion_chunk(delta=None, finish_reason=None, usage=None):
    choices = [] if delta is None else [{"index": 0, "delta": delta, "finish_reason": finish_reason}]
    return ChatCompletionChunk.model_validate(
        {
            "id": "chunk",
            "object": "chat.completion.chunk",
            "created": 0,
            "model": "gpt-test",
            "choices": choices,
            "usage": usage,
        }
    )


class FakeCompletions:
    def __init__(self, chunks):
        self.chunks = chunks
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._stream()

    async def _stream(self):
        for chunk in self.chunks:
            yield chunk


class FakeMessageStream:
    def __init__(self, events, final):
        self.events = events
        self.final = final

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for event in self.events:
            yield event

    async def get_final_message(self):
        return self.final


def ask():
    return Conversation().add_system("Be terse.").add_user("What is 1 + 2?")


@pytest.fixture
def openai_sdk(monkeypatch):
    def install(chunks):
        sdk = AsyncOpenAI(api_key="test-key")
        fake = FakeCompletions(chunks)
        monkeypatch.setattr(sdk.chat.completions, "create", fake.create)
        return sdk, fake

    return install


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_streamed_text_and_usage(self, openai_sdk, registry):
        sdk, fake = openai_sdk(
            [
                completion_chunk({"role": "assistant", "content": "It is "}),
                completion_chunk({"content": "3."}),
                completion_chunk({}, finish_reason="stop"),
                completion_chunk(usage={"prompt_tokens": 11, "completion_tokens": 2, "total_tokens": 13}),
            ]
        )
        client = OpenAILLMClient.from_client(
            "gpt-test", sdk, registry=registry, tokenizer=WordTokenizer()
        )

        response = await client.execute(ask())

        assert response.text == "It is 3."
        assert response.finish_reason == "stop"
        assert (response.input_tokens, response.output_tokens) == (11, 2)
        args = fake.calls[0]
        assert args["model"] == "gpt-test"
        assert args["stream"] is True
        assert args["stream_options"] == {"include_usage": True}
        assert [t["function"]["name"] for t in args["tools"]] == ["echo", "add"]
        assert args["messages"][0] == {"role": "system", "content": "Be terse."}

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_assembled(self, openai_sdk, registry):
        sdk, _ = openai_sdk(
            [
                completion_chunk(
                    {
                        "tool_calls": [
                            {
                                "index": 0,
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "add", "arguments": '{"a": 1,'},
                            }
                        ]
                    }
                ),
                completion_chunk(
                    {"tool_calls": [{"index": 0, "function": {"arguments": ' "b": 2}'}}]}
                ),
                completion_chunk({}, finish_reason="tool_calls"),
            ]
        )
        client = OpenAILLMClient.from_client(
            "gpt-test", sdk, registry=registry, tokenizer=WordTokenizer()
        )

        response = await client.execute(ask())

        call = response.tool_calls[0]
        assert (call.id, call.name, call.parameters) == ("call_1", "add", [1, 2])
        assert response.finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_reasoning_effort_goes_to_extra_body(self, openai_sdk, registry):
        sdk, fake = openai_sdk([completion_chunk({"content": "ok"}, finish_reason="stop")])
        client = OpenAILLMClient.from_client(
            "gpt-test", sdk, registry=registry, tokenizer=WordTokenizer()
        )

        await client.execute(LLMRequest(ask(), params={"reasoning_effort": "low"}))

        args = fake.calls[0]
        assert "reasoning_effort" not in args
        assert args["extra_body"] == {"reasoning_effort": "low"}

    def test_from_client_rejects_wrong_sdk(self):
        with pytest.raises(TypeError):
            OpenAILLMClient.from_client("gpt-test", object())


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_text_and_tool_use(self, monkeypatch, registry):
        events = [
            SimpleNamespace(type="message_start"),
            SimpleNamespace(
                type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Let me add.")
            ),
            SimpleNamespace(
                type="content_block_delta",
                delta=SimpleNamespace(type="input_json_delta", partial_json='{"a": 1'),
            ),
        ]
        final = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me add."),
                SimpleNamespace(type="tool_use", id="tu_1", name="add", input={"a": 1, "b": 2}),
            ],
            usage=SimpleNamespace(input_tokens=9, output_tokens=4),
            stop_reason="tool_use",
        )
        calls = []

        def fake_stream(**kwargs):
            calls.append(kwargs)
            return FakeMessageStream(events, final)

        sdk = AsyncAnthropic(api_key="test-key")
        monkeypatch.setattr(sdk.messages, "stream", fake_stream)
        client = AnthropicLLMClient.from_client(
            "claude-test", sdk, registry=registry, tokenizer=WordTokenizer()
        )

        response = await client.execute(ask())

        assert response.text == "Let me add."
        call = response.tool_calls[0]
        assert (call.id, call.name, call.parameters) == ("tu_1", "add", [1, 2])
        assert response.finish_reason == "tool_use"
        assert (response.input_tokens, response.output_tokens) == (9, 4)
        args = calls[0]
        assert args["model"] == "claude-test"
        assert args["system"] == "Be terse."
        assert [t["name"] for t in args["tools"]] == ["echo", "add"]


class TestFactory:
    def test_creates_client_for_provider(self):
        client = create_client("openai", "gpt-test", api_key="test-key")
        assert isinstance(client, OpenAILLMClient)
        assert client.model == "gpt-test"

    def test_wraps_supplied_sdk_client(self):
        sdk = AsyncAnthropic(api_key="test-key")
        client = create_client(Provider.ANTHROPIC, "claude-test", client=sdk)
        assert isinstance(client, AnthropicLLMClient)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_client("mystery", "m", api_key="x")

    def test_environment_supplies_key_and_base_url(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:9999/v1")

        client = create_client(Provider.OPENAI, "gpt-test")

        assert client.api_key == "env-key"
        assert "localhost:9999" in str(client._client.base_url)

    def test_missing_key_is_reported(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(RuntimeError, match="ANTHROPIC_API_KEY"):
            create_client(Provider.ANTHROPIC, "claude-test")
