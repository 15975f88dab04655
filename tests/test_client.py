"""Tests for BaseLLMClient behaviour over a scripted provider stream."""

from dataclasses import dataclass, field

import pytest

from agentcore._exceptions import ProviderError, RetryExhaustedError
from agentcore.retry import DefaultRetryPolicy, RetryPolicyOptions
from agentcore.tokens import ContextTrimOptions, SlidingWindowTrimmer
from agentcore.types import (
    Conversation,
    LLMRequest,
    Role,
    StreamChunk,
    StreamKind,
    ToolCall,
    ToolCallMode,
    ToolCallResult,
)

from scripted import WordTokenizer, native_call, no_sleep, text


@dataclass
class Weather:
    city: str
    temp_c: int
    conditions: list[str] = field(default_factory=list)


def ask(question="What now?"):
    return Conversation().add_system("You are helpful.").add_user(question)


def correction(client, attempt):
    message = client.requests[attempt].conversation.last()
    assert message.role is Role.SYSTEM and message.is_temporary
    return message.content


class TestExecute:
    @pytest.mark.asyncio
    async def test_plain_text_response(self, make_client):
        client = make_client(
            [
                StreamChunk.text_chunk("Hello"),
                StreamChunk.text_chunk(" world"),
                StreamChunk.usage_chunk(10, 5),
                StreamChunk.finish_chunk("stop"),
            ]
        )

        response = await client.execute(ask())

        assert response.text == "Hello world"
        assert response.assistant_message == "Hello world"
        assert response.tool_calls == []
        assert response.finish_reason == "stop"
        assert (response.input_tokens, response.output_tokens) == (10, 5)
        assert client.usage.snapshot().total_tokens == 15

    @pytest.mark.asyncio
    async def test_inline_tool_call_split_across_chunks(self, make_client):
        client = make_client(
            text('Sure ', '<TOOL_CALL>{"name":"echo",', '"arguments":{"message":"hi"}}</TOOL_CALL>')
        )

        response = await client.execute(ask())

        assert response.has_tool_calls
        call = response.tool_calls[0]
        assert (call.name, call.arguments, call.parameters) == ("echo", {"message": "hi"}, ["hi"])
        assert response.assistant_message == "Sure"

    @pytest.mark.asyncio
    async def test_json_data_in_reply_is_not_a_tool_call(self, make_client):
        reply = 'Here is the user: {"name": "Ann", "age": 4} - anything else?'
        client = make_client(text(reply))

        response = await client.execute(ask())

        assert response.tool_calls == []
        assert response.assistant_message == reply

    @pytest.mark.asyncio
    async def test_message_only_reply(self, make_client):
        client = make_client(text('{"message": "All set"}'))

        response = await client.execute(ask())

        assert not response.has_tool_calls
        assert response.assistant_message == "All set"

    @pytest.mark.asyncio
    async def test_native_tool_call_is_validated_and_bound(self, make_client):
        client = make_client(native_call("ADD", a=1, b=2))

        response = await client.execute(ask())

        call = response.tool_calls[0]
        assert call.name == "add"
        assert call.parameters == [1, 2]
        assert response.finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_unknown_inline_tool_is_corrected(self, make_client):
        client = make_client(text('{"name": "fly", "arguments": {}}'), text("Done."))

        response = await client.execute(ask())

        assert response.text == "Done."
        assert correction(client, 1) == (
            "Retry 1 because: Tool `fly` not registered. Available: echo, add"
        )

    @pytest.mark.asyncio
    async def test_unknown_native_tool_is_corrected(self, make_client):
        client = make_client(native_call("fly"), text("Done."))

        await client.execute(ask())

        assert correction(client, 1) == (
            "Retry 1 because: Tool `fly` is invalid. Use one of: echo, add."
        )

    @pytest.mark.asyncio
    async def test_bad_arguments_are_corrected(self, make_client):
        client = make_client(native_call("add", a="one", b=2), native_call("add", a=1, b=2))

        response = await client.execute(ask())

        assert response.tool_calls[0].parameters == [1, 2]
        assert "parameter(s): a: Expected integer" in correction(client, 1)

    @pytest.mark.asyncio
    async def test_duplicate_call_points_at_previous_result(self, make_client):
        conversation = ask("Say hi")
        previous = ToolCallResult(ToolCall(name="echo", arguments={"message": "hi"}), "hi")
        conversation.append_tool_results([previous])
        client = make_client(native_call("echo", message="HI"), text("It said hi."))

        response = await client.execute(conversation)

        assert response.text == "It said hi."
        assert correction(client, 1) == (
            "Retry 1 because: Tool `echo` was already called with same arguments. Last result: hi"
        )

    @pytest.mark.asyncio
    async def test_duplicate_call_detected_when_prompt_is_trimmed(self, make_client):
        conversation = ask("Say hi")
        previous = ToolCallResult(ToolCall(name="echo", arguments={"message": "hi"}), "hi")
        conversation.append_tool_results([previous])
        conversation.add_user(" ".join(["Please say hi once more"] * 12))
        trimmer = SlidingWindowTrimmer(
            WordTokenizer(), ContextTrimOptions(max_context_tokens=40, margin=1.0)
        )
        client = make_client(
            native_call("echo", message="hi"), text("It said hi."), trimmer=trimmer
        )

        response = await client.execute(conversation)

        assert response.text == "It said hi."
        assert len(client.requests) == 2
        assert Role.TOOL not in [m.role for m in client.requests[0].conversation]
        assert "already called with same arguments. Last result: hi" in correction(client, 1)

    @pytest.mark.asyncio
    async def test_repeated_assistant_text_is_rejected(self, make_client):
        conversation = ask("q").add_assistant("Same answer").add_user("again?")
        client = make_client(text("Same answer"), text("A better answer"))

        response = await client.execute(conversation)

        assert response.text == "A better answer"
        assert "repeated the same assistant response" in correction(client, 1)

    @pytest.mark.asyncio
    async def test_one_tool_mode_stops_after_first_call(self, make_client):
        client = make_client(
            [
                StreamChunk.tool_call_chunk(ToolCall(name="echo", arguments={"message": "a"})),
                StreamChunk.tool_call_chunk(ToolCall(name="add", arguments={"a": 1, "b": 1})),
                StreamChunk.finish_chunk("tool_calls"),
            ]
        )

        response = await client.execute(LLMRequest(ask(), tool_call_mode=ToolCallMode.ONE_TOOL))

        assert [c.name for c in response.tool_calls] == ["echo"]
        assert response.finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, make_client):
        bad = text('{"name": "fly", "arguments": {}}')
        client = make_client(
            bad,
            bad,
            retry_policy=DefaultRetryPolicy(RetryPolicyOptions(max_retries=1), sleep=no_sleep),
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.execute(ask())

        assert exc_info.value.attempts == 2
        assert len(client.requests) == 2

    @pytest.mark.asyncio
    async def test_disabled_retries_fail_after_one_attempt(self, make_client):
        client = make_client(
            text('{"name": "fly", "arguments": {}}'),
            retry_policy=DefaultRetryPolicy(RetryPolicyOptions(enabled=False), sleep=no_sleep),
        )

        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.execute(ask())

        assert exc_info.value.attempts == 1
        assert "not registered" in str(exc_info.value.__cause__)
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_tokens_summed_over_attempts_and_streamed_markers(self, make_client):
        client = make_client(
            [
                StreamChunk.usage_chunk(5, 1),
                StreamChunk.text_chunk('{"name": "fly", "arguments": {}}'),
                StreamChunk.finish_chunk(),
            ],
            [
                StreamChunk.text_chunk("ok"),
                StreamChunk.usage_chunk(7, 2),
                StreamChunk.finish_chunk(),
            ],
        )
        seen = []

        response = await client.execute(ask(), on_stream=seen.append)

        assert response.text == "ok"
        assert (response.input_tokens, response.output_tokens) == (12, 3)
        assert [c.text for c in seen if c.is_retry_marker] == ["[retry 1]"]
        assert client.usage.snapshot().requests == 1

    @pytest.mark.asyncio
    async def test_usage_estimated_when_provider_omits_it(self, make_client):
        client = make_client(text("one two three"))

        response = await client.execute(ask())

        assert response.output_tokens == 3
        assert response.input_tokens > 0

    @pytest.mark.asyncio
    async def test_missing_finish_is_synthesised(self, make_client):
        client = make_client(text("hi", finish=None))

        response = await client.execute(ask())

        assert response.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_tool_exposure_follows_request(self, make_client):
        client = make_client(text("a"), text("b"))

        await client.execute(LLMRequest(ask(), allowed_tools=["ADD", "missing"]))
        await client.execute(LLMRequest(ask(), tool_call_mode=ToolCallMode.DISABLED))

        assert client.tools_seen == [["add"], []]

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self, make_client):
        client = make_client([ConnectionError("reset by peer")])

        with pytest.raises(ProviderError) as exc_info:
            await client.execute(ask())

        assert str(exc_info.value).startswith("Connection problem")
        assert isinstance(exc_info.value.original_exc, ConnectionError)

    @pytest.mark.asyncio
    async def test_caller_conversation_untouched(self, make_client):
        conversation = ask()
        client = make_client(native_call("fly"), text("Done."))

        await client.execute(conversation)

        assert len(conversation) == 2


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_validated_chunks(self, make_client):
        client = make_client(text('{"name": "echo", "arguments": {"message": "x"}}'))

        async with client:
            chunks = [chunk async for chunk in client.stream(ask())]

        assert [c.kind for c in chunks] == [
            StreamKind.TEXT,
            StreamKind.TOOL_CALL,
            StreamKind.FINISH,
        ]
        assert chunks[1].tool_call.parameters == ["x"]


class TestExecuteStructured:
    @pytest.mark.asyncio
    async def test_invalid_output_is_retried_until_valid(self, make_client):
        conversation = ask("Weather in Oslo?")
        client = make_client(
            text('{"city": "Oslo"}'),
            text("```json\n", '{"city": "Oslo", "temp_c": 21}', "\n```"),
        )

        response = await client.execute_structured(conversation, Weather)

        assert response.result == Weather("Oslo", 21, [])
        assert response.raw == {"city": "Oslo", "temp_c": 21}
        assert response.finish_reason == "stop"
        assert client.tools_seen[0] == []
        assert client.requests[0].tool_call_mode is ToolCallMode.DISABLED
        assert "Respond only with JSON" in client.requests[0].conversation.last().content
        assert correction(client, 1).startswith(
            "Retry 1 because: Validation failed: temp_c: Missing required field 'temp_c'"
        )
        assert len(conversation) == 2

    @pytest.mark.asyncio
    async def test_non_json_output_is_retried(self, make_client):
        client = make_client(text("It is sunny."), text('{"city": "Rome", "temp_c": 30}'))

        response = await client.execute_structured(ask(), Weather)

        assert response.result.city == "Rome"
        assert correction(client, 1) == (
            "Retry 1 because: Return valid JSON matching the schema."
        )

    def test_schema_is_cached_per_type(self, make_client):
        client = make_client()

        assert client.schema_for(Weather) is client.schema_for(Weather)
        assert Weather in client.schema_cache

    @pytest.mark.asyncio
    async def test_exhaustion_raises(self, make_client):
        client = make_client(
            text("nope"),
            text("still nope"),
            retry_policy=DefaultRetryPolicy(RetryPolicyOptions(max_retries=1), sleep=no_sleep),
        )

        with pytest.raises(RetryExhaustedError):
            await client.execute_structured(ask(), Weather)
