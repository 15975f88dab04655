"""Tests for token accounting and context trimming."""

import pytest

from agentcore.tokens import ContextTrimOptions, SlidingWindowTrimmer, TokenUsageTracker
from agentcore.types import Conversation, Role, ToolCall, ToolCallResult

from scripted import WordTokenizer


def long_conversation():
    call = ToolCall(name="echo", arguments={"message": "lots of words here"})
    return (
        Conversation()
        .add_system("Follow the rules.")
        .add_user("first question with quite a few words in it")
        .add_assistant("first answer that is also rather long and wordy")
        .append_tool_results([ToolCallResult(call, "echoed lots of words here again")])
        .add_user("final question")
    )


@pytest.fixture
def trimmer():
    return SlidingWindowTrimmer(WordTokenizer(), ContextTrimOptions(margin=1.0))


class TestTokenUsageTracker:
    def test_record_and_snapshot(self):
        tracker = TokenUsageTracker()
        tracker.record(10, 4)
        tracker.record(5, -3)

        usage = tracker.snapshot()

        assert (usage.input_tokens, usage.output_tokens, usage.requests) == (15, 4, 2)
        assert usage.total_tokens == 19

    def test_reset(self):
        tracker = TokenUsageTracker()
        tracker.record(1, 1)
        tracker.reset()

        assert tracker.snapshot().total_tokens == 0


class TestContextTrimOptions:
    def test_limit_applies_margin(self):
        assert ContextTrimOptions().limit == 6400

    def test_invalid_values_fall_back(self):
        opts = ContextTrimOptions(max_context_tokens=0, margin=3)
        assert (opts.max_context_tokens, opts.margin) == (8000, 1.0)


class TestSlidingWindowTrimmer:
    def test_under_limit_returns_same_conversation(self, trimmer):
        conversation = long_conversation()
        assert trimmer.trim(conversation, max_tokens=10_000) is conversation

    def test_tool_traffic_dropped_first(self, trimmer):
        conversation = long_conversation()
        without_tools = [
            m for m in conversation
            if m.role is not Role.TOOL and not m.tool_calls
        ]

        trimmed = trimmer.trim(conversation, max_tokens=trimmer.estimate(without_tools))

        assert [m.role for m in trimmed] == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.USER]
        assert len(conversation) == 6

    def test_keeps_system_and_latest_message(self, trimmer):
        trimmed = trimmer.trim(long_conversation(), max_tokens=1)

        assert [m.role for m in trimmed] == [Role.SYSTEM, Role.USER]
        assert trimmed.last().content == "final question"

    def test_uses_configured_limit_by_default(self):
        trimmer = SlidingWindowTrimmer(WordTokenizer(), ContextTrimOptions(max_context_tokens=5))

        trimmed = trimmer.trim(long_conversation())

        assert len(trimmed) == 2
