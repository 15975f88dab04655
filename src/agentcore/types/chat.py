"""
Conversation model shared by the client, the tool runtime and the pipeline.
"""
from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, Iterator, Optional, Self, Sequence

from agentcore.types.tool import ToolCall, ToolCallResult

__all__ = ["Role", "Message", "Conversation"]


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _has_text(text: str | None) -> bool:
    return bool(text and text.strip())


@dataclass(slots=True)
class Message:
    """One conversation entry. Must carry text, tool calls or a tool result."""

    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    is_temporary: bool = False
    result: ToolCallResult | None = None

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        if self.result is not None and self.content is None:
            self.content = self.result.as_content()
        if not _has_text(self.content) and not self.tool_calls and self.result is None:
            raise ValueError("A message needs non-blank content or at least one tool call")

    @property
    def tool_call_id(self) -> str | None:
        return self.result.call.id if self.result is not None else None

    def render(self) -> str:
        if _has_text(self.content):
            return self.content or ""
        return "\n".join(str(call) for call in self.tool_calls or ())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.is_temporary:
            data["is_temporary"] = True
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        calls = data.get("tool_calls")
        result = data.get("result")
        return cls(
            role=Role(data["role"]),
            content=data.get("content"),
            tool_calls=[ToolCall.from_dict(c) for c in calls] if calls else None,
            is_temporary=bool(data.get("is_temporary", False)),
            result=ToolCallResult.from_dict(result) if result else None,
        )


class Conversation:
    """Ordered list of messages with helpers for tool bookkeeping.

    Temporary messages (retry corrections, format instructions) live only until
    the next assistant message is committed.
    """

    def __init__(self, messages: Iterable[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or ())

    # --- container protocol ------------------------------------------------
    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conversation):
            return NotImplemented
        return [m.to_dict() for m in self] == [m.to_dict() for m in other]

    def __repr__(self) -> str:
        return f"Conversation({len(self)} messages)"

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    # --- mutation ----------------------------------------------------------
    def add(
        self,
        role: Role | str,
        content: str | None = None,
        tool_calls: Sequence[ToolCall] | None = None,
        *,
        temporary: bool = False,
    ) -> Self:
        """Append a message; blank content with no tool calls is ignored.

        Committing an assistant message sweeps out earlier temporary messages.
        """
        if not _has_text(content) and not tool_calls:
            return self
        role = Role(role)
        if role is Role.ASSISTANT:
            self._messages = [m for m in self._messages if not m.is_temporary]
        self._messages.append(
            Message(role, content, list(tool_calls) if tool_calls else None, temporary)
        )
        return self

    def add_system(self, content: str, *, temporary: bool = False) -> Self:
        return self.add(Role.SYSTEM, content, temporary=temporary)

    def add_user(self, content: str, *, temporary: bool = False) -> Self:
        return self.add(Role.USER, content, temporary=temporary)

    def add_assistant(self, content: str) -> Self:
        return self.add(Role.ASSISTANT, content)

    def add_tool_call(self, call: ToolCall) -> Self:
        if call.is_message_only:
            return self.add_assistant(call.message or "")
        return self.add(Role.ASSISTANT, call.message, [call])

    def add_tool_result(self, result: ToolCallResult) -> Self:
        if result.call.is_message_only:
            return self
        self._messages.append(Message(Role.TOOL, result=result))
        return self

    def append_tool_results(self, results: Iterable[ToolCallResult]) -> Self:
        """Record each call and its outcome; reply-only calls become assistant text."""
        for result in results:
            self.add_tool_call(result.call)
            self.add_tool_result(result)
        return self

    def append(self, other: "Conversation", *, include_system: bool = False) -> Self:
        for message in other:
            if message.role is Role.SYSTEM and not include_system:
                continue
            self._messages.append(copy.deepcopy(message))
        return self

    def clear_temporary(self) -> Self:
        self._messages = [m for m in self._messages if not m.is_temporary]
        return self

    def clone(self) -> "Conversation":
        return Conversation(copy.deepcopy(self._messages))

    # --- queries -----------------------------------------------------------
    def filter(self, *roles: Role) -> "Conversation":
        wanted = set(roles)
        return Conversation(copy.deepcopy([m for m in self if m.role in wanted]))

    def last(self, role: Role | None = None) -> Optional[Message]:
        for message in reversed(self._messages):
            if role is None or message.role is role:
                return message
        return None

    def is_last_assistant_message_same(self, text: str | None) -> bool:
        if not _has_text(text):
            return False
        last = self.last(Role.ASSISTANT)
        if last is None or not _has_text(last.content):
            return False
        return (last.content or "").strip().casefold() == (text or "").strip().casefold()

    def find_tool_call(self, call: ToolCall) -> Optional[ToolCall]:
        for message in reversed(self._messages):
            for existing in message.tool_calls or ():
                if call.same_as(existing):
                    return existing
        return None

    def last_tool_result(self, call: ToolCall) -> Optional[ToolCallResult]:
        for message in reversed(self._messages):
            if message.result is not None and call.same_as(message.result.call):
                return message.result
        return None

    def current_user_request(self) -> str | None:
        last = self.last(Role.USER)
        return last.content if last is not None else None

    def scoped_from_last_user(self) -> "Conversation":
        """Messages from the most recent user message onwards."""
        for idx in range(len(self._messages) - 1, -1, -1):
            if self._messages[idx].role is Role.USER:
                return Conversation(copy.deepcopy(self._messages[idx:]))
        return self.clone()

    # --- rendering and persistence ------------------------------------------
    def to_transcript(self, *, include_system: bool = True) -> str:
        lines = []
        for message in self:
            if message.role is Role.SYSTEM and not include_system:
                continue
            lines.append(f"{message.role.value}: {message.render()}")
        return "\n".join(lines)

    def to_log_list(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for message in self:
            entry: dict[str, Any] = {"role": message.role.value, "content": message.content}
            if message.tool_calls:
                entry["tool_calls"] = [str(call) for call in message.tool_calls]
            out.append(entry)
        return out

    def to_dict(self) -> list[dict[str, Any]]:
        return [message.to_dict() for message in self]

    @classmethod
    def from_dict(cls, data: Iterable[dict[str, Any]]) -> "Conversation":
        return cls(Message.from_dict(item) for item in data)

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_json(cls, raw: str) -> "Conversation":
        return cls.from_dict(json.loads(raw))
