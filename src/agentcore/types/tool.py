"""
Provider-neutral dataclasses for client-side tool use.

Everything provider-specific lives in adapters.
"""
from __future__ import annotations

import inspect
import json
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable

from pydantic_core import to_jsonable_python

from agentcore._exceptions import ToolExecutionError
from agentcore.schema import canonical_json

if TYPE_CHECKING:
    from agentcore.types.chat import Conversation

__all__ = ["Tool", "ToolParameter", "ToolCall", "ToolCallResult"]


@dataclass(frozen=True, slots=True)
class ToolParameter:
    """Binding metadata for one formal parameter, captured at registration."""

    name: str
    annotation: Any
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD
    default: Any = inspect.Parameter.empty
    nullable: bool = False
    description: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def required(self) -> bool:
        return not self.has_default and not self.nullable


@dataclass(frozen=True, slots=True)
class Tool:
    """A named, described, schema'd callable the model may invoke."""

    name: str
    description: str
    parameters_schema: dict[str, Any]
    function: Callable[..., Any]
    parameters: tuple[ToolParameter, ...] = ()
    tags: frozenset[str] = frozenset()
    owner: Any = None

    def split_arguments(self, values: Iterable[Any]) -> tuple[list[Any], dict[str, Any]]:
        """Map bound positional values onto ``(*args, **kwargs)`` for the function."""
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for param, value in zip(self.parameters, values):
            if param.kind is inspect.Parameter.KEYWORD_ONLY:
                kwargs[param.name] = value
            else:
                args.append(value)
        return args, kwargs

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by the model, or a plain reply when ``name`` is empty."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)
    parameters: list[Any] | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        if not (self.name or "").strip() and not (self.message or "").strip():
            raise ValueError("A tool call needs a name or a message")

    @classmethod
    def from_message(cls, message: str) -> "ToolCall":
        """A reply-only call carrying text for the user."""
        return cls(message=message)

    @property
    def is_message_only(self) -> bool:
        return not self.name

    @property
    def canonical_arguments(self) -> str:
        return canonical_json(self.arguments)

    def same_as(self, other: "ToolCall") -> bool:
        return (
            not self.is_message_only
            and self.name.casefold() == other.name.casefold()
            and self.canonical_arguments == other.canonical_arguments
        )

    def exists_in(
        self, conversation: "Conversation", pending: Iterable["ToolCall"] = ()
    ) -> bool:
        """True when an identical call was already made in this turn or the conversation."""
        if any(self.same_as(other) for other in pending):
            return True
        return conversation.find_tool_call(self) is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        if self.name:
            data["name"] = self.name
            data["arguments"] = to_jsonable_python(self.arguments)
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data.get("name") or "",
            arguments=dict(data.get("arguments") or {}),
            message=data.get("message"),
        )

    def __str__(self) -> str:
        if self.is_message_only:
            return self.message or ""
        args = json.dumps(to_jsonable_python(self.arguments), ensure_ascii=False)
        text = f"{self.name}({args})"
        return f"{self.message} {text}" if self.message else text


@dataclass(slots=True)
class ToolCallResult:
    """Outcome of running one ToolCall; ``value`` and ``error`` are never both set."""

    call: ToolCall
    value: Any = None
    error: ToolExecutionError | None = None

    def __post_init__(self) -> None:
        if self.value is not None and self.error is not None:
            raise ValueError("A tool result cannot carry both a value and an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_content(self) -> str:
        """Text form sent back to the model as the tool message."""
        if self.error is not None:
            return f"Error: {self.error}"
        if isinstance(self.value, str):
            return self.value
        return json.dumps(to_jsonable_python(self.value, fallback=str), ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"call": self.call.to_dict()}
        if self.error is not None:
            data["error"] = {"tool": self.error.tool_name, "detail": self.error.detail}
        else:
            data["value"] = to_jsonable_python(self.value, fallback=str)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallResult":
        call = ToolCall.from_dict(data["call"])
        error = data.get("error")
        if error:
            return cls(call, error=ToolExecutionError(error["tool"], error["detail"]))
        return cls(call, value=data.get("value"))
