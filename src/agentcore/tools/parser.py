"""
Extract tool calls that a model wrote inline in free text.

Three matcher families run over the text:

* tagged JSON, an opening tag mentioning "tool" (``[TOOL_REQUEST]``,
  ``<tool_call>``, ``(TOOL)``), one JSON object and a closing tag;
* loose JSON objects carrying ``name`` and ``arguments``;
* JSON objects whose only key is ``message`` (a reply to the user).

JSON objects are located with ``json.JSONDecoder.raw_decode`` so braces inside
strings never confuse the scan. Matches are ordered by position and a match
that overlaps an earlier one is dropped, which lets a tag absorb the JSON it
wraps.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Protocol

from pydantic import ValidationError

from agentcore._exceptions import ToolValidationAggregateError, ToolValidationError
from agentcore.schema import (
    coerce_enum_names,
    is_simple_type,
    schema_for_type,
    strip_annotated,
    type_adapter,
    validate_against_schema,
)
from agentcore.tools.registry import ToolRegistry
from agentcore.types.tool import Tool, ToolCall

__all__ = [
    "ToolCallExtraction",
    "ToolCallParser",
    "TaggedJsonMatcher",
    "LooseToolJsonMatcher",
    "MessageOnlyMatcher",
    "bind_arguments",
]

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

NAME_KEY = "name"
ARGUMENTS_KEY = "arguments"
MESSAGE_KEY = "message"

_DECODER = json.JSONDecoder()

# An opening or closing tag of any bracket style whose text mentions "tool".
_TAG = re.compile(r"[\[<(][^\[\]<>(){}\n]*?tool[^\[\]<>(){}\n]*?[\]>)]", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Match:
    start: int
    end: int
    payload: dict[str, Any] | None
    raw: str
    priority: int = 0


class Matcher(Protocol):
    def find(self, text: str, strict: bool = False) -> list[Match]: ...


def _json_objects(text: str) -> Iterator[tuple[int, int, dict[str, Any]]]:
    """Yield ``(start, end, obj)`` for each complete top-level JSON object."""
    idx = text.find("{")
    while idx != -1:
        try:
            obj, end = _DECODER.raw_decode(text, idx)
        except json.JSONDecodeError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(obj, dict):
            yield idx, end, obj
        idx = text.find("{", end)


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


class TaggedJsonMatcher:
    """``<TOOL_CALL>{...}</TOOL_CALL>`` and friends."""

    priority = 0

    def find(self, text: str, strict: bool = False) -> list[Match]:
        found: list[Match] = []
        pos = 0
        while True:
            opening = _TAG.search(text, pos)
            if opening is None:
                return found
            body = _skip_ws(text, opening.end())
            if body >= len(text) or text[body] != "{":
                pos = opening.end()
                continue
            try:
                obj, json_end = _DECODER.raw_decode(text, body)
            except json.JSONDecodeError:
                closing = _TAG.search(text, body)
                if closing is None:
                    return found
                found.append(
                    Match(opening.start(), closing.end(), None,
                          text[body:closing.start()].strip(), self.priority)
                )
                pos = closing.end()
                continue
            closing = _TAG.match(text, _skip_ws(text, json_end))
            if closing is None or not isinstance(obj, dict):
                pos = opening.end()
                continue
            found.append(
                Match(opening.start(), closing.end(), obj, text[body:json_end], self.priority)
            )
            pos = closing.end()


class LooseToolJsonMatcher:
    """Bare JSON objects carrying ``name`` and ``arguments``.

    In strict mode objects with only one of the two keys match as well, so
    they can be reported.
    """

    priority = 1

    def find(self, text: str, strict: bool = False) -> list[Match]:
        return [
            Match(start, end, obj, text[start:end], self.priority)
            for start, end, obj in _json_objects(text)
            if (NAME_KEY in obj and ARGUMENTS_KEY in obj)
            or (strict and (NAME_KEY in obj or ARGUMENTS_KEY in obj))
        ]


class MessageOnlyMatcher:
    """``{"message": "..."}``: the model answering the user instead of calling a tool."""

    priority = 2

    def find(self, text: str, strict: bool = False) -> list[Match]:
        return [
            Match(start, end, obj, text[start:end], self.priority)
            for start, end, obj in _json_objects(text)
            if set(obj) == {MESSAGE_KEY}
        ]


@dataclass(slots=True)
class ToolCallExtraction:
    calls: list[ToolCall] = field(default_factory=list)
    assistant_message: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [c for c in self.calls if not c.is_message_only]


def _resolve(matches: list[Match]) -> list[Match]:
    ordered = sorted(matches, key=lambda m: (m.start, m.priority))
    kept: list[Match] = []
    for match in ordered:
        if kept and match.start < kept[-1].end:
            continue
        kept.append(match)
    return kept


class ToolCallParser:
    """Find, validate and bind inline tool calls."""

    def __init__(
        self,
        matchers: list[Matcher] | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.matchers: list[Matcher] = matchers or [
            TaggedJsonMatcher(),
            LooseToolJsonMatcher(),
            MessageOnlyMatcher(),
        ]
        self.logger = logger or _logger

    def extract(self, registry: ToolRegistry, text: str, strict: bool = False) -> ToolCallExtraction:
        """Pull tool calls out of *text*.

        Unknown tool names become reply-only calls explaining which tools exist
        and are also listed in ``errors``. Binding failures raise
        ``ToolValidationError`` / ``ToolValidationAggregateError``.
        """
        text = text or ""
        matches = _resolve([m for matcher in self.matchers for m in matcher.find(text, strict)])
        if not matches:
            result = ToolCallExtraction(assistant_message=text.strip() or None)
            if strict:
                self._diagnose(result, "No valid tool call structure found.")
            return result

        fallback = text[: matches[0].start].strip()
        result = ToolCallExtraction(assistant_message=fallback or None)

        for match in matches:
            node = match.payload
            if node is None:
                if strict:
                    self._diagnose(result, f"Invalid JSON: `{match.raw}`")
                continue

            has_name = NAME_KEY in node
            has_args = ARGUMENTS_KEY in node
            message = node.get(MESSAGE_KEY)
            message = message if isinstance(message, str) and message.strip() else None

            if has_name and has_args:
                name = node.get(NAME_KEY)
                if not isinstance(name, str) or not name.strip():
                    if strict:
                        self._diagnose(result, "Tool call missing 'name'.")
                    continue
                tool = registry.get(name)
                if tool is None:
                    available = ", ".join(registry.names) or "none"
                    error = f"Tool `{name}` not registered. Available: {available}"
                    self.logger.debug(error)
                    result.errors.append(error)
                    result.calls.append(ToolCall.from_message(error))
                    continue
                arguments = _coerce_arguments(node.get(ARGUMENTS_KEY))
                call_id = node.get("id")
                result.calls.append(
                    ToolCall(
                        id=str(call_id) if call_id else str(uuid.uuid4()),
                        name=tool.name,
                        arguments=arguments,
                        parameters=bind_arguments(tool, arguments),
                        message=message,
                    )
                )
                continue

            if message and not has_name and not has_args:
                result.calls.append(ToolCall.from_message(message))
                continue

            if strict:
                if has_args and not has_name:
                    self._diagnose(result, "Tool call has arguments but no 'name'.")
                elif has_name and not has_args:
                    self._diagnose(result, f"Tool `{node.get(NAME_KEY)}` missing 'arguments'.")

        if strict and not result.calls:
            self._diagnose(result, "No valid tool call structure found.")
        return result

    def _diagnose(self, result: ToolCallExtraction, text: str) -> None:
        result.errors.append(text)
        result.calls.append(ToolCall.from_message(text))


def _coerce_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


# ---------------------------------------------------------------------------
# argument binding
# ---------------------------------------------------------------------------
def _convert(tool: Tool, param_name: str, annotation: Any, value: Any, description: str | None) -> Any:
    try:
        return type_adapter(annotation).validate_python(coerce_enum_names(annotation, value))
    except ValidationError as exc:
        reason = "; ".join(err["msg"] for err in exc.errors())
        raise ToolValidationError(
            tool.name,
            param_name,
            f"Invalid type for parameter. {reason}",
            description=description,
            received=value,
        ) from exc


def _lookup(arguments: dict[str, Any], name: str) -> Any:
    if name in arguments:
        return arguments[name]
    folded = name.casefold()
    for key, value in arguments.items():
        if key.casefold() == folded:
            return value
    return None


def bind_arguments(tool: Tool, arguments: dict[str, Any]) -> list[Any]:
    """Turn a JSON arguments object into positional values for ``tool.function``.

    A lone structured parameter may receive its fields directly instead of
    nested under its own name.
    """
    params = tool.parameters
    args = dict(arguments or {})
    if (
        len(params) == 1
        and not is_simple_type(params[0].annotation)
        and _lookup(args, params[0].name) is None
    ):
        args = {params[0].name: args}

    properties = tool.parameters_schema.get("properties") or {}
    values: list[Any] = []
    for param in params:
        value = _lookup(args, param.name)
        if value is None:
            if param.has_default:
                values.append(param.default)
            elif param.nullable:
                values.append(None)
            else:
                raise ToolValidationError(
                    tool.name,
                    param.name,
                    "Missing required parameter.",
                    description=param.description,
                )
            continue

        schema = properties.get(param.name) or schema_for_type(param.annotation)
        violations = validate_against_schema(value, schema, param.name)
        if violations:
            raise ToolValidationAggregateError(tool.name, violations)

        annotation, _ = strip_annotated(param.annotation)
        values.append(_convert(tool, param.name, annotation, value, param.description))
    return values
