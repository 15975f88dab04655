"""
Provider-independent LLM client.

Providers only translate a request into a stream of ``StreamChunk`` objects
(``_stream_impl``). Everything else lives here: tool exposure, inline tool
call extraction, validation and de-duplication, structured output parsing,
retries and token accounting.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    AsyncIterator,
    Callable,
    ClassVar,
    Optional,
    Sequence,
    TypeVar,
)

from pydantic import ValidationError

from agentcore._exceptions import (
    AgentCoreError,
    RetryExhaustedError,
    RetryRequested,
    ToolValidationAggregateError,
    ToolValidationError,
    classify_error,
)
from agentcore.params import request_params
from agentcore.retry import DefaultRetryPolicy, RetryPolicy
from agentcore.schema import (
    SchemaCache,
    coerce_enum_names,
    schema_for_type,
    type_adapter,
    validate_against_schema,
)
from agentcore.tokens import (
    SlidingWindowTrimmer,
    TiktokenTokenizer,
    Tokenizer,
    TokenUsageTracker,
)
from agentcore.tools.parser import ToolCallParser, bind_arguments
from agentcore.tools.registry import ToolRegistry
from agentcore.types.chat import Conversation
from agentcore.types.request import (
    LLMRequest,
    LLMResponse,
    LLMStructuredRequest,
    LLMStructuredResponse,
    ToolCallMode,
)
from agentcore.types.stream import StreamChunk, StreamKind
from agentcore.types.tool import Tool, ToolCall

__all__ = ["BaseLLMClient", "StreamCallback"]

T = TypeVar("T")

StreamCallback = Callable[[StreamChunk], None]

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

STRUCTURED_INSTRUCTION = (
    "Respond only with JSON that matches this JSON schema. "
    "Do not add commentary or markdown.\n{schema}"
)


@dataclass(slots=True)
class _Usage:
    """Token counts for one operation, summed over its attempts."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class _Structured:
    raw: Any = None
    result: Any = None


@dataclass(slots=True)
class _Attempt:
    input_tokens: int | None = None
    output_tokens: int | None = None
    text: list[str] = field(default_factory=list)


class BaseLLMClient(ABC):
    """
    Abstract base class for async-first LLM clients.
    """

    schema_cache: ClassVar[SchemaCache] = SchemaCache()

    def __init__(
        self,
        model: str,
        *,
        registry: ToolRegistry | None = None,
        parser: ToolCallParser | None = None,
        retry_policy: RetryPolicy | None = None,
        tokenizer: Tokenizer | None = None,
        usage_tracker: TokenUsageTracker | None = None,
        trimmer: SlidingWindowTrimmer | None = None,
        default_params: dict[str, Any] | None = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.model = model
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__
        self.registry = registry if registry is not None else ToolRegistry(logger=self.logger)
        self.parser = parser or ToolCallParser(logger=self.logger)
        self.retry_policy: RetryPolicy = retry_policy or DefaultRetryPolicy(logger=self.logger)
        self.tokenizer: Tokenizer = tokenizer or TiktokenTokenizer(model)
        self.usage = usage_tracker or TokenUsageTracker()
        self.trimmer = trimmer
        self.default_params = dict(default_params or {})

    @abstractmethod
    def _stream_impl(
        self,
        request: LLMRequest,
        tools: Sequence[Tool],
        params: dict[str, Any],
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream one provider call as chunks. Must be implemented by subclasses.

        Args:
            request: The attempt's request; its conversation is the prompt.
            tools: Tools to expose natively; empty when tools are disabled.
            params: Normalized params (see ``agentcore.params``).
        """
        ...

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """
        Close underlying async HTTP clients to avoid cleanup after the loop closes.
        Safe to call multiple times.
        """
        client = getattr(self, "_client", None)
        close = getattr(client, "close", None)
        if close:
            await close()

    async def __aenter__(self) -> "BaseLLMClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --- helpers -----------------------------------------------------------
    def resolve_tools(self, request: LLMRequest) -> list[Tool]:
        if request.tool_call_mode is ToolCallMode.DISABLED:
            return []
        if request.allowed_tools is not None:
            return self.registry.subset(request.allowed_tools)
        return list(self.registry.tools)

    def _available(self) -> str:
        return ", ".join(self.registry.names) or "none"

    @staticmethod
    def _coerce(request: LLMRequest | Conversation) -> LLMRequest:
        if isinstance(request, Conversation):
            return LLMRequest(conversation=request)
        return request

    # --- raw provider stream ----------------------------------------------
    async def _prepare_stream(self, request: LLMRequest, usage: _Usage) -> AsyncIterator[StreamChunk]:
        """Provider stream for one attempt with trimming, usage capture and error wrapping.

        A provider stream that ends cleanly without a finish chunk gets one.
        Only the prompt sent to the provider is trimmed; *request* keeps the
        full history for validation.
        """
        prompt = request
        if self.trimmer is not None:
            prompt = replace(request, conversation=self.trimmer.trim(request.conversation))
        tools = self.resolve_tools(prompt)
        params = request_params(prompt, self.default_params)
        attempt = _Attempt()

        self._log(
            f"Sending request to {self.model} ({len(prompt.conversation)} messages, "
            f"{len(tools)} tools)",
            logging.DEBUG,
        )
        self.logger.debug("Outbound messages: %s", prompt.conversation.to_log_list())

        finished = False
        try:
            async with aclosing(self._stream_impl(prompt, tools, params)) as raw:
                async for chunk in raw:
                    if chunk.kind is StreamKind.USAGE:
                        if chunk.input_tokens is not None:
                            attempt.input_tokens = chunk.input_tokens
                        if chunk.output_tokens is not None:
                            attempt.output_tokens = chunk.output_tokens
                    elif chunk.kind is StreamKind.TEXT and chunk.text:
                        attempt.text.append(chunk.text)
                    elif chunk.kind is StreamKind.FINISH:
                        finished = True
                    yield chunk
            if not finished:
                yield StreamChunk.finish_chunk("stop")
        except AgentCoreError:
            raise
        except Exception as exc:
            raise classify_error(exc, self.logger) from exc
        finally:
            self._settle(prompt, attempt, usage)

    def _settle(self, request: LLMRequest, attempt: _Attempt, usage: _Usage) -> None:
        if attempt.input_tokens is None:
            prompt = json.dumps(request.conversation.to_log_list(), ensure_ascii=False)
            attempt.input_tokens = self.tokenizer.count(prompt)
        if attempt.output_tokens is None:
            attempt.output_tokens = self.tokenizer.count("".join(attempt.text))
        usage.input_tokens += attempt.input_tokens
        usage.output_tokens += attempt.output_tokens

    # --- tool-call validation ---------------------------------------------
    def _accept(
        self, request: LLMRequest, call: ToolCall, accepted: list[ToolCall]
    ) -> ToolCall:
        """Validate one requested call or raise RetryRequested explaining the problem."""
        tool = self.registry.get(call.name)
        if tool is None:
            self._log(f"Invalid tool: {call.name}", logging.WARNING)
            raise RetryRequested(
                f"Tool `{call.name}` is invalid. Use one of: {self._available()}."
            )

        try:
            parameters = (
                call.parameters
                if call.parameters is not None
                else bind_arguments(tool, call.arguments)
            )
        except (ToolValidationError, ToolValidationAggregateError) as exc:
            raise RetryRequested(str(exc)) from exc

        validated = ToolCall(
            id=call.id,
            name=tool.name,
            arguments=call.arguments,
            parameters=parameters,
            message=call.message,
        )
        if validated.exists_in(request.conversation, accepted):
            self._log(f"Duplicate tool call: {validated.name}", logging.WARNING)
            previous = request.conversation.last_tool_result(validated)
            shown = previous.as_content() if previous is not None else "null"
            raise RetryRequested(
                f"Tool `{validated.name}` was already called with same arguments. "
                f"Last result: {shown}",
                previous_result=previous,
            )
        accepted.append(validated)
        return validated

    def _inline_calls(self, text: str) -> list[ToolCall]:
        try:
            extraction = self.parser.extract(self.registry, text)
        except (ToolValidationError, ToolValidationAggregateError) as exc:
            raise RetryRequested(str(exc)) from exc
        if extraction.errors:
            raise RetryRequested(extraction.errors[-1])
        return extraction.calls

    def _check_repeat(self, conversation: Conversation, text: str) -> None:
        if conversation.is_last_assistant_message_same(text):
            self._log("Assistant repeated same message", logging.WARNING)
            raise RetryRequested(
                "You repeated the same assistant response. Don't repeat, refine or add new info."
            )

    async def _validated_stream(self, request: LLMRequest, usage: _Usage) -> AsyncIterator[StreamChunk]:
        """One attempt: provider chunks plus validated tool-call chunks."""
        one_tool = request.tool_call_mode is ToolCallMode.ONE_TOOL
        inline = request.tool_call_mode is not ToolCallMode.DISABLED and len(self.registry) > 0
        buffer: list[str] = []
        accepted: list[ToolCall] = []
        seen = 0

        async with aclosing(self._prepare_stream(request, usage)) as stream:
            async for chunk in stream:
                if chunk.kind is StreamKind.TEXT:
                    if not chunk.text:
                        continue
                    buffer.append(chunk.text)
                    yield chunk
                    if not inline:
                        continue
                    calls = self._inline_calls("".join(buffer))
                    fresh, seen = calls[seen:], len(calls)
                    for call in fresh:
                        if call.is_message_only:
                            continue
                        yield StreamChunk.tool_call_chunk(self._accept(request, call, accepted))
                        if one_tool:
                            yield StreamChunk.finish_chunk("tool_calls")
                            return
                    continue

                if chunk.kind is StreamKind.TOOL_CALL:
                    if chunk.tool_call is None:
                        continue
                    if request.tool_call_mode is ToolCallMode.DISABLED:
                        raise RetryRequested("Tools are disabled for this request. Answer directly.")
                    yield StreamChunk.tool_call_chunk(self._accept(request, chunk.tool_call, accepted))
                    if one_tool:
                        yield StreamChunk.finish_chunk("tool_calls")
                        return
                    continue

                if chunk.kind is StreamKind.FINISH and not accepted:
                    self._check_repeat(request.conversation, "".join(buffer))
                yield chunk

    # --- public API --------------------------------------------------------
    async def stream(
        self, request: LLMRequest | Conversation
    ) -> AsyncIterator[StreamChunk]:
        """Validated chunks across all attempts, retry markers included."""
        request = self._coerce(request)
        usage = _Usage()
        try:
            async with aclosing(
                self.retry_policy.execute_stream(
                    request, lambda attempt: self._validated_stream(attempt, usage)
                )
            ) as chunks:
                async for chunk in chunks:
                    yield chunk
        except RetryRequested as exc:
            raise RetryExhaustedError(f"{self.name}: {exc}", 1) from exc
        finally:
            self.usage.record(usage.input_tokens, usage.output_tokens)

    async def execute(
        self,
        request: LLMRequest | Conversation,
        *,
        on_stream: StreamCallback | None = None,
    ) -> LLMResponse:
        """
        Run one text/tool turn and return the outcome of the successful attempt.

        Raises RetryExhaustedError when no attempt completed.
        """
        request = self._coerce(request)
        text: list[str] = []
        calls: list[ToolCall] = []
        finish: str | None = None
        attempts = 1
        usage = _Usage()

        try:
            async with aclosing(
                self.retry_policy.execute_stream(
                    request, lambda attempt: self._validated_stream(attempt, usage)
                )
            ) as chunks:
                async for chunk in chunks:
                    if on_stream is not None:
                        on_stream(chunk)
                    if chunk.is_retry_marker:
                        text.clear()
                        calls.clear()
                        finish = None
                        attempts += 1
                    elif chunk.kind is StreamKind.TEXT and chunk.text:
                        text.append(chunk.text)
                    elif chunk.kind is StreamKind.TOOL_CALL and chunk.tool_call is not None:
                        calls.append(chunk.tool_call)
                    elif chunk.kind is StreamKind.FINISH:
                        finish = chunk.finish_reason or "stop"
        except RetryRequested as exc:
            raise RetryExhaustedError(f"{self.name}: {exc}", attempts) from exc
        finally:
            self.usage.record(usage.input_tokens, usage.output_tokens)

        if finish is None:
            raise RetryExhaustedError(
                f"{self.name}: no valid response after {attempts} attempt(s)", attempts
            )

        final_text = "".join(text).strip()
        self._log(f"Request finished ({finish}, {len(calls)} tool calls)", logging.DEBUG)
        return LLMResponse(
            text=final_text,
            assistant_message=self._assistant_message(request, final_text),
            tool_calls=calls,
            finish_reason=finish,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )

    def _assistant_message(self, request: LLMRequest, text: str) -> str | None:
        if not text:
            return None
        if request.tool_call_mode is ToolCallMode.DISABLED or len(self.registry) == 0:
            return text
        # Validated while streaming, so extraction cannot fail here.
        extraction = self.parser.extract(self.registry, text)
        replies = [c.message for c in extraction.calls if c.is_message_only and c.message]
        if replies:
            return "\n".join(replies)
        return extraction.assistant_message

    # --- structured output -------------------------------------------------
    def schema_for(self, result_type: Any) -> dict[str, Any]:
        return self.schema_cache.get_or_add(result_type, lambda: schema_for_type(result_type))

    def _parse_structured(self, text: str, schema: dict[str, Any], result_type: Any) -> _Structured:
        body = text.strip()
        fenced = _FENCE.match(body)
        if fenced:
            body = fenced.group(1)
        try:
            raw = json.loads(body)
        except json.JSONDecodeError as exc:
            self._log(f"Invalid JSON for structured response {result_type!r}", logging.WARNING)
            raise RetryRequested("Return valid JSON matching the schema.") from exc

        violations = validate_against_schema(raw, schema)
        if violations:
            detail = "; ".join(f"{v.path or '$'}: {v.message}" for v in violations)
            self._log(f"Validation failed for {result_type!r}: {detail}", logging.WARNING)
            raise RetryRequested(f"Validation failed: {detail}. Fix JSON.")

        try:
            result = type_adapter(result_type).validate_python(coerce_enum_names(result_type, raw))
        except ValidationError as exc:
            detail = "; ".join(err["msg"] for err in exc.errors())
            raise RetryRequested(f"Validation failed: {detail}. Fix JSON.") from exc
        return _Structured(raw, result)

    async def _structured_stream(
        self,
        request: LLMStructuredRequest,
        schema: dict[str, Any],
        usage: _Usage,
        outcome: _Structured,
    ) -> AsyncIterator[StreamChunk]:
        buffer: list[str] = []
        async with aclosing(self._prepare_stream(request, usage)) as stream:
            async for chunk in stream:
                if chunk.kind is StreamKind.TEXT:
                    if chunk.text:
                        buffer.append(chunk.text)
                elif chunk.kind is StreamKind.FINISH:
                    parsed = self._parse_structured("".join(buffer), schema, request.result_type)
                    outcome.raw, outcome.result = parsed.raw, parsed.result
                elif chunk.kind is StreamKind.TOOL_CALL:
                    continue
                yield chunk

    async def execute_structured(
        self,
        request: LLMRequest | Conversation,
        result_type: type[T] | Any,
        *,
        on_stream: StreamCallback | None = None,
    ) -> LLMStructuredResponse[T]:
        """
        Ask for JSON matching ``result_type``'s schema and return the typed result.

        Parse and validation failures are retried with the reason fed back to
        the model. Raises RetryExhaustedError when no attempt succeeded.
        """
        base = self._coerce(request)
        schema = (
            base.schema
            if isinstance(base, LLMStructuredRequest) and base.schema is not None
            else self.schema_for(result_type)
        )
        structured = LLMStructuredRequest(
            conversation=base.conversation.clone(),
            tool_call_mode=ToolCallMode.DISABLED,
            reasoning=base.reasoning,
            sampling=base.sampling,
            params=dict(base.params),
            result_type=result_type,
            schema=schema,
        )
        structured.conversation.add_system(
            STRUCTURED_INSTRUCTION.format(schema=json.dumps(schema)), temporary=True
        )

        usage = _Usage()
        outcome = _Structured()
        finish: str | None = None
        attempts = 1
        try:
            async with aclosing(
                self.retry_policy.execute_stream(
                    structured,
                    lambda attempt: self._structured_stream(attempt, schema, usage, outcome),
                )
            ) as chunks:
                async for chunk in chunks:
                    if on_stream is not None:
                        on_stream(chunk)
                    if chunk.is_retry_marker:
                        finish = None
                        attempts += 1
                    elif chunk.kind is StreamKind.FINISH:
                        finish = chunk.finish_reason or "stop"
        except RetryRequested as exc:
            raise RetryExhaustedError(f"{self.name}: {exc}", attempts) from exc
        finally:
            self.usage.record(usage.input_tokens, usage.output_tokens)

        if finish is None:
            raise RetryExhaustedError(
                f"{self.name}: no valid {getattr(result_type, '__name__', result_type)} "
                f"after {attempts} attempt(s)",
                attempts,
            )

        self._log(f"Structured request completed: {result_type!r}", logging.DEBUG)
        return LLMStructuredResponse(
            raw=outcome.raw,
            result=outcome.result,
            finish_reason=finish,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
