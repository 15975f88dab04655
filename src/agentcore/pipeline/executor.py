"""
Step pipeline engine.

A pipeline is a list of components run in order, each receiving the previous
component's output. Failures are values: a type mismatch or a raising step
turns into a ``StepFailure`` that skips every later step except those
declaring ``StepFailure`` as their input type, and an ``on_error`` handler
pipeline gets the final say.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Protocol, Union

from agentcore.pipeline.context import StepContext, StepFailure
from agentcore.pipeline.steps import AgentStep, InputType, MapStep

__all__ = ["StepFailure", "StepPipeline", "PipelineBuilder"]

Predicate = Callable[[Any], Union[bool, Awaitable[bool]]]
Configure = Callable[["PipelineBuilder"], Any]


def _type_name(tp: InputType) -> str:
    if isinstance(tp, tuple):
        return " | ".join(t.__name__ for t in tp)
    return tp.__name__


def _actual(value: Any) -> str | None:
    return type(value).__name__ if value is not None else None


def _accepts_failure(tp: InputType) -> bool:
    return tp is StepFailure or (isinstance(tp, tuple) and StepFailure in tp)


def _type_ok(value: Any, tp: InputType) -> bool:
    return value is None or isinstance(value, tp)


def default_break_condition(result: Any) -> bool:
    return isinstance(result, str) and bool(result.strip())


class _Component(Protocol):
    async def __call__(self, ctx: StepContext, value: Any) -> Any: ...


class _StepComponent:
    def __init__(self, step: AgentStep) -> None:
        self.step = step

    async def __call__(self, ctx: StepContext, value: Any) -> Any:
        step = self.step
        if isinstance(value, StepFailure) and not _accepts_failure(step.input_type):
            return value
        if not _type_ok(value, step.input_type):
            error = TypeError(
                f"Pipeline type mismatch in {step.name}: expected "
                f"{_type_name(step.input_type)}, got {type(value).__name__}"
            )
            ctx.logger.error("Type mismatch in %s: %s", step.name, error)
            return StepFailure(step.name, _type_name(step.input_type), _actual(value), error)

        with ctx.for_step(step.name):
            started = time.perf_counter()
            ctx.logger.debug("Running %s with input %s", step.name, _actual(value))
            try:
                result = await step.run(ctx, value)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                ctx.logger.error("Step %s failed: %s", step.name, exc, exc_info=exc)
                return StepFailure(step.name, _type_name(step.input_type), _actual(value), exc)
            ctx.logger.debug(
                "Step %s completed in %.0fms -> %s",
                step.name,
                (time.perf_counter() - started) * 1000,
                _actual(result),
            )
        return result


class _BranchComponent:
    def __init__(
        self,
        predicate: Predicate,
        on_true: "StepPipeline",
        on_false: "StepPipeline | None",
        input_type: InputType,
    ) -> None:
        self.predicate = predicate
        self.on_true = on_true
        self.on_false = on_false
        self.input_type = input_type

    async def __call__(self, ctx: StepContext, value: Any) -> Any:
        if isinstance(value, StepFailure):
            return value
        if not _type_ok(value, self.input_type):
            error = TypeError(
                f"Branch input type mismatch: expected {_type_name(self.input_type)}, "
                f"got {type(value).__name__}"
            )
            ctx.logger.error("Branch type mismatch: %s", error)
            return StepFailure("Branch", _type_name(self.input_type), _actual(value), error)

        try:
            take = self.predicate(value)
            if inspect.isawaitable(take):
                take = await take
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            ctx.logger.error("Branch predicate threw: %s", exc, exc_info=exc)
            return StepFailure("BranchPredicate", _type_name(self.input_type), _actual(value), exc)

        if take:
            return await self.on_true.run(ctx, value)
        if self.on_false is not None:
            return await self.on_false.run(ctx, value)
        return value


class _LoopComponent:
    def __init__(
        self,
        body: "StepPipeline",
        break_condition: Callable[[Any], bool],
        max_rounds: int,
    ) -> None:
        self.body = body
        self.break_condition = break_condition
        self.max_rounds = max_rounds

    async def __call__(self, ctx: StepContext, value: Any) -> Any:
        if isinstance(value, StepFailure):
            return value

        result = value
        for round_no in range(1, self.max_rounds + 1):
            ctx.logger.debug("Loop round %d/%d started", round_no, self.max_rounds)
            result = await self.body.run(ctx, result)
            if isinstance(result, StepFailure):
                return result
            if self.break_condition(result):
                ctx.logger.debug("Loop break condition met at round %d", round_no)
                return result

        ctx.logger.warning("Loop max rounds (%d) reached, returning last result", self.max_rounds)
        return result


class StepPipeline(AgentStep):
    """A built pipeline. Itself a step, so pipelines nest."""

    def __init__(
        self,
        components: list[_Component],
        error_handler: "StepPipeline | None" = None,
        name: str | None = None,
    ) -> None:
        self._components = list(components)
        self._error_handler = error_handler
        self._name = name

    @property
    def name(self) -> str:
        return self._name or super().name

    def __len__(self) -> int:
        return len(self._components)

    async def run(self, ctx: StepContext, value: Any = None) -> Any:
        try:
            for component in self._components:
                value = await component(ctx, value)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._error_handler is None:
                raise
            ctx.logger.error("Pipeline threw, delegating to error handler: %s", exc, exc_info=exc)
            value = StepFailure(self.name, "object", _actual(value), exc)

        if isinstance(value, StepFailure) and self._error_handler is not None:
            ctx.logger.warning("Delegating failure from %s to error pipeline", value.step)
            return await self._error_handler.run(ctx, value)
        return value


class PipelineBuilder:
    """Fluent builder for StepPipeline.

    >>> pipeline = (
    ...     PipelineBuilder()
    ...     .add(PlanStep())
    ...     .loop(lambda body: body.add(ToolCallingStep()), max_rounds=5)
    ...     .on_error(lambda err: err.map(lambda failure: f"Sorry: {failure.error}", StepFailure))
    ...     .build()
    ... )
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._components: list[_Component] = []
        self._error_handler: StepPipeline | None = None

    def add(self, step: AgentStep) -> "PipelineBuilder":
        self._components.append(_StepComponent(step))
        return self

    def map(self, fn: Callable[[Any], Any], input_type: InputType = object) -> "PipelineBuilder":
        return self.add(MapStep(fn, input_type=input_type))

    def branch(
        self,
        predicate: Predicate,
        on_true: Configure,
        on_false: Configure | None = None,
        *,
        input_type: InputType = object,
    ) -> "PipelineBuilder":
        """Run exactly one of two sub-pipelines; a missing ``on_false`` passes the value through."""
        true_pipeline = _build(on_true, "BranchTrue")
        false_pipeline = _build(on_false, "BranchFalse") if on_false is not None else None
        self._components.append(
            _BranchComponent(predicate, true_pipeline, false_pipeline, input_type)
        )
        return self

    def loop(
        self,
        body: Configure,
        break_condition: Callable[[Any], bool] | None = None,
        max_rounds: int = 10,
    ) -> "PipelineBuilder":
        """Repeat *body*, feeding each round the previous result.

        Stops when ``break_condition`` holds (default: a non-blank string) or
        after ``max_rounds``, in which case the last result carries on.
        """
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._components.append(
            _LoopComponent(_build(body, "Loop"), break_condition or default_break_condition, max_rounds)
        )
        return self

    def on_error(self, handler: "Configure | PipelineBuilder | StepPipeline") -> "PipelineBuilder":
        """Install the pipeline that receives any StepFailure this pipeline ends with."""
        if isinstance(handler, StepPipeline):
            self._error_handler = handler
        elif isinstance(handler, PipelineBuilder):
            self._error_handler = handler.build()
        else:
            self._error_handler = _build(handler, "OnError")
        return self

    def build(self) -> StepPipeline:
        return StepPipeline(self._components, self._error_handler, self.name)


def _build(configure: Configure, name: str) -> StepPipeline:
    builder = PipelineBuilder(name)
    configure(builder)
    return builder.build()
