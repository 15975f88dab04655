"""
A small agent built from pipeline steps: loop over model turns with tool
calls until the model answers, and turn any failure into a polite reply.
The conversation is persisted between runs.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from agentcore import (
    FileConversationStore,
    PipelineBuilder,
    Provider,
    RetryStep,
    StepContext,
    StepFailure,
    ToolCallingStep,
    ToolRegistry,
    ToolRuntime,
    create_client,
    tool,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


class Clock:
    @staticmethod
    @tool
    def utc_now() -> str:
        """Current UTC time in ISO 8601."""
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    @tool(description="Days between two ISO dates (YYYY-MM-DD).")
    def days_between(start: str, end: str) -> int:
        return (datetime.fromisoformat(end) - datetime.fromisoformat(start)).days


def build_pipeline():
    return (
        PipelineBuilder("Agent")
        .loop(
            lambda body: body.add(RetryStep(ToolCallingStep(), max_retries=2)),
            max_rounds=6,
        )
        .on_error(
            lambda err: err.map(
                lambda failure: f"Sorry, something went wrong ({failure.error}).",
                StepFailure,
            )
        )
        .build()
    )


async def main(provider: Provider, model: str, session: str, question: str) -> None:
    registry = ToolRegistry()
    registry.register_all(Clock)
    store = FileConversationStore(".sessions")

    async with create_client(provider, model, registry=registry) as llm:
        ctx = StepContext(
            conversation=await store.load(session),
            llm=llm,
            runtime=ToolRuntime(registry),
            user_request=question,
        )
        if len(ctx.conversation) == 0:
            ctx.conversation.add_system("You are a concise assistant with access to a clock.")
        ctx.conversation.add_user(question)

        answer = await build_pipeline().run(ctx)
        await store.save(session, ctx.conversation)

    print(answer)
    logger.info("Tokens used: %s", llm.usage.snapshot())


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=Provider.OPENAI.value,
    )
    parser.add_argument("--model", default="gpt-4.1-nano-2025-04-14")
    parser.add_argument("--session", default="demo")
    parser.add_argument("question", nargs="?", default="How many days until 2030-01-01?")
    args = parser.parse_args()

    asyncio.run(main(Provider(args.provider), args.model, args.session, args.question))
