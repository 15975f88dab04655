from __future__ import annotations

import argparse
import asyncio
import logging
from enum import Enum
from typing import Annotated

from agentcore import (
    Conversation,
    Provider,
    ToolRegistry,
    ToolRuntime,
    create_client,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class Unit(Enum):
    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"


def get_weather(
    location: Annotated[str, "City and state, e.g. San Francisco, CA"],
    unit: Unit = Unit.CELSIUS,
) -> str:
    """Get the current weather in a given location."""
    # imagine we call a real weather API here
    return f"15 degrees {unit.value}, mostly cloudy in {location}"


async def single_tool_roundtrip(provider: Provider, model: str) -> None:
    """
    Run a single tool-calling roundtrip with the given provider + model.

    1) Send user prompt
    2) Let model emit a tool call
    3) Execute the tool and record call + result in the conversation
    4) Ask model to finish using tool result
    """
    registry = ToolRegistry()
    registry.register(get_weather)
    runtime = ToolRuntime(registry)

    conversation = Conversation().add_user("What's the weather in San Francisco?")

    async with create_client(provider, model, registry=registry) as llm:
        # Step 1 → first response
        rsp1 = await llm.execute(conversation)

        if not rsp1.has_tool_calls:
            logger.warning("Model answered directly: %s", rsp1.assistant_message)
            return

        # Step 2-3 → run the tools, then record calls and results
        results = await runtime.handle_tool_calls(rsp1.tool_calls)
        conversation.append_tool_results(results)

        # Step 4 → final completion
        rsp2 = await llm.execute(conversation)
        logger.info("%s says: %s", provider.value.capitalize(), rsp2.assistant_message)
        logger.info("Tokens used: %s", llm.usage.snapshot())


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        default=Provider.ANTHROPIC.value,
    )
    parser.add_argument(
        "--model",
        default="claude-3-5-haiku-20241022",  # "gpt-4.1-nano-2025-04-14", "gemini-2.0-flash-lite"
    )
    args = parser.parse_args()

    asyncio.run(single_tool_roundtrip(Provider(args.provider), args.model))
