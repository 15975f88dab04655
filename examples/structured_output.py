"""
This example demonstrates how to get structured JSON output from LLMs
by solving a mathematical equation step-by-step.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List

from pydantic import BaseModel

from agentcore import (
    Conversation,
    LLMRequest,
    Provider,
    ReasoningMode,
    RetryExhaustedError,
    create_client,
)

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


class Step(BaseModel):
    explanation: str
    output: str


class MathResponse(BaseModel):
    steps: List[Step]
    final_answer: str


async def solve_math_with_json_output(equation: str) -> MathResponse | None:
    """Solve a mathematical equation with structured JSON output."""

    llm = create_client(Provider.OPENAI, "gpt-4o-mini")

    conversation = (
        Conversation()
        .add_system("You are a mathematical assistant. Solve the given equation step by step.")
        .add_user(f"Solve this equation step by step: {equation}")
    )
    # deterministic: lower temperature for more consistent output
    request = LLMRequest(conversation, reasoning=ReasoningMode.DETERMINISTIC)

    logger.info(f"Solving '{equation}' with structured JSON output")

    try:
        response = await llm.execute_structured(request, MathResponse)
    except RetryExhaustedError as e:
        logger.error(f"No valid solution after {e.attempts} attempt(s)")
        return None
    finally:
        await llm.aclose()

    math_response = response.result
    print(f"\nSolution for: {equation}")
    print("Steps:")
    for i, step in enumerate(math_response.steps, 1):
        print(f"  {i}. {step.explanation}")
        print(f"     Result: {step.output}")

    print(f"\nFinal Answer: {math_response.final_answer}")
    return math_response


async def main():
    # Example 1: Linear equation
    await solve_math_with_json_output("3x + 7 = 16")

    print("\n" + "=" * 50 + "\n")

    # Example 2: Quadratic equation
    await solve_math_with_json_output("x^2 - 5x + 6 = 0")


if __name__ == "__main__":
    asyncio.run(main())
