"""Basic usage examples for claude-runner (async version)."""

import asyncio

from claude_runner import (
    ClaudeOptions,
    QueryRequest,
    async_query,
    async_query_stream,
    async_query_text,
)
from claude_runner.types import AssistantMessage, TextBlock


async def example_basic_query():
    """Basic async query example."""
    print("=== Async Query Example ===\n")

    result = await async_query(prompt="What is 2 + 2?")
    print(f"Claude: {result.text}")


async def example_concurrent_queries():
    """Run several queries at once."""
    print("\n=== Concurrent Queries Example ===\n")

    options = ClaudeOptions(model="haiku")
    prompts = ["Capital of France?", "Capital of Japan?", "Capital of Peru?"]
    answers = await asyncio.gather(
        *(async_query_text(prompt=p, options=options, timeout=120) for p in prompts)
    )
    for prompt, answer in zip(prompts, answers):
        print(f"{prompt} {answer.strip()}")


async def example_stream():
    """Stream messages over async channels."""
    print("\n=== Async Stream Example ===\n")

    messages, errors = async_query_stream(QueryRequest(prompt="Tell me a joke"))
    async for message in messages:
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock):
                    print(block.text)
    if (error := await errors.first()) is not None:
        print(f"Query failed: {error}")


async def main():
    await example_basic_query()
    await example_concurrent_queries()
    await example_stream()


if __name__ == "__main__":
    asyncio.run(main())
