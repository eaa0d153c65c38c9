"""Basic usage examples for claude-runner (sync version)."""

import logging

from claude_runner import ClaudeOptions, ProcessError, iter_query, query, query_text
from claude_runner.types import AssistantMessage, ResultMessage, TextBlock


def example_basic_query():
    """Basic query example."""
    print("=== Basic Query Example ===\n")

    result = query(prompt="What is 2 + 2?")
    print(f"Claude: {result.text}")
    print(f"Cost: ${result.total_cost_usd:.4f}" if result.total_cost_usd else "Cost: N/A")
    print(f"Session: {result.session_id}")


def example_query_text():
    """Simplified text response example."""
    print("\n=== Query Text Example ===\n")

    response = query_text(prompt="What is the capital of Japan? One word only.")
    print(f"Response: {response.strip()}")


def example_iter_query():
    """Print messages as they arrive."""
    print("\n=== Iter Query Example ===\n")

    for message in iter_query(prompt="Count from 1 to 3", options=ClaudeOptions(model="haiku")):
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock):
                    print(f"Claude: {block.text}")
        elif isinstance(message, ResultMessage):
            print(f"Completed in {message.duration_ms}ms")


def example_error_handling():
    """A broken MCP config fails with the CLI's own stderr."""
    print("\n=== Error Handling Example ===\n")

    options = ClaudeOptions(mcp_config="/nonexistent/mcp.json")
    try:
        query(prompt="Hello", options=options)
    except ProcessError as e:
        print(f"Exit code: {e.exit_code}")
        print(f"stderr:\n{e.stderr}")


def example_timeout():
    """Kill the CLI if it takes too long."""
    print("\n=== Timeout Example ===\n")

    response = query_text(prompt="Say hi", timeout=120)
    print(f"Response: {response.strip()}")


def main():
    logging.basicConfig(level=logging.INFO)
    example_basic_query()
    example_query_text()
    example_iter_query()
    example_error_handling()
    example_timeout()


if __name__ == "__main__":
    main()
