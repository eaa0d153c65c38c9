"""Claude Runner - subprocess client for the Claude Code CLI.

Runs the user's installed ``claude`` CLI once per call, streams its
structured output back, and reports failures with the CLI's complete
stderr.

Example (blocking):
    ```python
    from claude_runner import ClaudeOptions, ProcessError, query

    try:
        result = query(prompt="What is the capital of France?",
                       options=ClaudeOptions(model="sonnet"))
        print(result.text)
    except ProcessError as e:
        print(f"CLI failed ({e.exit_code}): {e.stderr}")
    ```

Example (channels):
    ```python
    from claude_runner import QueryRequest, query_stream

    messages, errors = query_stream(QueryRequest(prompt="Hello"))
    for message in messages:
        print(message)
    error = errors.first()
    ```
"""

__version__ = "0.1.0"

from .channels import AsyncChannel, Channel, ChannelClosed
from .decoder import decode_line
from .exceptions import (
    CancellationError,
    ClaudeRunnerError,
    CLINotFoundError,
    DecodeError,
    ProcessError,
    QueryError,
)
from .message_parser import parse_message
from .options import ClaudeOptions
from .query import (
    async_iter_query,
    async_query,
    async_query_text,
    iter_query,
    query,
    query_text,
)
from .stderr import STDERR_UNAVAILABLE, CapturedStderr
from .stream import async_query_stream, query_stream
from .types import (
    AssistantMessage,
    ContentBlock,
    InvalidMessage,
    Message,
    QueryRequest,
    QueryResult,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnknownMessage,
    UserMessage,
)

__all__ = [
    # Version
    "__version__",
    # Blocking calls
    "query",
    "query_text",
    "async_query",
    "async_query_text",
    # Generators
    "iter_query",
    "async_iter_query",
    # Channels
    "query_stream",
    "async_query_stream",
    "Channel",
    "AsyncChannel",
    "ChannelClosed",
    # Options and requests
    "ClaudeOptions",
    "QueryRequest",
    "QueryResult",
    # Message types
    "Message",
    "AssistantMessage",
    "UserMessage",
    "SystemMessage",
    "ResultMessage",
    "StreamEvent",
    "UnknownMessage",
    "InvalidMessage",
    # Content blocks
    "ContentBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    # Stderr
    "CapturedStderr",
    "STDERR_UNAVAILABLE",
    # Errors
    "ClaudeRunnerError",
    "QueryError",
    "CLINotFoundError",
    "ProcessError",
    "CancellationError",
    "DecodeError",
    # Decoding
    "decode_line",
    "parse_message",
]
