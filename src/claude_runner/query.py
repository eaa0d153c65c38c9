"""Query functions for one-shot interactions with Claude Code.

Each call runs one CLI process. The blocking functions (``query``,
``async_query`` and the ``*_text`` helpers) collect every message and
return once the process has exited and its stderr has been fully drained.
The ``iter_query`` generators yield messages as they are decoded and raise
the terminal error, if any, after the last one.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncGenerator, Generator

from claude_runner.decoder import aiter_messages, iter_messages
from claude_runner.executors import AsyncProcessExecutor, SyncProcessExecutor
from claude_runner.options import ClaudeOptions
from claude_runner.types import Message, QueryRequest, QueryResult

logger = logging.getLogger(__name__)


def _prepare(request: QueryRequest) -> tuple[list[str], dict]:
    """Build the command and launcher kwargs for a streaming JSON run."""
    # Note: verbose is required by CLI when using --print with --output-format=stream-json
    options = request.options.model_copy(
        update={
            "print_mode": True,
            "output_format": "stream-json",
            "verbose": True,
        }
    )
    cmd = options.build_command(request.prompt)
    kwargs = options.build_subprocess_kwargs()
    logger.debug("Launching Claude CLI: %s", cmd[0])
    return cmd, kwargs


def _request(
    prompt: str,
    options: ClaudeOptions | None,
    input: str | bytes | None,
) -> QueryRequest:
    return QueryRequest(prompt=prompt, options=options or ClaudeOptions(), input=input)


def run_request(
    request: QueryRequest,
    *,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> Generator[Message, None, None]:
    """Run a prepared QueryRequest and yield its messages (sync)."""
    cmd, kwargs = _prepare(request)
    executor = SyncProcessExecutor(cancel_event=cancel_event, timeout=timeout)
    lines = executor.execute(cmd, input=request.input, **kwargs)
    try:
        yield from iter_messages(lines)
    finally:
        lines.close()


async def async_run_request(
    request: QueryRequest,
    *,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> AsyncGenerator[Message, None]:
    """Run a prepared QueryRequest and yield its messages (async)."""
    cmd, kwargs = _prepare(request)
    executor = AsyncProcessExecutor(cancel_event=cancel_event, timeout=timeout)
    lines = executor.async_execute(cmd, input=request.input, **kwargs)
    try:
        async for message in aiter_messages(lines):
            yield message
    finally:
        await lines.aclose()


def iter_query(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    input: str | bytes | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> Generator[Message, None, None]:
    """
    Yield messages from Claude Code as they arrive (sync version).

    Args:
        prompt: The prompt to send to Claude
        options: Optional configuration (defaults to ClaudeOptions() if None)
        input: Optional payload written to the CLI's stdin
        cancel_event: Set it to kill the process
        timeout: Kill the process after this many seconds

    Yields:
        Messages in the order the CLI emits them

    Raises:
        CLINotFoundError: If claude CLI is not found
        ProcessError: If the CLI exits with a failure status
        CancellationError: If cancelled or timed out

    Example:
        ```python
        for message in iter_query(prompt="List the files here"):
            print(message)
        ```
    """
    yield from run_request(
        _request(prompt, options, input), cancel_event=cancel_event, timeout=timeout
    )


async def async_iter_query(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    input: str | bytes | None = None,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> AsyncGenerator[Message, None]:
    """Async version of ``iter_query``."""
    async for message in async_run_request(
        _request(prompt, options, input), cancel_event=cancel_event, timeout=timeout
    ):
        yield message


def query(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    input: str | bytes | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> QueryResult:
    """
    Run one query to completion and return the aggregated result (sync version).

    The call returns only after stdout has ended, the process has exited and
    its stderr has been fully drained, so a failure always carries the
    complete stderr.

    Args:
        prompt: The prompt to send to Claude
        options: Optional configuration (defaults to ClaudeOptions() if None)
        input: Optional payload written to the CLI's stdin
        cancel_event: Set it from another thread to kill the process
        timeout: Kill the process after this many seconds

    Returns:
        QueryResult with every message the CLI produced

    Raises:
        CLINotFoundError: If claude CLI is not found
        ProcessError: If the CLI exits with a failure status
        CancellationError: If cancelled or timed out

    Example:
        ```python
        from claude_runner import ClaudeOptions, ProcessError, query

        try:
            result = query(prompt="What is 2+2?", options=ClaudeOptions(model="haiku"))
            print(result.text)
        except ProcessError as e:
            print(e.exit_code, e.stderr)
        ```
    """
    messages = list(
        iter_query(
            prompt=prompt,
            options=options,
            input=input,
            cancel_event=cancel_event,
            timeout=timeout,
        )
    )
    return QueryResult(messages=messages)


async def async_query(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    input: str | bytes | None = None,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> QueryResult:
    """
    Run one query to completion and return the aggregated result (async version).

    Cancelling the awaiting task kills the process and propagates
    ``asyncio.CancelledError``; ``cancel_event`` and ``timeout`` raise
    CancellationError instead.

    Example:
        ```python
        async def main():
            result = await async_query(prompt="What is the capital of France?")
            print(result.text)
        ```
    """
    messages = [
        message
        async for message in async_iter_query(
            prompt=prompt,
            options=options,
            input=input,
            cancel_event=cancel_event,
            timeout=timeout,
        )
    ]
    return QueryResult(messages=messages)


def query_text(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    timeout: float | None = None,
) -> str:
    """
    Convenience function to get only the text response from Claude (sync version).

    Example:
        ```python
        response = query_text(prompt="What is the capital of France?")
        print(response)
        # Output: The capital of France is Paris.
        ```
    """
    return query(prompt=prompt, options=options, timeout=timeout).text


async def async_query_text(
    *,
    prompt: str,
    options: ClaudeOptions | None = None,
    timeout: float | None = None,
) -> str:
    """Convenience function to get only the text response from Claude (async version)."""
    result = await async_query(prompt=prompt, options=options, timeout=timeout)
    return result.text
