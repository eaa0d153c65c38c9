"""Channel-based streaming queries.

``query_stream`` and ``async_query_stream`` return two channels:

- a message channel that delivers each message as it is decoded
- an error channel that delivers at most one terminal error

The message channel is always closed first. Only then does the error
channel receive the verdict (nothing, on success) and close. Consumers
should drain the message channel before reading the error channel.
Closing the message channel from the consumer side stops the query; no
error is reported for it.
"""

import asyncio
import logging
import threading

from claude_runner.channels import AsyncChannel, Channel, ChannelClosed
from claude_runner.exceptions import CancellationError, QueryError
from claude_runner.query import async_run_request, run_request
from claude_runner.types import Message, QueryRequest

logger = logging.getLogger(__name__)

# Messages buffered before the producer waits for the consumer
MESSAGE_CHANNEL_SIZE = 100

# Strong references to running stream tasks
_background_tasks: set[asyncio.Task[None]] = set()


def query_stream(
    request: QueryRequest,
    *,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> tuple[Channel[Message], Channel[Exception]]:
    """Run a query on a worker thread and stream its results over channels.

    Args:
        request: Prompt, options and optional stdin payload
        cancel_event: Set it to kill the process; a CancellationError
            then arrives on the error channel
        timeout: Kill the process after this many seconds

    Returns:
        ``(messages, errors)``

    Example:
        ```python
        messages, errors = query_stream(QueryRequest(prompt="Hello"))
        for message in messages:
            print(message)
        if (error := errors.first()) is not None:
            raise error
        ```
    """
    messages: Channel[Message] = Channel(MESSAGE_CHANNEL_SIZE)
    errors: Channel[Exception] = Channel(1)
    thread = threading.Thread(
        target=_stream_worker,
        args=(request, messages, errors, cancel_event, timeout),
        name="claude-stream-worker",
        daemon=True,
    )
    thread.start()
    return messages, errors


def _stream_worker(
    request: QueryRequest,
    messages: Channel[Message],
    errors: Channel[Exception],
    cancel_event: threading.Event | None,
    timeout: float | None,
) -> None:
    terminal: Exception | None = None
    stream = run_request(request, cancel_event=cancel_event, timeout=timeout)
    try:
        delivering = True
        for message in stream:
            # Once cancelled, keep draining so the verdict carries stderr
            if delivering and not messages.send(message, cancel_event):
                delivering = False
    except ChannelClosed:
        logger.debug("Message channel closed by the consumer, stopping the query")
    except QueryError as e:
        terminal = e
    except Exception as e:
        logger.exception("Unexpected error in stream worker")
        terminal = e
    finally:
        stream.close()
        messages.close()
        if terminal is not None:
            errors.send(terminal)
        errors.close()


def async_query_stream(
    request: QueryRequest,
    *,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> tuple[AsyncChannel[Message], AsyncChannel[Exception]]:
    """Async version of ``query_stream``; must be called with a running loop.

    Example:
        ```python
        messages, errors = async_query_stream(QueryRequest(prompt="Hello"))
        async for message in messages:
            print(message)
        error = await errors.first()
        ```
    """
    messages: AsyncChannel[Message] = AsyncChannel(MESSAGE_CHANNEL_SIZE)
    errors: AsyncChannel[Exception] = AsyncChannel(1)
    task = asyncio.create_task(
        _async_stream_worker(request, messages, errors, cancel_event, timeout),
        name="claude-stream-worker",
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return messages, errors


async def _async_stream_worker(
    request: QueryRequest,
    messages: AsyncChannel[Message],
    errors: AsyncChannel[Exception],
    cancel_event: asyncio.Event | None,
    timeout: float | None,
) -> None:
    terminal: Exception | None = None
    stream = async_run_request(request, cancel_event=cancel_event, timeout=timeout)
    try:
        delivering = True
        async for message in stream:
            if delivering and not await messages.send(message, cancel_event):
                delivering = False
    except ChannelClosed:
        logger.debug("Message channel closed by the consumer, stopping the query")
    except QueryError as e:
        terminal = e
    except asyncio.CancelledError:
        terminal = CancellationError("cancelled")
        raise
    except Exception as e:
        logger.exception("Unexpected error in stream worker")
        terminal = e
    finally:
        await stream.aclose()
        messages.close()
        if terminal is not None:
            await errors.send(terminal)
        errors.close()
