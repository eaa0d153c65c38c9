"""Incremental decoder for the CLI's newline-delimited JSON output.

A malformed record becomes an InvalidMessage in its slot and decoding
carries on with the next line; nothing here ends the stream early. Stdout is
always read to end-of-stream, even after the final ResultMessage, so the
child never blocks on a full pipe.
"""

import json
import logging
import os
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from claude_runner.message_parser import parse_message
from claude_runner.types import InvalidMessage, Message, ResultMessage

logger = logging.getLogger(__name__)

# Debug mode flag - check once at module load time for efficiency
_DEBUG = os.environ.get("CLAUDE_RUNNER_DEBUG", "false").lower() == "true"


def decode_line(line: bytes) -> Message | None:
    """Decode one stdout record.

    Returns:
        The parsed message, an InvalidMessage for a malformed record, or
        None for a blank line.
    """
    try:
        text = line.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raw = line.decode("utf-8", errors="replace").strip()
        logger.debug("Undecodable stdout record: %s", e)
        return InvalidMessage(raw=raw, error=f"invalid UTF-8: {e}")

    if not text:
        return None

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Failed to parse JSON line: %s... - %s", text[:100], e)
        return InvalidMessage(raw=text, error=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return InvalidMessage(raw=text, error=f"expected a JSON object, got {type(data).__name__}")

    if _DEBUG:
        logger.debug("Parsed JSON data: %s", data)

    message = parse_message(data)
    if isinstance(message, ResultMessage) and message.is_error:
        logger.error("Query completed with error: %s", message.result)
    return message


def iter_messages(lines: Iterable[bytes]) -> Iterator[Message]:
    """Lazily decode raw stdout lines into messages."""
    for line in lines:
        message = decode_line(line)
        if message is not None:
            yield message


async def aiter_messages(lines: AsyncIterable[bytes]) -> AsyncIterator[Message]:
    """Async version of ``iter_messages``."""
    async for line in lines:
        message = decode_line(line)
        if message is not None:
            yield message
