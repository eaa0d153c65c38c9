"""Convert decoded stream-json records into typed messages."""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from claude_runner.types import (
    AssistantMessage,
    ContentBlock,
    Message,
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

logger = logging.getLogger(__name__)

_BLOCK_TYPES: dict[str, type[ContentBlock]] = {
    "text": TextBlock,
    "thinking": ThinkingBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
}


def _content_blocks(blocks: list[dict[str, Any]]) -> list[ContentBlock]:
    parsed: list[ContentBlock] = []
    for block in blocks:
        model = _BLOCK_TYPES.get(block.get("type", ""))
        if model is None:
            logger.debug("Skipping unknown content block type: %s", block.get("type"))
            continue
        parsed.append(model.model_validate(block))
    return parsed


def _user(data: dict[str, Any]) -> UserMessage:
    content = data["message"]["content"]
    return UserMessage(
        content=_content_blocks(content) if isinstance(content, list) else content,
        uuid=data.get("uuid"),
        parent_tool_use_id=data.get("parent_tool_use_id"),
        tool_use_result=data.get("tool_use_result"),
    )


def _assistant(data: dict[str, Any]) -> AssistantMessage:
    return AssistantMessage(
        content=_content_blocks(data["message"]["content"]),
        model=data["message"]["model"],
        parent_tool_use_id=data.get("parent_tool_use_id"),
        error=data.get("error"),
    )


def _system(data: dict[str, Any]) -> SystemMessage:
    return SystemMessage(subtype=data["subtype"], data=data)


def _result(data: dict[str, Any]) -> ResultMessage:
    return ResultMessage.model_validate(data)


def _stream_event(data: dict[str, Any]) -> StreamEvent:
    return StreamEvent.model_validate(data)


_PARSERS: dict[str, Callable[[dict[str, Any]], Message]] = {
    "user": _user,
    "assistant": _assistant,
    "system": _system,
    "result": _result,
    "stream_event": _stream_event,
}


def parse_message(data: dict[str, Any]) -> Message:
    """Parse one stream-json record into a typed Message.

    Never raises: unrecognized types, and known types whose payload does not
    have the expected shape, come back as UnknownMessage with the raw data.

    Example:
        ```python
        msg = parse_message({"type": "assistant", "message": {...}})
        isinstance(msg, AssistantMessage)  # True

        msg = parse_message({"type": "future_type"})
        isinstance(msg, UnknownMessage)  # True
        ```
    """
    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        logger.debug("Record missing 'type' field, returning UnknownMessage")
        return UnknownMessage(type="missing_type", raw_data=data)

    parser = _PARSERS.get(message_type)
    if parser is None:
        logger.debug("Unknown message type: %s", message_type)
        return UnknownMessage(type=message_type, raw_data=data)

    try:
        return parser(data)
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        logger.warning("Failed to parse %s message: %s, returning UnknownMessage", message_type, e)
        return UnknownMessage(type=message_type, raw_data=data)
