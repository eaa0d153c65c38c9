"""Message, request and result types for claude-runner.

Message models mirror the records the CLI emits with
``--output-format stream-json``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from claude_runner.exceptions import DecodeError
from claude_runner.options import ClaudeOptions


class TextBlock(BaseModel):
    """Text content block."""

    text: str
    type: Literal["text"] = "text"


class ThinkingBlock(BaseModel):
    """Extended thinking block."""

    thinking: str
    signature: str = ""
    type: Literal["thinking"] = "thinking"


class ToolUseBlock(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"


class ToolResultBlock(BaseModel):
    tool_use_id: str
    content: str | list[dict[str, Any]] | None = None
    is_error: bool | None = None
    type: Literal["tool_result"] = "tool_result"


ContentBlock = TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock


class UserMessage(BaseModel):
    """User turn, including tool results fed back to the model."""

    content: str | list[ContentBlock]
    uuid: str | None = None
    parent_tool_use_id: str | None = None
    tool_use_result: dict[str, Any] | str | list[Any] | None = None


class AssistantMessage(BaseModel):
    """Assistant turn with content blocks."""

    content: list[ContentBlock]
    model: str
    parent_tool_use_id: str | None = None
    error: str | None = None


class SystemMessage(BaseModel):
    """System record (``init`` and friends); keeps the whole payload."""

    subtype: str
    data: dict[str, Any]


class ResultMessage(BaseModel):
    """Final record of a run, with cost and usage information."""

    subtype: str
    duration_ms: int
    duration_api_ms: int
    is_error: bool
    num_turns: int
    session_id: str
    total_cost_usd: float | None = None
    usage: dict[str, Any] | None = None
    result: str | None = None
    structured_output: Any = None


class StreamEvent(BaseModel):
    """Partial message update (``--include-partial-messages``)."""

    uuid: str
    session_id: str
    event: dict[str, Any]
    parent_tool_use_id: str | None = None


class UnknownMessage(BaseModel):
    """Record of a type this library does not model.

    Also used for known types whose payload does not have the expected
    shape, so callers can inspect ``raw_data`` instead of losing it.
    """

    type: str
    raw_data: dict[str, Any]


class InvalidMessage(BaseModel):
    """Stdout record that could not be decoded at all.

    Decoding continues with the next record; the failure lives here.
    """

    raw: str
    error: str

    def to_error(self) -> DecodeError:
        return DecodeError(self.error, self.raw)


Message = (
    UserMessage
    | AssistantMessage
    | SystemMessage
    | ResultMessage
    | StreamEvent
    | UnknownMessage
    | InvalidMessage
)


class QueryRequest(BaseModel):
    """Everything needed to run one CLI process.

    Example:
        ```python
        request = QueryRequest(
            prompt="Summarize README.md",
            options=ClaudeOptions(model="haiku"),
        )
        messages, errors = query_stream(request)
        ```
    """

    prompt: str
    options: ClaudeOptions = Field(default_factory=ClaudeOptions)
    input: str | bytes | None = Field(
        default=None,
        description="Optional payload written to the CLI's stdin, then stdin is closed",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class QueryResult(BaseModel):
    """Aggregate of every message produced by one successful run."""

    messages: list[Message] = Field(default_factory=list)

    @property
    def result(self) -> ResultMessage | None:
        for message in reversed(self.messages):
            if isinstance(message, ResultMessage):
                return message
        return None

    @property
    def text(self) -> str:
        """Concatenated text of all assistant text blocks."""
        parts = []
        for message in self.messages:
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        parts.append(block.text)
        return "".join(parts)

    @property
    def session_id(self) -> str | None:
        result = self.result
        return result.session_id if result else None

    @property
    def total_cost_usd(self) -> float | None:
        result = self.result
        return result.total_cost_usd if result else None

    @property
    def is_error(self) -> bool:
        result = self.result
        return bool(result and result.is_error)

    @property
    def decode_errors(self) -> list[DecodeError]:
        return [m.to_error() for m in self.messages if isinstance(m, InvalidMessage)]
