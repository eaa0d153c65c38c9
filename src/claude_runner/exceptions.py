"""Exception classes for claude-runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from claude_runner.stderr import CapturedStderr


class ClaudeRunnerError(Exception):
    """Base exception for all claude-runner errors."""


class QueryError(ClaudeRunnerError):
    """Base error for query failures."""


class CLINotFoundError(QueryError):
    """Claude Code CLI could not be located or started.

    No process ever ran, so there is no stderr to report.
    """


class ProcessError(QueryError):
    """CLI process started and then failed.

    Attributes:
        exit_code: Process exit code, or None if it was never collected
        signal: Signal number when the process was killed by a signal
        stderr: Fully drained stderr text (``""`` when the process wrote none)
        captured: The complete CapturedStderr snapshot
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: CapturedStderr | None = None,
        signal: int | None = None,
    ):
        self.message = message
        self.exit_code = exit_code
        self.signal = signal
        self.captured = stderr
        self.stderr = stderr.text if stderr is not None else ""
        super().__init__(message)


class CancellationError(QueryError):
    """Call was cancelled or timed out before the process finished.

    The process has been killed. Whatever stderr was drained before the
    kill is still attached.
    """

    def __init__(self, reason: str, stderr: CapturedStderr | None = None):
        self.reason = reason
        self.captured = stderr
        self.stderr = stderr.text if stderr is not None else ""
        super().__init__(f"Claude CLI query {reason}")


class DecodeError(ClaudeRunnerError):
    """A single stdout record could not be decoded.

    Never raised out of a query; attached to the offending message slot.
    """

    def __init__(self, message: str, line: str):
        self.message = message
        self.line = line
        super().__init__(f"{message}: {line[:100]}")
