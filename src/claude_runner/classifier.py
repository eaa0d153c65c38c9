"""Map raw process outcomes onto the claude-runner error taxonomy."""

import signal

from claude_runner.exceptions import CancellationError, ProcessError, QueryError
from claude_runner.stderr import CapturedStderr, describe


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def classify_exit(
    returncode: int | None,
    stderr: CapturedStderr,
    *,
    cancel_reason: str | None = None,
    stdin_error: OSError | None = None,
) -> QueryError | None:
    """Turn an exit status plus finalized stderr into an error, or None.

    ``stderr`` must already be final: the collector has signalled
    completion (or been abandoned) before this is called.

    Args:
        returncode: Exit status from ``wait()``; negative means killed by signal
        stderr: Finalized stderr snapshot
        cancel_reason: Set when the call was cancelled or timed out
        stdin_error: Error raised while writing the stdin payload, if any

    Returns:
        The error to raise, or None on success
    """
    if cancel_reason is not None:
        return CancellationError(cancel_reason, stderr=stderr)

    if returncode is not None and returncode < 0:
        signum = -returncode
        return ProcessError(
            f"Claude CLI terminated by {_signal_name(signum)}: {describe(stderr)}",
            exit_code=returncode,
            stderr=stderr,
            signal=signum,
        )

    if returncode:
        return ProcessError(
            f"Claude CLI exited with code {returncode}: {describe(stderr)}",
            exit_code=returncode,
            stderr=stderr,
        )

    if stdin_error is not None:
        return ProcessError(
            f"Failed to write input to Claude CLI ({stdin_error}): {describe(stderr)}",
            exit_code=returncode,
            stderr=stderr,
        )

    return None


def classify_read_error(
    error: Exception,
    returncode: int | None,
    stderr: CapturedStderr,
) -> ProcessError:
    """Error for a failure while reading the CLI's stdout."""
    return ProcessError(
        f"Failed to read Claude CLI output ({type(error).__name__}: {error}): {describe(stderr)}",
        exit_code=returncode,
        stderr=stderr,
    )
