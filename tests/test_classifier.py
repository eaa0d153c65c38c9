"""Tests for outcome classification."""

import signal

from claude_runner.classifier import classify_exit, classify_read_error
from claude_runner.exceptions import CancellationError, ProcessError
from claude_runner.stderr import STDERR_UNAVAILABLE, CapturedStderr


class TestClassifyExit:
    """Test classify_exit()."""

    def test_success_is_none(self):
        assert classify_exit(0, CapturedStderr(data=b"warning: noisy")) is None

    def test_non_zero_exit_carries_stderr(self):
        stderr = CapturedStderr(data=b"Error: Invalid MCP configuration\n")
        error = classify_exit(1, stderr)

        assert isinstance(error, ProcessError)
        assert error.exit_code == 1
        assert error.signal is None
        assert error.stderr == "Error: Invalid MCP configuration\n"
        assert error.captured is stderr
        assert "exited with code 1: Error: Invalid MCP configuration" in str(error)

    def test_non_zero_exit_without_stderr(self):
        error = classify_exit(2, CapturedStderr())

        assert isinstance(error, ProcessError)
        assert error.stderr == ""
        assert "no stderr output" in str(error)

    def test_unavailable_stderr_uses_marker(self):
        error = classify_exit(1, CapturedStderr.unavailable())

        assert error.stderr == STDERR_UNAVAILABLE
        assert error.stderr != "failed to read stderr"

    def test_signal_exit(self):
        error = classify_exit(-signal.SIGTERM, CapturedStderr(data=b"terminating"))

        assert isinstance(error, ProcessError)
        assert error.signal == signal.SIGTERM
        assert error.exit_code == -signal.SIGTERM
        assert "SIGTERM" in str(error)

    def test_unknown_signal_number(self):
        error = classify_exit(-250, CapturedStderr())
        assert "signal 250" in str(error)

    def test_cancellation_wins_over_exit_status(self):
        stderr = CapturedStderr(data=b"partial")
        error = classify_exit(-9, stderr, cancel_reason="cancelled")

        assert isinstance(error, CancellationError)
        assert error.reason == "cancelled"
        assert error.stderr == "partial"

    def test_stdin_error_on_clean_exit(self):
        error = classify_exit(0, CapturedStderr(), stdin_error=BrokenPipeError("Broken pipe"))

        assert isinstance(error, ProcessError)
        assert error.exit_code == 0
        assert "Failed to write input" in str(error)

    def test_exit_status_wins_over_stdin_error(self):
        error = classify_exit(1, CapturedStderr(data=b"bad flag"), stdin_error=BrokenPipeError())
        assert "exited with code 1" in str(error)


class TestClassifyReadError:
    """Test classify_read_error()."""

    def test_read_error(self):
        error = classify_read_error(OSError("boom"), None, CapturedStderr(data=b"context"))

        assert isinstance(error, ProcessError)
        assert error.exit_code is None
        assert "OSError: boom" in str(error)
        assert error.stderr == "context"
