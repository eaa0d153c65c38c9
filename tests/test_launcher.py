"""Tests for the process launcher."""

import subprocess
import sys
from unittest.mock import patch

import pytest

from claude_runner.exceptions import CLINotFoundError, QueryError
from claude_runner.launcher import async_launch, launch

from test_helpers import IS_WINDOWS, create_error_command, create_python_script


def _release(handle):
    handle.stop()
    handle.stdout.close()
    handle.stderr.close()


class TestLaunch:
    """Test sync launch()."""

    def test_missing_executable_raises_cli_not_found(self):
        with pytest.raises(CLINotFoundError, match="not found"):
            launch(["/nonexistent/bin/claude", "--print"])

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX permission bits")
    def test_non_executable_raises_cli_not_found(self, tmp_path):
        script = tmp_path / "claude"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o644)

        with pytest.raises(CLINotFoundError, match="not executable"):
            launch([str(script)])

    def test_missing_working_directory_raises_query_error(self, tmp_path):
        missing = tmp_path / "does-not-exist"
        with pytest.raises(QueryError, match="Working directory does not exist") as exc_info:
            launch(create_python_script("pass"), cwd=str(missing))
        assert not isinstance(exc_info.value, CLINotFoundError)

    def test_pipes_are_open_and_readable(self):
        handle = launch(create_python_script("print('out'); import sys; sys.stderr.write('err')"))
        try:
            assert handle.stdout.read() == b"out" + (b"\r\n" if IS_WINDOWS else b"\n")
            assert handle.stderr.read() == b"err"
            assert handle.wait() == 0
        finally:
            _release(handle)

    def test_stdin_is_devnull_without_input(self):
        handle = launch(create_python_script("import sys; print(repr(sys.stdin.read()))"))
        try:
            assert handle.stdout.read().strip() == b"''"
            assert handle.wait() == 0
        finally:
            _release(handle)

    def test_input_payload_is_written_and_closed(self):
        handle = launch(
            create_python_script("import sys; sys.stdout.write(sys.stdin.read().upper())"),
            input="hello stdin",
        )
        try:
            assert handle.stdout.read() == b"HELLO STDIN"
            assert handle.wait() == 0
            assert handle.stdin_error is None
        finally:
            _release(handle)

    def test_broken_stdin_is_recorded(self):
        # Child exits without reading a payload larger than the pipe buffer
        handle = launch(create_error_command(0), input=b"x" * (4 * 1024 * 1024))
        try:
            assert handle.wait() == 0
            assert isinstance(handle.stdin_error, OSError)
        finally:
            _release(handle)

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX sessions")
    def test_process_runs_in_own_session(self):
        with patch("subprocess.Popen", wraps=subprocess.Popen) as popen:
            handle = launch(create_python_script("pass"))
            handle.wait()
            _release(handle)
        assert popen.call_args.kwargs["start_new_session"] is True

    def test_kill_terminates_running_process(self):
        handle = launch(create_python_script("import time; time.sleep(30)"))
        handle.kill()
        try:
            assert handle.wait(timeout=5) != 0
        finally:
            _release(handle)

    def test_stop_leaves_pipes_to_their_readers(self):
        handle = launch(create_python_script("import time; time.sleep(30)"))
        try:
            handle.stop()

            assert handle.returncode is not None
            assert not handle.stdout.closed
            assert handle.stdout.read() == b""
        finally:
            _release(handle)


@pytest.mark.asyncio
class TestAsyncLaunch:
    """Test async_launch()."""

    async def test_missing_executable_raises_cli_not_found(self):
        with pytest.raises(CLINotFoundError):
            await async_launch(["/nonexistent/bin/claude"])

    async def test_pipes_and_input(self):
        handle = await async_launch(
            [sys.executable, "-c", "import sys; data = sys.stdin.read(); print(data); sys.stderr.write('e')"],
            input=b"payload",
        )
        try:
            out = await handle.stdout.read()
            err = await handle.stderr.read()
            assert out.strip() == b"payload"
            assert err == b"e"
            assert await handle.wait() == 0
        finally:
            await handle.stop()

    async def test_stop_ends_running_process(self):
        handle = await async_launch(create_python_script("import time; time.sleep(30)"))
        await handle.stop()
        assert handle.process.returncode is not None
