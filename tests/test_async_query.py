"""Tests for the async query functions, run against fake CLI scripts."""

import asyncio
import time

import pytest

from claude_runner import (
    CancellationError,
    ClaudeOptions,
    CLINotFoundError,
    ProcessError,
    async_iter_query,
    async_query,
    async_query_text,
)
from claude_runner.types import AssistantMessage, ResultMessage, SystemMessage

from test_helpers import MCP_CHECKING_CLI


@pytest.mark.asyncio
class TestAsyncQueryFunction:
    """Test async_query()."""

    async def test_query_simple_success(self, fake_cli):
        result = await async_query(prompt="hi", options=ClaudeOptions(cli_path=fake_cli(MCP_CHECKING_CLI)))

        assert [type(m) for m in result.messages] == [SystemMessage, AssistantMessage, ResultMessage]
        assert result.text == "Hello!"
        assert result.session_id == "sess-1"

    async def test_missing_mcp_config_reports_real_stderr(self, fake_cli, tmp_path):
        missing = tmp_path / "missing-mcp.json"
        options = ClaudeOptions(cli_path=fake_cli(MCP_CHECKING_CLI), mcp_config=missing)

        with pytest.raises(ProcessError) as exc_info:
            await async_query(prompt="hi", options=options)

        assert exc_info.value.exit_code == 1
        assert "Invalid MCP configuration" in exc_info.value.stderr
        assert str(missing) in exc_info.value.stderr

    async def test_query_cli_not_found(self, tmp_path):
        with pytest.raises(CLINotFoundError):
            await async_query(prompt="hi", options=ClaudeOptions(cli_path=tmp_path / "missing"))

    async def test_stdin_input(self, fake_cli):
        cli = fake_cli(
            """
            data = sys.stdin.read()
            emit({"type": "assistant", "message": {"model": "fake", "content": [{"type": "text", "text": data}]}})
            """
        )

        result = await async_query(prompt="hi", options=ClaudeOptions(cli_path=cli), input=b"bytes in")

        assert result.text == "bytes in"

    async def test_timeout(self, fake_cli):
        cli = fake_cli(
            """
            sys.stderr.write("still going\\n")
            sys.stderr.flush()
            time.sleep(30)
            """
        )

        start = time.monotonic()
        with pytest.raises(CancellationError) as exc_info:
            await async_query(prompt="hi", options=ClaudeOptions(cli_path=cli), timeout=0.5)

        assert time.monotonic() - start < 5
        assert exc_info.value.stderr == "still going\n"

    async def test_cancel_event(self, fake_cli):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.3, cancel.set)

        with pytest.raises(CancellationError, match="cancelled"):
            await async_query(
                prompt="hi", options=ClaudeOptions(cli_path=fake_cli("time.sleep(30)")), cancel_event=cancel
            )

    async def test_task_cancellation_propagates(self, fake_cli):
        task = asyncio.create_task(
            async_query(prompt="hi", options=ClaudeOptions(cli_path=fake_cli("time.sleep(30)")))
        )
        await asyncio.sleep(0.3)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 5)


@pytest.mark.asyncio
class TestAsyncIterQuery:
    """Test async_iter_query()."""

    async def test_messages_arrive_before_error(self, fake_cli):
        cli = fake_cli(
            """
            emit({"type": "system", "subtype": "init"})
            sys.stderr.write("boom\\n")
            sys.exit(7)
            """
        )

        received = []
        with pytest.raises(ProcessError) as exc_info:
            async for message in async_iter_query(prompt="hi", options=ClaudeOptions(cli_path=cli)):
                received.append(message)

        assert [type(m) for m in received] == [SystemMessage]
        assert exc_info.value.stderr == "boom\n"


@pytest.mark.asyncio
class TestAsyncQueryTextFunction:
    """Test async_query_text()."""

    async def test_query_text_simple(self, fake_cli):
        text = await async_query_text(prompt="hi", options=ClaudeOptions(cli_path=fake_cli(MCP_CHECKING_CLI)))
        assert text == "Hello!"
