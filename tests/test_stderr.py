"""Tests for stderr collection."""

import asyncio
import io
import os
import threading

import pytest

from claude_runner.stderr import (
    MAX_STDERR_BYTES,
    STDERR_INCOMPLETE,
    STDERR_UNAVAILABLE,
    AsyncStderrCollector,
    CapturedStderr,
    StderrCollector,
    describe,
)


class FailingStream:
    """Stream that returns one chunk and then raises."""

    def __init__(self, chunk, error):
        self.chunk = chunk
        self.error = error
        self.calls = 0
        self.closed = False

    def read1(self, size):
        self.calls += 1
        if self.calls == 1:
            return self.chunk
        raise self.error

    def close(self):
        self.closed = True


class BlockingStream:
    """Stream that returns queued chunks, then blocks until released."""

    def __init__(self):
        self.release = threading.Event()
        self.chunks = []
        self.closed = False

    def read1(self, size):
        if self.chunks:
            return self.chunks.pop(0)
        self.release.wait()
        return b""

    def close(self):
        self.closed = True


class TestCapturedStderr:
    """Test the CapturedStderr snapshot."""

    def test_text_decodes_bytes(self):
        captured = CapturedStderr(data=b"Error: boom\n")
        assert captured.text == "Error: boom\n"
        assert not captured.is_empty

    def test_empty_is_distinct_from_unavailable(self):
        empty = CapturedStderr()
        unavailable = CapturedStderr.unavailable()

        assert empty.text == ""
        assert empty.is_empty
        assert unavailable.text == STDERR_UNAVAILABLE
        assert not unavailable.is_empty
        assert unavailable.text != "failed to read stderr"

    def test_incomplete_keeps_data_and_adds_notice(self):
        captured = CapturedStderr(data=b"parent failed\n", complete=False)

        assert captured.text == f"parent failed\n{STDERR_INCOMPLETE}"
        assert captured.available
        assert not captured.is_empty

    def test_incomplete_without_newline(self):
        captured = CapturedStderr(data=b"half a line", complete=False)
        assert captured.text == f"half a line\n{STDERR_INCOMPLETE}"

    def test_incomplete_without_data(self):
        assert CapturedStderr(complete=False).text == STDERR_INCOMPLETE

    def test_invalid_utf8_is_replaced(self):
        captured = CapturedStderr(data=b"bad \xff byte")
        assert captured.text == "bad � byte"

    def test_truncated_text_has_header(self):
        captured = CapturedStderr(data=b"tail", truncated=True, dropped_bytes=10)
        assert captured.text.startswith("[... 10 earlier bytes of stderr dropped ...]")
        assert captured.text.endswith("tail")

    def test_is_frozen(self):
        captured = CapturedStderr(data=b"x")
        with pytest.raises(Exception):
            captured.data = b"y"


class TestDescribe:
    """Test one-line stderr summaries."""

    def test_first_non_empty_line(self):
        assert describe(CapturedStderr(data=b"\n\nError: bad config\nmore\n")) == "Error: bad config"

    def test_no_output(self):
        assert describe(CapturedStderr()) == "no stderr output"

    def test_unavailable(self):
        assert describe(CapturedStderr.unavailable()) == STDERR_UNAVAILABLE

    def test_incomplete_prefers_captured_line(self):
        assert describe(CapturedStderr(data=b"parent failed\n", complete=False)) == "parent failed"
        assert describe(CapturedStderr(complete=False)) == STDERR_INCOMPLETE


class TestStderrCollector:
    """Test the thread-based collector."""

    def test_drains_stream_to_eof(self):
        collector = StderrCollector.start(io.BytesIO(b"line 1\nline 2\n"))
        captured = collector.wait(timeout=5)

        assert collector.done
        assert captured.data == b"line 1\nline 2\n"
        assert not captured.truncated

    def test_none_stream_is_unavailable(self):
        collector = StderrCollector.start(None)
        captured = collector.wait()

        assert collector.done
        assert not captured.available
        assert captured.text == STDERR_UNAVAILABLE

    def test_read_error_is_recorded_as_text(self):
        stream = FailingStream(b"partial output\n", OSError("Input/output error"))
        captured = StderrCollector.start(stream).wait(timeout=5)

        assert captured.text.startswith("partial output\n")
        assert "[stderr read error: OSError: Input/output error]" in captured.text

    def test_bounded_buffer_keeps_tail(self):
        data = b"A" * MAX_STDERR_BYTES + b"B" * 100
        captured = StderrCollector.start(io.BytesIO(data)).wait(timeout=5)

        assert captured.truncated
        assert captured.dropped_bytes == 100
        assert len(captured.data) == MAX_STDERR_BYTES
        assert captured.data.endswith(b"B" * 100)

    def test_wait_timeout_keeps_bytes_already_read(self):
        stream = BlockingStream()
        stream.chunks.append(b"parent failed\n")
        collector = StderrCollector.start(stream)
        try:
            assert not collector.join(0.2)
            captured = collector.wait(timeout=0.05)

            assert not captured.complete
            assert captured.data == b"parent failed\n"
            assert captured.text == f"parent failed\n{STDERR_INCOMPLETE}"
            assert not stream.closed
        finally:
            stream.release.set()
        assert collector.join(5)
        assert collector.wait().complete

    def test_wait_timeout_before_any_output(self):
        stream = BlockingStream()
        collector = StderrCollector.start(stream)
        try:
            captured = collector.wait(timeout=0.05)
        finally:
            stream.release.set()

        assert isinstance(captured, CapturedStderr)
        assert captured.available
        assert not captured.complete
        assert captured.text == STDERR_INCOMPLETE

    def test_stream_is_closed_after_drain(self):
        stream = FailingStream(b"partial\n", OSError("gone"))
        collector = StderrCollector.start(stream)

        assert collector.join(5)
        assert stream.closed

    def test_real_pipe(self):
        read_fd, write_fd = os.pipe()
        with os.fdopen(read_fd, "rb") as reader:
            collector = StderrCollector.start(reader)
            with os.fdopen(write_fd, "wb") as writer:
                writer.write(b"from the pipe\n")
            assert collector.wait(timeout=5).text == "from the pipe\n"


@pytest.mark.asyncio
class TestAsyncStderrCollector:
    """Test the asyncio collector."""

    async def test_drains_stream_to_eof(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"async error\n")
        reader.feed_eof()

        collector = AsyncStderrCollector.start(reader)
        captured = await collector.wait(timeout=5)

        assert collector.done
        assert captured.text == "async error\n"

    async def test_none_stream_is_unavailable(self):
        collector = AsyncStderrCollector.start(None)
        assert await collector.join(0)
        assert (await collector.wait()).text == STDERR_UNAVAILABLE

    async def test_wait_timeout_keeps_bytes_already_read(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"parent failed\n")
        collector = AsyncStderrCollector.start(reader)

        assert not await collector.join(0.1)
        captured = await collector.wait(timeout=0.05)

        assert not captured.complete
        assert captured.text == f"parent failed\n{STDERR_INCOMPLETE}"
        await collector.aclose()

    async def test_wait_timeout_before_any_output(self):
        collector = AsyncStderrCollector.start(asyncio.StreamReader())

        captured = await collector.wait(timeout=0.05)

        assert isinstance(captured, CapturedStderr)
        assert captured.text == STDERR_INCOMPLETE
        await collector.aclose()

    async def test_data_fed_after_start_is_kept(self):
        reader = asyncio.StreamReader()
        collector = AsyncStderrCollector.start(reader)

        reader.feed_data(b"first ")
        await asyncio.sleep(0)
        reader.feed_data(b"second")
        reader.feed_eof()

        assert (await collector.wait(timeout=5)).text == "first second"
