"""Stderr collection for CLI subprocesses.

The collector drains the child's stderr from the moment the process starts,
in its own thread (or asyncio task), until end-of-stream. After every chunk
it publishes an immutable CapturedStderr snapshot by plain reference
assignment; the mutable buffer itself is only touched by the draining
thread, so no lock is needed.

The collector owns the stream and closes it when draining ends. A drain
that is given up (a descendant of the CLI still holds the pipe) is left
running on its daemon thread, and the caller gets the latest snapshot
flagged as incomplete.

Draining continuously also keeps the child from blocking on a full stderr
pipe while the caller is busy with stdout.
"""

import asyncio
import logging
import threading
from typing import IO

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# Upper bound on retained stderr; older bytes are dropped beyond it
MAX_STDERR_BYTES = 1024 * 1024

# Size of each read from the stderr pipe
CHUNK_SIZE = 64 * 1024

# Reported when the stderr pipe was never opened
STDERR_UNAVAILABLE = "<stderr unavailable: the stderr pipe was not opened>"

# Appended when draining was given up before end-of-stream
STDERR_INCOMPLETE = "<stderr incomplete: drain did not finish after the process was killed>"


class CapturedStderr(BaseModel):
    """Immutable snapshot of a process's stderr.

    ``available`` is False only when capture never happened; an available
    snapshot with empty ``data`` means the process wrote nothing.
    ``complete`` is False when draining was given up before end-of-stream;
    ``data`` then holds everything read up to that point.
    """

    data: bytes = b""
    available: bool = True
    complete: bool = True
    truncated: bool = False
    dropped_bytes: int = 0

    model_config = ConfigDict(frozen=True)

    @classmethod
    def unavailable(cls) -> "CapturedStderr":
        return cls(available=False)

    @property
    def text(self) -> str:
        if not self.available:
            return STDERR_UNAVAILABLE
        text = self.data.decode("utf-8", errors="replace")
        if self.truncated:
            text = f"[... {self.dropped_bytes} earlier bytes of stderr dropped ...]\n{text}"
        if not self.complete:
            separator = "" if not text or text.endswith("\n") else "\n"
            text = f"{text}{separator}{STDERR_INCOMPLETE}"
        return text

    @property
    def is_empty(self) -> bool:
        return self.available and self.complete and not self.data


class _StderrBuffer:
    """Bounded append-only byte buffer that keeps the most recent bytes."""

    def __init__(self, limit: int = MAX_STDERR_BYTES) -> None:
        self._data = bytearray()
        self._limit = limit
        self._dropped = 0

    def append(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        overflow = len(self._data) - self._limit
        if overflow > 0:
            del self._data[:overflow]
            self._dropped += overflow

    def note_read_error(self, error: BaseException) -> None:
        self.append(f"\n[stderr read error: {type(error).__name__}: {error}]".encode())

    def freeze(self, complete: bool = True) -> CapturedStderr:
        return CapturedStderr(
            data=bytes(self._data),
            complete=complete,
            truncated=self._dropped > 0,
            dropped_bytes=self._dropped,
        )


class StderrCollector:
    """Drain a blocking stderr pipe on a background thread.

    Example:
        ```python
        collector = StderrCollector.start(process.stderr)
        ...  # consume stdout
        process.wait()
        captured = collector.wait(timeout=5)
        ```
    """

    def __init__(self, stream: IO[bytes] | None) -> None:
        self._stream = stream
        self._buffer = _StderrBuffer()
        self._done = threading.Event()
        self._snapshot = CapturedStderr(complete=False)
        self._thread: threading.Thread | None = None

    @classmethod
    def start(cls, stream: IO[bytes] | None) -> "StderrCollector":
        collector = cls(stream)
        if stream is None:
            collector._snapshot = CapturedStderr.unavailable()
            collector._done.set()
            return collector

        collector._thread = threading.Thread(
            target=collector._drain,
            args=(stream,),
            name="claude-stderr-collector",
            daemon=True,
        )
        collector._thread.start()
        return collector

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def _drain(self, stream: IO[bytes]) -> None:
        read = getattr(stream, "read1", None) or stream.read
        try:
            while True:
                chunk = read(CHUNK_SIZE)
                if not chunk:
                    break
                self._buffer.append(chunk)
                self._snapshot = self._buffer.freeze(complete=False)
        except (OSError, ValueError) as e:
            logger.debug("stderr read failed: %s", e)
            self._buffer.note_read_error(e)
        finally:
            self._snapshot = self._buffer.freeze()
            stream.close()
            self._done.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` for the drain to finish; True if it did."""
        return self._done.wait(timeout)

    def wait(self, timeout: float | None = None) -> CapturedStderr:
        """Wait for the drain to finish and return its snapshot.

        If ``timeout`` expires first, the drain keeps running in the
        background and the latest snapshot is returned with
        ``complete=False``.
        """
        if not self._done.wait(timeout):
            logger.debug("stderr drain still running after %ss, giving up", timeout)
        return self._snapshot


class AsyncStderrCollector:
    """Drain an asyncio stderr stream in a dedicated task."""

    def __init__(self) -> None:
        self._buffer = _StderrBuffer()
        self._snapshot = CapturedStderr(complete=False)
        self._task: asyncio.Task[CapturedStderr] | None = None

    @classmethod
    def start(cls, stream: asyncio.StreamReader | None) -> "AsyncStderrCollector":
        collector = cls()
        if stream is None:
            collector._snapshot = CapturedStderr.unavailable()
        else:
            collector._task = asyncio.create_task(
                collector._drain(stream), name="claude-stderr-collector"
            )
        return collector

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    async def _drain(self, stream: asyncio.StreamReader) -> CapturedStderr:
        try:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                self._buffer.append(chunk)
                self._snapshot = self._buffer.freeze(complete=False)
        except (OSError, ValueError) as e:
            logger.debug("stderr read failed: %s", e)
            self._buffer.note_read_error(e)
        self._snapshot = self._buffer.freeze()
        return self._snapshot

    async def join(self, timeout: float | None = None) -> bool:
        if self._task is None:
            return True
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)

    async def wait(self, timeout: float | None = None) -> CapturedStderr:
        if self._task is None:
            return self._snapshot
        try:
            return await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            logger.debug("stderr drain still running after %ss, giving up", timeout)
            self._task.cancel()
            return self._snapshot

    async def aclose(self) -> None:
        """Cancel the drain task if it is still running."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


def describe(stderr: CapturedStderr) -> str:
    """One-line summary of captured stderr for error messages."""
    if not stderr.available:
        return STDERR_UNAVAILABLE
    for line in stderr.data.decode("utf-8", errors="replace").splitlines():
        if line.strip():
            return line.strip()
    if not stderr.complete:
        return STDERR_INCOMPLETE
    return "no stderr output"
