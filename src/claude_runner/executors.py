"""Process executors for one-shot CLI runs.

This module provides synchronous and asynchronous executors that run one
CLI process per call and yield its raw stdout lines.

Each run has two independent readers:
- stdout, read by a reader thread (or the consuming task in asyncio)
- stderr, drained by a StderrCollector from the moment the process starts

Once stdout reaches end-of-stream the executor collects the exit status,
then waits for the stderr drain to complete, and only then classifies the
outcome. Any error therefore carries the complete stderr.

A descendant of the CLI that left its process group can hold either pipe
open after the CLI is gone. Waiting on such a pipe is bounded: readers are
given up ABANDON_TIMEOUT after a kill, and a process that exited without
closing its pipes gets DRAIN_TIMEOUT before its group is killed.

Message parsing is handled by the decoder, not here.
"""

import asyncio
import logging
import os
import queue
import threading
import time
from collections.abc import AsyncIterator, Iterator
from typing import Any

from claude_runner.classifier import classify_exit, classify_read_error
from claude_runner.exceptions import CancellationError
from claude_runner.launcher import AsyncProcessHandle, ProcessHandle, async_launch, launch
from claude_runner.stderr import AsyncStderrCollector, CapturedStderr, StderrCollector

logger = logging.getLogger(__name__)

# Debug mode flag - check once at module load time for efficiency
_DEBUG = os.environ.get("CLAUDE_RUNNER_DEBUG", "false").lower() == "true"

# How often the sync watchdog checks the cancel event and deadline (seconds)
WATCHDOG_INTERVAL = 0.05

# Grace period for the output pipes once the process has exited
DRAIN_TIMEOUT = 5.0

# How long to wait for readers after the process group has been killed
ABANDON_TIMEOUT = 2.0

# Lines buffered between the stdout reader thread and the consumer
LINE_QUEUE_SIZE = 1000

_EOF = object()


def _timeout_reason(timeout: float) -> str:
    return f"timed out after {timeout}s"


class _Watchdog:
    """Background thread that kills the process on cancellation or deadline."""

    def __init__(
        self,
        handle: ProcessHandle,
        cancel_event: threading.Event | None,
        timeout: float | None,
    ) -> None:
        self.reason: str | None = None
        self._handle = handle
        self._cancel_event = cancel_event
        self._timeout = timeout
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._finished = threading.Event()
        self._thread = threading.Thread(target=self._run, name="claude-watchdog", daemon=True)

    @classmethod
    def start(
        cls,
        handle: ProcessHandle,
        cancel_event: threading.Event | None,
        timeout: float | None,
    ) -> "_Watchdog | None":
        if cancel_event is None and timeout is None:
            return None
        watchdog = cls(handle, cancel_event, timeout)
        watchdog._thread.start()
        return watchdog

    def _run(self) -> None:
        while not self._finished.wait(WATCHDOG_INTERVAL):
            if self._cancel_event is not None and self._cancel_event.is_set():
                self.reason = "cancelled"
            elif self._deadline is not None and time.monotonic() >= self._deadline:
                self.reason = _timeout_reason(self._timeout)
            else:
                continue
            logger.debug("Killing CLI process %s: %s", self._handle.pid, self.reason)
            self._handle.kill()
            return

    def stop(self) -> str | None:
        """Stop watching and return the cancellation reason, if any."""
        self._finished.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()
        return self.reason


class _ReadGuard:
    """Decides when to stop waiting on output pipes that never reach EOF.

    Works with either handle flavour and either watchdog; only
    ``handle.returncode``, ``handle.kill_group()`` and ``watchdog.reason``
    are used.
    """

    def __init__(self, handle: ProcessHandle | AsyncProcessHandle, watchdog: Any) -> None:
        self._handle = handle
        self._watchdog = watchdog
        self._exited_at: float | None = None
        self._killed_at: float | None = None

    @property
    def killed(self) -> bool:
        if (
            self._killed_at is None
            and self._watchdog is not None
            and self._watchdog.reason is not None
        ):
            self._killed_at = time.monotonic()
        return self._killed_at is not None

    def kill_group(self) -> None:
        self._handle.kill_group()
        if self._killed_at is None:
            self._killed_at = time.monotonic()

    def remaining(self) -> float:
        """Seconds left to wait for readers before giving up on them."""
        if not self.killed:
            return ABANDON_TIMEOUT
        return max(0.0, self._killed_at + ABANDON_TIMEOUT - time.monotonic())

    def expired(self) -> bool:
        """True once readers should be given up on.

        Called repeatedly while the stdout reader has nothing new.
        """
        if not self.killed:
            if self._handle.returncode is None:
                return False
            now = time.monotonic()
            if self._exited_at is None:
                self._exited_at = now
            if now - self._exited_at < DRAIN_TIMEOUT:
                return False
            logger.debug("stdout still open %ss after exit, killing process group", DRAIN_TIMEOUT)
            self.kill_group()
        return self.remaining() <= 0


class _StdoutReader:
    """Read stdout lines on a daemon thread into a bounded queue.

    The consumer never blocks on the pipe itself, so it can stop waiting
    when the pipe is held open by a process that will never write again.
    The reader owns the stream and closes it when reading ends.
    """

    def __init__(self, stream: Any) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=LINE_QUEUE_SIZE)
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(stream,),
            name="claude-stdout-reader",
            daemon=True,
        )

    @classmethod
    def start(cls, stream: Any) -> "_StdoutReader":
        reader = cls(stream)
        reader._thread.start()
        return reader

    def _run(self, stream: Any) -> None:
        try:
            for line in stream:
                if not self._offer(line):
                    return
            self._offer(_EOF)
        except (OSError, ValueError) as e:
            self._offer(e)
        finally:
            stream.close()

    def _offer(self, item: object) -> bool:
        while not self._stopped.is_set():
            try:
                self._queue.put(item, timeout=WATCHDOG_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def get(self, timeout: float) -> object:
        """Next line, an exception raised while reading, or ``_EOF``.

        Raises:
            queue.Empty: If nothing arrives within ``timeout``
        """
        return self._queue.get(timeout=timeout)

    def stop(self) -> None:
        self._stopped.set()

    def join(self, timeout: float) -> None:
        self._thread.join(timeout)


def _collect_stderr(collector: StderrCollector, guard: _ReadGuard) -> CapturedStderr:
    """Wait for the stderr drain after the process has exited."""
    if not guard.killed and not collector.join(DRAIN_TIMEOUT):
        # Something outside the main process still holds the pipe open
        logger.debug("stderr still open %ss after exit, killing process group", DRAIN_TIMEOUT)
        guard.kill_group()
    return collector.wait(guard.remaining())


class SyncProcessExecutor:
    """Run the CLI with subprocess.Popen and yield raw stdout lines.

    Args:
        cancel_event: Setting this event kills the process
        timeout: Seconds after which the process is killed
    """

    def __init__(
        self,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cancel_event = cancel_event
        self.timeout = timeout

    def execute(
        self,
        cmd: list[str],
        *,
        input: str | bytes | None = None,
        **kwargs: Any,
    ) -> Iterator[bytes]:
        """Execute command and yield raw lines from stdout.

        Args:
            cmd: Command list to execute
            input: Optional stdin payload
            **kwargs: ``cwd`` and ``env`` for the launcher

        Yields:
            Raw line bytes from stdout

        Raises:
            CLINotFoundError: If the executable cannot be started
            ProcessError: If the process exits with a failure status
            CancellationError: If cancelled or timed out
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancellationError("cancelled")

        handle = launch(cmd, input=input, **kwargs)
        # Attach the stderr reader before anything else can happen
        collector = StderrCollector.start(handle.stderr)
        watchdog = _Watchdog.start(handle, self.cancel_event, self.timeout)
        guard = _ReadGuard(handle, watchdog)
        reader: _StdoutReader | None = None

        try:
            if not handle.stdout:
                raise RuntimeError("Failed to create subprocess stdout pipe")
            reader = _StdoutReader.start(handle.stdout)

            try:
                while True:
                    try:
                        item = reader.get(WATCHDOG_INTERVAL)
                    except queue.Empty:
                        if guard.expired():
                            logger.debug("Giving up on stdout of CLI process %s", handle.pid)
                            break
                        continue
                    if item is _EOF:
                        break
                    if isinstance(item, Exception):
                        raise item
                    if _DEBUG:
                        logger.debug("[STDOUT] %d bytes", len(item))
                    yield item
            except (OSError, ValueError) as e:
                handle.kill()
                returncode = handle.wait()
                cancel_reason = watchdog.stop() if watchdog else None
                stderr = collector.wait(guard.remaining())
                if cancel_reason is not None:
                    raise CancellationError(cancel_reason, stderr=stderr) from e
                raise classify_read_error(e, returncode, stderr) from e

            returncode = handle.wait()
            cancel_reason = watchdog.stop() if watchdog else None
            stderr = _collect_stderr(collector, guard)

            error = classify_exit(
                returncode,
                stderr,
                cancel_reason=cancel_reason,
                stdin_error=handle.stdin_error,
            )
            if error is not None:
                logger.debug("CLI run failed: %s\nstderr:\n%s", error, stderr.text)
                raise error

        finally:
            if watchdog:
                watchdog.stop()
            if reader is not None:
                reader.stop()
            handle.stop()
            if reader is not None:
                reader.join(guard.remaining())
            collector.join(guard.remaining())


class _AsyncWatchdog:
    """Task that kills the process on cancellation or deadline."""

    def __init__(
        self,
        handle: AsyncProcessHandle,
        cancel_event: asyncio.Event | None,
        timeout: float | None,
    ) -> None:
        self.reason: str | None = None
        self._handle = handle
        self._cancel_event = cancel_event
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def start(
        cls,
        handle: AsyncProcessHandle,
        cancel_event: asyncio.Event | None,
        timeout: float | None,
    ) -> "_AsyncWatchdog | None":
        if cancel_event is None and timeout is None:
            return None
        watchdog = cls(handle, cancel_event, timeout)
        watchdog._task = asyncio.create_task(watchdog._run(), name="claude-watchdog")
        return watchdog

    async def _run(self) -> None:
        try:
            if self._cancel_event is None:
                await asyncio.sleep(self._timeout)
                self.reason = _timeout_reason(self._timeout)
            else:
                await asyncio.wait_for(self._cancel_event.wait(), self._timeout)
                self.reason = "cancelled"
        except asyncio.TimeoutError:
            self.reason = _timeout_reason(self._timeout)
        logger.debug("Killing CLI process %s: %s", self._handle.pid, self.reason)
        self._handle.kill()

    async def stop(self) -> str | None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        return self.reason


async def _readline(stdout: asyncio.StreamReader, guard: _ReadGuard) -> bytes:
    """Next stdout line, or ``b""`` at EOF or once the guard gives up on the pipe."""
    read = asyncio.ensure_future(stdout.readline())
    try:
        while True:
            done, _ = await asyncio.wait({read}, timeout=WATCHDOG_INTERVAL)
            if done:
                return read.result()
            if guard.expired():
                return b""
    finally:
        if not read.done():
            read.cancel()


async def _async_collect_stderr(
    collector: AsyncStderrCollector, guard: _ReadGuard
) -> CapturedStderr:
    if not guard.killed and not await collector.join(DRAIN_TIMEOUT):
        logger.debug("stderr still open %ss after exit, killing process group", DRAIN_TIMEOUT)
        guard.kill_group()
    return await collector.wait(guard.remaining())


class AsyncProcessExecutor:
    """Run the CLI with asyncio.subprocess and yield raw stdout lines.

    Args:
        cancel_event: Setting this event kills the process
        timeout: Seconds after which the process is killed
    """

    def __init__(
        self,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cancel_event = cancel_event
        self.timeout = timeout

    async def async_execute(
        self,
        cmd: list[str],
        *,
        input: str | bytes | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[bytes]:
        """Execute command and yield raw lines from stdout.

        Cancelling the consuming task kills the process and re-raises
        ``asyncio.CancelledError``.
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancellationError("cancelled")

        handle = await async_launch(cmd, input=input, **kwargs)
        collector = AsyncStderrCollector.start(handle.stderr)
        watchdog = _AsyncWatchdog.start(handle, self.cancel_event, self.timeout)
        guard = _ReadGuard(handle, watchdog)

        try:
            if not handle.stdout:
                raise RuntimeError("Failed to create subprocess stdout pipe")

            try:
                while True:
                    line = await _readline(handle.stdout, guard)
                    if not line:
                        break
                    if _DEBUG:
                        logger.debug("[STDOUT] %d bytes", len(line))
                    yield line
            except (OSError, ValueError) as e:
                # ValueError: a single record exceeded the stream line limit
                handle.kill()
                returncode = await handle.wait()
                cancel_reason = await watchdog.stop() if watchdog else None
                stderr = await collector.wait(guard.remaining())
                if cancel_reason is not None:
                    raise CancellationError(cancel_reason, stderr=stderr) from e
                raise classify_read_error(e, returncode, stderr) from e

            returncode = await handle.wait()
            cancel_reason = await watchdog.stop() if watchdog else None
            stderr = await _async_collect_stderr(collector, guard)

            error = classify_exit(
                returncode,
                stderr,
                cancel_reason=cancel_reason,
                stdin_error=handle.stdin_error,
            )
            if error is not None:
                logger.debug("CLI run failed: %s\nstderr:\n%s", error, stderr.text)
                raise error

        except asyncio.CancelledError:
            handle.kill()
            raise

        finally:
            if watchdog:
                await watchdog.stop()
            await handle.stop()
            await collector.join(guard.remaining())
            await collector.aclose()
