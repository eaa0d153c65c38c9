"""Process launcher for the Claude Code CLI.

Starts the child with stdout and stderr connected to pipes, and stdin either
fed from a payload or connected to the null device. Each output pipe is
owned by its reader, which closes it at end-of-stream.
Spawn failures are mapped to CLINotFoundError here, so a process that never
ran is never confused with one that ran and failed.
"""

import asyncio
import logging
import os
import signal
import subprocess
import sys
import threading
from typing import Any

from claude_runner.exceptions import CLINotFoundError, QueryError

logger = logging.getLogger(__name__)

# asyncio StreamReader line limit; stream-json records can be large
MAX_LINE_BYTES = 10 * 1024 * 1024

# Seconds to wait after terminate() before falling back to kill()
PROCESS_WAIT_TIMEOUT = 5.0

# How often async waits check whether the process has exited (seconds)
EXIT_POLL_INTERVAL = 0.05


def _platform_kwargs(kwargs: dict[str, Any]) -> dict[str, Any]:
    kwargs = kwargs.copy()
    if sys.platform == "win32":
        # Prevent console window on Windows and create new process group
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # Own session so cancellation can kill the whole process group
        kwargs["start_new_session"] = True
    return kwargs


def _as_bytes(payload: str | bytes) -> bytes:
    return payload.encode() if isinstance(payload, str) else payload


def _spawn_error(cmd: list[str], cwd: str | None, error: OSError) -> QueryError:
    if cwd and not os.path.isdir(cwd):
        return QueryError(f"Working directory does not exist: {cwd}")
    if isinstance(error, PermissionError):
        return CLINotFoundError(f"Claude Code CLI is not executable: {cmd[0]}")
    return CLINotFoundError(f"Claude Code CLI not found at: {cmd[0]}")


def _kill_group(pid: int) -> bool:
    """Kill the process group led by ``pid``. Returns False if not possible."""
    if sys.platform == "win32":
        return False
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug("Error killing process group %s: %s", pid, e)
        return False
    return True


class ProcessHandle:
    """A running CLI process and the pipes that belong to it."""

    def __init__(self, process: subprocess.Popen) -> None:
        self.process = process
        self.stdin_error: OSError | None = None
        self._stdin_thread: threading.Thread | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self):
        return self.process.stdout

    @property
    def stderr(self):
        return self.process.stderr

    def _start_stdin_writer(self, payload: bytes) -> None:
        self._stdin_thread = threading.Thread(
            target=self._write_stdin,
            args=(payload,),
            name="claude-stdin-writer",
            daemon=True,
        )
        self._stdin_thread.start()

    def _write_stdin(self, payload: bytes) -> None:
        stdin = self.process.stdin
        try:
            stdin.write(payload)
            stdin.flush()
        except OSError as e:
            # Usually a broken pipe; the exit status explains it, so keep it for the classifier
            self.stdin_error = e
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def wait(self, timeout: float | None = None) -> int:
        returncode = self.process.wait(timeout=timeout)
        if self._stdin_thread is not None:
            # A descendant holding stdin open can keep the writer blocked
            self._stdin_thread.join(PROCESS_WAIT_TIMEOUT)
            if self._stdin_thread.is_alive():
                logger.debug("stdin writer still blocked after exit, leaving it")
        return returncode

    @property
    def returncode(self) -> int | None:
        """Exit status if the process has exited, else None."""
        return self.process.poll()

    def kill_group(self) -> None:
        """Kill whatever is left of the process group, even after the leader exited."""
        _kill_group(self.process.pid)

    def kill(self) -> None:
        """Kill the process (and its group on POSIX) right away."""
        if self.process.poll() is not None:
            return
        if not _kill_group(self.process.pid):
            try:
                self.process.kill()
            except OSError as e:
                logger.debug("Error killing subprocess: %s", e)

    def stop(self) -> None:
        """Terminate the process if it is still running, killing it if needed.

        The stdout and stderr pipes are not closed here; their readers own
        them and close them at end-of-stream.
        """
        if self.process.poll() is not None:
            return
        try:
            self.process.terminate()
            self.process.wait(timeout=PROCESS_WAIT_TIMEOUT)
        except subprocess.TimeoutExpired:
            self.kill()
            self.process.wait()
        except OSError as e:
            logger.debug("Error terminating subprocess: %s", e)


def launch(
    cmd: list[str],
    *,
    input: str | bytes | None = None,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> ProcessHandle:
    """Start the CLI with piped stdout/stderr.

    Args:
        cmd: Full argument list, executable first
        input: Optional stdin payload; stdin is closed after writing it
        cwd: Working directory
        env: Complete environment for the child

    Raises:
        CLINotFoundError: If the executable cannot be found or started
        QueryError: If ``cwd`` does not exist
    """
    kwargs = _platform_kwargs({"cwd": cwd, "env": env})
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **kwargs,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise _spawn_error(cmd, cwd, e) from e

    handle = ProcessHandle(process)
    if input is not None:
        handle._start_stdin_writer(_as_bytes(input))
    return handle


class AsyncProcessHandle:
    """asyncio counterpart of ProcessHandle."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self.process = process
        self.stdin_error: OSError | None = None
        self._stdin_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.process.stderr

    async def _write_stdin(self, payload: bytes) -> None:
        stdin = self.process.stdin
        try:
            stdin.write(payload)
            await stdin.drain()
        except OSError as e:
            self.stdin_error = e
        finally:
            stdin.close()

    async def wait(self) -> int:
        # Process.wait() can also wait for every pipe to close, which a
        # descendant holding stdout or stderr may never allow
        while self.process.returncode is None:
            await asyncio.sleep(EXIT_POLL_INTERVAL)
        if self._stdin_task is not None:
            done, _ = await asyncio.wait({self._stdin_task}, timeout=PROCESS_WAIT_TIMEOUT)
            if not done:
                logger.debug("stdin writer still blocked after exit, cancelling it")
                self._stdin_task.cancel()
        return self.process.returncode

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    def kill_group(self) -> None:
        _kill_group(self.process.pid)

    def kill(self) -> None:
        if self.process.returncode is not None:
            return
        if not _kill_group(self.process.pid):
            try:
                self.process.kill()
            except ProcessLookupError:
                pass

    async def stop(self) -> None:
        """Terminate the process if it is still running, killing it if needed."""
        if self._stdin_task is not None and not self._stdin_task.done():
            self._stdin_task.cancel()
        if self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self.wait(), timeout=PROCESS_WAIT_TIMEOUT)
        except asyncio.TimeoutError:
            self.kill()
            await self.wait()


async def async_launch(
    cmd: list[str],
    *,
    input: str | bytes | None = None,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> AsyncProcessHandle:
    """Start the CLI with asyncio pipes. Same contract as ``launch``."""
    kwargs = _platform_kwargs({"cwd": cwd, "env": env})
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=MAX_LINE_BYTES,
            **kwargs,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise _spawn_error(cmd, cwd, e) from e

    handle = AsyncProcessHandle(process)
    if input is not None:
        handle._stdin_task = asyncio.create_task(handle._write_stdin(_as_bytes(input)))
    return handle
