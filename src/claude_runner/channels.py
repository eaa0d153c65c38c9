"""One-way channels used by the streaming query API.

A channel is a bounded queue with an explicit close. The producer calls
``send`` then ``close``; the consumer iterates until the channel is closed
and drained, or calls ``get`` which raises ChannelClosed at that point.
"""

import asyncio
import queue
import threading
from collections.abc import AsyncIterator, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")

# How often a blocked send re-checks its cancel event (seconds)
SEND_POLL_INTERVAL = 0.05

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised by ``get`` once the channel is closed and empty."""


class Channel(Generic[T]):
    """Thread-safe bounded channel.

    Example:
        ```python
        messages, errors = query_stream(request)
        for message in messages:
            print(message)
        error = errors.first(timeout=5)
        ```
    """

    def __init__(self, maxsize: int = 0) -> None:
        # One extra slot so close() never blocks on a full queue
        self._queue: queue.Queue[object] = queue.Queue(maxsize=maxsize + 1 if maxsize else 0)
        self._maxsize = maxsize
        self._closed = threading.Event()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        """True once the producer has closed the channel."""
        return self._closed.is_set()

    def send(self, item: T, cancel_event: threading.Event | None = None) -> bool:
        """Put an item, blocking while the channel is full.

        Returns:
            False if ``cancel_event`` was set before the item could be queued

        Raises:
            ChannelClosed: If the channel is already closed
        """
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False
            with self._lock:
                if self.closed:
                    raise ChannelClosed("send on closed channel")
                if not self._maxsize or self._queue.qsize() < self._maxsize:
                    self._queue.put_nowait(item)
                    return True
            # Full; wait for the consumer or cancellation
            if cancel_event is not None:
                cancel_event.wait(SEND_POLL_INTERVAL)
            else:
                self._closed.wait(SEND_POLL_INTERVAL)

    def close(self) -> None:
        """Close the channel. Closing twice is a no-op."""
        with self._lock:
            if self.closed:
                return
            self._closed.set()
            self._queue.put_nowait(_CLOSED)

    def get(self, timeout: float | None = None) -> T:
        """Receive the next item.

        Raises:
            ChannelClosed: If the channel is closed and drained
            queue.Empty: If ``timeout`` expires first
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # Put the sentinel back for any other receivers
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed("channel closed")
        return item  # type: ignore[return-value]

    def first(self, timeout: float | None = None) -> T | None:
        """Receive one item, or None if the channel closed without one."""
        try:
            return self.get(timeout=timeout)
        except ChannelClosed:
            return None

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


class AsyncChannel(Generic[T]):
    """asyncio counterpart of Channel; use from a single event loop."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._maxsize = maxsize
        self._closed = False
        # Set whenever a slot frees up or the channel closes
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T, cancel_event: asyncio.Event | None = None) -> bool:
        """Put an item, waiting while the channel is full.

        Returns:
            False if ``cancel_event`` was set before the item could be queued
        """
        if cancel_event is None:
            await self._put(item)
            return True
        if cancel_event.is_set():
            return False

        put = asyncio.ensure_future(self._put(item))
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({put, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not put.done():
                put.cancel()
        if put.done() and not put.cancelled():
            put.result()
            return True
        return False

    async def _put(self, item: T) -> None:
        while True:
            if self._closed:
                raise ChannelClosed("send on closed channel")
            if not self._maxsize or self._queue.qsize() < self._maxsize:
                self._queue.put_nowait(item)
                return
            self._changed.clear()
            await self._changed.wait()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        self._changed.set()

    async def get(self, timeout: float | None = None) -> T:
        """Receive the next item.

        Raises:
            ChannelClosed: If the channel is closed and drained
            asyncio.TimeoutError: If ``timeout`` expires first
        """
        item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed("channel closed")
        self._changed.set()
        return item  # type: ignore[return-value]

    async def first(self, timeout: float | None = None) -> T | None:
        try:
            return await self.get(timeout=timeout)
        except ChannelClosed:
            return None

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.get()
            except ChannelClosed:
                return
