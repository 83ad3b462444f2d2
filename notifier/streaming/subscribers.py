"""Subscriber variants behind a single delivery capability."""
import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

# Placed in a subscriber's buffer when it is closed, to wake its sender
CLOSED = object()

_ids = itertools.count(1)


@dataclass(frozen=True)
class SerializedEvent:
    """One broadcast rendered once for each delivery protocol."""
    kind: str
    push_frame: str
    stream_block: str


class Subscriber(ABC):
    """
    A live client stream with a bounded send buffer.

    deliver() never blocks: it enqueues into the buffer owned by the
    connection's event loop, and reports failure when the subscriber is
    closed or its buffer is full. The connection handler drains the buffer
    with next_message().
    """

    protocol: ClassVar[str]

    def __init__(self, identity: str | None = None, buffer_size: int = 100):
        """
        Initialize subscriber.

        Args:
            identity: Verified user identity from the credential claims
            buffer_size: Maximum number of undelivered messages held
        """
        self.id = next(_ids)
        self.identity = identity
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self._closed = False
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @abstractmethod
    def render(self, serialized: SerializedEvent) -> str:
        """Pick the representation this protocol sends."""
        pass

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, serialized: SerializedEvent) -> bool:
        """
        Attempt a non-blocking delivery.

        Args:
            serialized: Event rendered for both protocols

        Returns:
            True if the message was buffered, False if the subscriber is dead
        """
        if self._closed:
            return False
        message = self.render(serialized)
        if self._in_owner_loop():
            return self._enqueue(message)
        if self._queue.full():
            return False
        self._loop.call_soon_threadsafe(self._enqueue_or_close, message)
        return True

    async def next_message(self, timeout: float) -> str | object | None:
        """
        Wait for the next buffered message.

        Returns:
            The message, None if timeout elapsed first, or CLOSED
        """
        if self._closed and self._queue.empty():
            return CLOSED
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        """Mark dead and wake the connection's sender."""
        if self._closed:
            return
        self._closed = True
        if self._in_owner_loop():
            self._wake_sender()
        else:
            self._loop.call_soon_threadsafe(self._wake_sender)

    def _in_owner_loop(self) -> bool:
        if self._loop is None:
            return True
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _enqueue(self, message: str) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def _enqueue_or_close(self, message: str) -> None:
        # Runs in the owner loop; the caller already reported success
        if not self._closed and not self._enqueue(message):
            self.close()

    def _wake_sender(self) -> None:
        # Drop undelivered messages so the sentinel always fits
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(CLOSED)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} identity={self.identity!r}>"


class PushSubscriber(Subscriber):
    """WebSocket client: receives JSON text frames."""

    protocol = "websocket"

    def render(self, serialized: SerializedEvent) -> str:
        return serialized.push_frame


class StreamSubscriber(Subscriber):
    """Server-Sent-Events client: receives labeled text blocks."""

    protocol = "sse"

    def render(self, serialized: SerializedEvent) -> str:
        return serialized.stream_block
