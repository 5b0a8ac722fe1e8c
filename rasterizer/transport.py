"""Message channels between the producer and the engine (queue + mock).

Keep this small and explicit. QueueChannel wraps a thread-safe FIFO and is
what a real run uses; MockChannel records everything posted to it and is for
unit tests that drive the engine synchronously.
"""

from __future__ import annotations
import queue
from typing import List, Optional

from .protocol import Message


class ChannelBase:
    def post(self, message: Message) -> None:
        raise NotImplementedError

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next message, or None if nothing arrived within `timeout`."""
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class QueueChannel(ChannelBase):
    """Unbounded FIFO channel; ordering is preserved, posting never blocks."""

    def __init__(self):
        self._queue: "queue.Queue[Message]" = queue.Queue()
        self._closed = False

    def post(self, message: Message) -> None:
        if self._closed:
            raise RuntimeError("Channel is closed")
        self._queue.put(message)

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        """Refuse further posts and wake a blocked receiver with None."""
        if not self._closed:
            self._closed = True
            self._queue.put(None)

    @property
    def closed(self) -> bool:
        return self._closed


class MockChannel(ChannelBase):
    """Simple in-memory channel for unit tests.

    Messages posted are kept in order; `receive` pops them FIFO and returns
    None immediately once the channel is empty.
    """

    def __init__(self):
        self._log: List[Message] = []
        self._pending: List[Message] = []

    def post(self, message: Message) -> None:
        self._log.append(message)
        self._pending.append(message)

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        if not self._pending:
            return None
        return self._pending.pop(0)

    def close(self):
        self._pending = []

    @property
    def messages(self) -> List[Message]:
        return list(self._log)

    @property
    def types(self) -> List[str]:
        return [m.type for m in self._log]
