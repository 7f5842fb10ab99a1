"""Message channel between the caller and the crypto worker."""

from __future__ import annotations

import queue
from typing import Any, Optional


class _Closed:
    def __repr__(self) -> str:
        return "CLOSED"


# end-of-stream marker; receivers stop when they see it
CLOSED = _Closed()


class Channel:
    """
    FIFO message channel over :class:`queue.Queue`.

    A positive ``maxsize`` bounds the channel: ``send`` then blocks (or times
    out with ``queue.Full``) until the receiver catches up.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)

    def send(self, message: Any, timeout: Optional[float] = None) -> None:
        self._queue.put(message, timeout=timeout)

    def receive(self, timeout: Optional[float] = None) -> Any:
        return self._queue.get(timeout=timeout)

    def close(self) -> None:
        self._queue.put(CLOSED)

    def __len__(self) -> int:
        return self._queue.qsize()
