# src/treesync/queues.py
"""
A closable queue for fan-out/fan-in between pipeline stages.

`asyncio.Queue` has no notion of "no more items". `ClosableQueue` adds a
single end-of-stream sentinel that every competing consumer observes: the
consumer that receives it puts it back before stopping, so the next one
stops as well.
"""

import asyncio
import logging
from typing import Any, Generic, TypeVar

from treesync.exceptions import QueueClosedError

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED: Any = object()


class ClosableQueue(asyncio.Queue, Generic[T]):
    """
    An `asyncio.Queue` that can be closed exactly once.

    Consumers iterate with `async for item in queue` and stop once every
    item put before the close has been handed out. No item is handed to
    more than one consumer.
    """

    def __init__(self, maxsize: int = 0, name: str = "queue") -> None:
        """
        Initialize the queue.

        Args:
            maxsize (int): Capacity of the queue; 0 means unbounded.
            name (str): Label used in log messages.
        """
        super().__init__(maxsize)
        self.name: str = name
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        """Whether `close()` has been called."""
        return self._closed

    def put_nowait(self, item: T) -> None:
        if self._closed and item is not _CLOSED:
            raise QueueClosedError(f"Cannot put into closed {self.name}.")
        super().put_nowait(item)

    async def close(self) -> None:
        """
        Signals that no further items will be put.

        Raises:
            QueueClosedError: If the queue was already closed.
        """
        if self._closed:
            raise QueueClosedError(f"{self.name} is already closed.")
        self._closed = True
        logger.debug(f"Closing {self.name}.")
        await self.put(_CLOSED)

    def __aiter__(self) -> "ClosableQueue[T]":
        return self

    async def __anext__(self) -> T:
        item: Any = await self.get()
        self.task_done()
        if item is _CLOSED:
            # Hand the sentinel on to the next competing consumer
            super().put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item
