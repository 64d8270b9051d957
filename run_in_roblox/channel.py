"""Output channel between the runner and whoever consumes its output.

The runner sends a RobloxMessage per event and a single None once the
script has finished. Either end can hang up:

- close(): the consumer is gone; the next send() raises ChannelClosed.
- hang_up(): the producer is gone; recv() raises ChannelClosed once the
  queued items are drained.
"""

import queue
import threading
from typing import Iterator, Optional

from .messages import RobloxMessage

_HUNG_UP = object()


class ChannelClosed(Exception):
    """The other end of the channel is gone."""

    pass


class OutputChannel:
    """Thread-safe FIFO of Optional[RobloxMessage]."""

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, item: Optional[RobloxMessage]) -> None:
        if self._closed.is_set():
            raise ChannelClosed("Output channel receiver was closed")
        self._queue.put(item)

    def recv(self, timeout: Optional[float] = None) -> Optional[RobloxMessage]:
        """Take the next item.

        Raises:
            ChannelClosed: If the producer hung up and nothing is left
            queue.Empty: If timeout expires first
        """
        item = self._queue.get(timeout=timeout)
        if item is _HUNG_UP:
            self._queue.put(_HUNG_UP)
            raise ChannelClosed("Output channel sender hung up")
        return item

    def close(self) -> None:
        self._closed.set()

    def hang_up(self) -> None:
        self._queue.put(_HUNG_UP)

    def __iter__(self) -> Iterator[RobloxMessage]:
        """Yield events until the terminating None or a hang-up."""
        while True:
            try:
                item = self.recv()
            except ChannelClosed:
                return
            if item is None:
                return
            yield item
