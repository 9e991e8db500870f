"""Hand-off queue between the capture loop and the summary pipeline."""

import queue
import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class HandoffQueue(Generic[T]):
    """Bounded queue whose ``put`` can wait for the consumer to take the item.

    With ``rendezvous=True`` a producer returns from ``put`` only once a
    consumer has dequeued its item. It does not wait for the item to be
    processed. With ``rendezvous=False`` it behaves like a plain bounded queue
    and ``put`` returns as soon as a slot is free.
    """

    def __init__(self, capacity: int = 1, rendezvous: bool = True):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.rendezvous = rendezvous
        self._queue: "queue.Queue[tuple[T, threading.Event]]" = queue.Queue(maxsize=capacity)

    def put(self, item: T, timeout: Optional[float] = None) -> bool:
        """Hand an item over.

        Args:
            item: Item to enqueue.
            timeout: Seconds to wait for a free slot and again for the
                consumer, or None to wait indefinitely.

        Returns:
            True once the item is enqueued (and, in rendezvous mode, taken).
            False if the timeout expired first. In rendezvous mode an item
            that was enqueued but not yet taken stays queued.
        """
        taken = threading.Event()
        try:
            self._queue.put((item, taken), timeout=timeout)
        except queue.Full:
            return False

        if not self.rendezvous:
            return True
        return taken.wait(timeout)

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Take the next item, releasing its producer.

        Returns:
            The item, or None if nothing arrived within ``timeout``.
        """
        try:
            item, taken = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        taken.set()
        return item

    def qsize(self) -> int:
        """Number of items waiting to be taken."""
        return self._queue.qsize()
