"""Hand-off queue between background tasks and the UI thread."""

from __future__ import annotations

import queue
from typing import Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")


class UpdateQueue(Generic[T]):
    """Thread-safe mailbox drained by the UI loop.

    Background work never touches UI state directly; it posts messages here
    and the UI thread applies them in order from :meth:`drain`.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[T]" = queue.Queue()

    def post(self, message: T) -> None:
        self._queue.put(message)

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, handler: Optional[Callable[[T], None]] = None) -> List[T]:
        messages: List[T] = []
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            messages.append(message)
            if handler is not None:
                handler(message)
        return messages

    def empty(self) -> bool:
        return self._queue.empty()
