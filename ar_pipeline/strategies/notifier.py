from abc import ABC, abstractmethod
import logging
import queue
import threading
from typing import Callable, Optional


class Notifier(ABC):
    """Fire-and-forget user notifications (toast-style messages)."""

    @abstractmethod
    def notify(self, message: str, urgent: bool = False) -> None: ...


class LoggingNotifier(Notifier):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def notify(self, message: str, urgent: bool = False) -> None:
        level = logging.WARNING if urgent else logging.INFO
        self.logger.log(level, "notify: %s", message)


class QueuedNotifier(Notifier):
    """
    Defers notifications to the thread that owns the UI.

    Any thread may call notify(); the UI thread periodically calls drain()
    with a handler that actually displays the message.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: "queue.Queue[tuple[str, bool]]" = queue.Queue(maxsize=maxsize)
        self._dropped_lock = threading.Lock()
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Messages discarded because the queue was full."""
        with self._dropped_lock:
            return self._dropped

    def notify(self, message: str, urgent: bool = False) -> None:
        try:
            self._queue.put_nowait((message, urgent))
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1

    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self, handler: Callable[[str, bool], None]) -> int:
        shown = 0
        while True:
            try:
                message, urgent = self._queue.get_nowait()
            except queue.Empty:
                return shown
            handler(message, urgent)
            shown += 1


class NullNotifier(Notifier):
    def notify(self, message: str, urgent: bool = False) -> None:
        return None
