from abc import ABC, abstractmethod
from contextlib import contextmanager
import logging
import threading
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


class MulticastScope(ABC):
    """Reference-counted permission to send/receive multicast traffic."""

    @abstractmethod
    def acquire(self) -> None: ...

    @abstractmethod
    def release(self) -> None: ...

    @property
    @abstractmethod
    def held(self) -> bool: ...

    @contextmanager
    def scoped(self) -> Iterator["MulticastScope"]:
        """Hold the lock for the duration of the block, whatever the exit path."""
        self.acquire()
        try:
            yield self
        finally:
            self.release()


class RefCountedMulticast(MulticastScope):
    """
    Counts acquisitions; on_enable runs on the first acquire and on_disable
    when the count drops back to zero. A release without a matching acquire
    is ignored.
    """

    def __init__(
        self,
        on_enable: Optional[Callable[[], None]] = None,
        on_disable: Optional[Callable[[], None]] = None,
    ):
        self._on_enable = on_enable
        self._on_disable = on_disable
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def held(self) -> bool:
        return self.count > 0

    def acquire(self) -> None:
        with self._lock:
            self._count += 1
            if self._count == 1:
                logger.info("requesting multicast lock")
                if self._on_enable is not None:
                    try:
                        self._on_enable()
                    except Exception:
                        self._count -= 1
                        raise

    def release(self) -> None:
        with self._lock:
            if self._count == 0:
                logger.debug("multicast release without acquire ignored")
                return
            self._count -= 1
            if self._count == 0:
                logger.info("releasing multicast lock")
                if self._on_disable is not None:
                    self._on_disable()
