"""
Fixed-interval pacing for upstream requests.
"""

import threading
import time
from typing import Callable, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")


class FixedIntervalPacer:
    """
    Enforces a minimum interval between successive `wait()` calls.

    The first call returns immediately; later calls sleep for whatever is left
    of `interval` since the previous one returned.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.interval = max(0.0, interval)
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next slot. Returns the seconds slept."""
        with self._lock:
            slept = 0.0
            if self._last is not None:
                remaining = self.interval - (self._clock() - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last = self._clock()
            return slept

    def pace(self, items: Iterable[T]) -> Iterator[T]:
        """Yield items no faster than one per `interval`."""
        for item in items:
            self.wait()
            yield item
