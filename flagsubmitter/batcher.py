import time
from typing import Callable, Iterator, Sequence, TypeVar

T = TypeVar("T")


class RateLimitedBatcher:
    def __init__(
        self,
        quota: int,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Splits a sequence of items into windows of at most `quota` items and releases one
        window per `interval` seconds.

        The first window is released one full interval after iteration starts, and every
        following window no earlier than one interval after the consumer is done with the
        previous one. A consumer that blocks until a window is actually sent therefore
        never starts more than `quota` items per interval. In case of N items and a
        consumer that does not block, releasing all windows takes
        ceil(N / quota) * interval seconds.

        Examples:
        ..
                # In case of 5 items, quota=2 and interval=1...
                # ...windows of sizes [2, 2, 1] are released at t=1, t=2 and t=3.
                RateLimitedBatcher(quota=2, interval=1)

        :param quota: Maximum number of items released per interval.
        :type quota: int
        :param interval: Time in seconds between two consecutive releases.
        :type interval: float, optional
        :raises ValueError: If 'quota' is not a positive integer.
        :raises ValueError: If 'interval' is not a positive number.
        """
        if not isinstance(quota, int) or quota <= 0:
            raise ValueError("'quota' must be a positive integer.")
        if interval <= 0:
            raise ValueError("'interval' must be a positive number.")

        self.quota = quota
        self.interval = interval
        self._clock = clock
        self._sleep = sleep

    def count(self, total: int) -> int:
        """Number of windows needed for `total` items."""
        return -(-total // self.quota)

    def windows(self, items: Sequence[T]) -> Iterator[list[T]]:
        if not items:
            return

        last_release = self._clock()
        for start in range(0, len(items), self.quota):
            remaining = last_release + self.interval - self._clock()
            if remaining > 0:
                self._sleep(remaining)

            yield list(items[start : start + self.quota])
            # Measured once the consumer is done with the window, not when it was yielded.
            last_release = self._clock()
