from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from time import monotonic, sleep

from backend.app.errors import DeadlineExceededError
from backend.app.services.deadline import Deadline


@dataclass(frozen=True)
class RateLimitDecision:
    waited_seconds: float
    slot_at: float


class MinIntervalRateLimiter:
    """
    Spaces call starts at least `min_interval_seconds` apart.

    The next free slot is reserved under the lock and the caller sleeps outside of it,
    so concurrent callers queue up one interval apart without holding the lock while
    they wait.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        self._min_interval_seconds = max(0.0, min_interval_seconds)
        self._clock = clock
        self._sleep = sleeper
        self._lock = Lock()
        self._last_slot_at: float | None = None

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval_seconds

    def take(self, deadline: Deadline | None = None) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            slot_at = now
            if self._last_slot_at is not None and self._min_interval_seconds > 0:
                slot_at = max(now, self._last_slot_at + self._min_interval_seconds)

            wait_seconds = slot_at - now
            if deadline is not None:
                remaining = deadline.remaining()
                if remaining is not None and wait_seconds > remaining:
                    raise DeadlineExceededError(
                        "deadline would expire while waiting for the rate limiter"
                    )
            self._last_slot_at = slot_at

        if wait_seconds > 0:
            self._sleep(wait_seconds)
        return RateLimitDecision(waited_seconds=wait_seconds, slot_at=slot_at)
