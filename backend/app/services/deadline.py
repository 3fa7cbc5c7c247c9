from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from threading import Event
from time import monotonic
from typing import TypeVar

from backend.app.errors import CanceledError, DeadlineExceededError

T = TypeVar("T")

LOGGER = logging.getLogger("yt_transcripts.deadline")
DEFAULT_POLL_INTERVAL_SECONDS = 0.05
EXTERNAL_CALL_MAX_WORKERS = 32

_EXTERNAL_CALL_EXECUTOR = ThreadPoolExecutor(
    max_workers=EXTERNAL_CALL_MAX_WORKERS,
    thread_name_prefix="yt-transcripts-external",
)


@dataclass(frozen=True)
class Deadline:
    expires_at: float | None = None
    cancel_event: Event = field(default_factory=Event)
    clock: Callable[[], float] = monotonic

    @classmethod
    def after(
        cls,
        seconds: float,
        *,
        cancel_event: Event | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> Deadline:
        return cls(
            expires_at=clock() + max(0.0, seconds),
            cancel_event=cancel_event if cancel_event is not None else Event(),
            clock=clock,
        )

    @classmethod
    def unbounded(cls) -> Deadline:
        return cls()

    def within(self, seconds: float) -> Deadline:
        """Derive a deadline no later than `seconds` from now that shares this cancel flag."""
        candidate = self.clock() + max(0.0, seconds)
        expires_at = candidate if self.expires_at is None else min(self.expires_at, candidate)
        return Deadline(expires_at=expires_at, cancel_event=self.cancel_event, clock=self.clock)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self.clock() >= self.expires_at

    def canceled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self, operation: str = "operation") -> None:
        if self.canceled():
            raise CanceledError(f"{operation} was canceled")
        if self.expired():
            raise DeadlineExceededError(f"{operation} timed out")


def run_with_deadline(
    call: Callable[[], T],
    deadline: Deadline,
    *,
    operation: str = "external call",
    executor: Executor | None = None,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
) -> T:
    """
    Run `call` on a worker thread and wait for it no longer than `deadline` allows.

    On expiry or cancellation the caller is released immediately. The call itself keeps
    running on its worker until it returns, and its result is dropped.
    """
    deadline.check(operation)
    future = (executor or _EXTERNAL_CALL_EXECUTOR).submit(call)

    while True:
        remaining = deadline.remaining()
        wait_seconds = poll_interval_seconds
        if remaining is not None:
            wait_seconds = min(wait_seconds, remaining)
        done, _ = wait([future], timeout=wait_seconds, return_when=FIRST_COMPLETED)
        if done:
            return future.result()

        if deadline.canceled() or deadline.expired():
            future.cancel()
            LOGGER.info(
                "deadline abandon operation=%s canceled=%s",
                operation,
                deadline.canceled(),
            )
            deadline.check(operation)
