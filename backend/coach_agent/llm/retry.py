"""Bounded retry with a fixed interval, shared by the model gateway and the commit client."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class RetryExhausted(Exception):
    def __init__(self, attempts: int, last: Any):
        super().__init__(f"retry budget exhausted after {attempts} attempts")
        self.attempts = attempts
        self.last = last


@dataclass
class RetryPolicy:
    """Call `fn(attempt)` up to `max_attempts` times.

    `should_retry(result)` classifies each result: False means terminal and the
    result is returned, True means sleep `interval_ms` and try again. There is no
    sleep after the final attempt. Exceptions raised by `fn` propagate untouched,
    so a hard failure stops the loop immediately.
    """

    max_attempts: int
    interval_ms: int = 0
    sleep: Callable[[float], Any] = field(default=time.sleep, repr=False)

    def run(
        self,
        fn: Callable[[int], T],
        should_retry: Callable[[T], bool],
        on_retry: Optional[Callable[[int, T], None]] = None,
    ) -> T:
        last: Optional[T] = None
        for attempt in range(1, self.max_attempts + 1):
            last = fn(attempt)
            if not should_retry(last):
                return last
            if on_retry:
                on_retry(attempt, last)
            if attempt < self.max_attempts and self.interval_ms > 0:
                self.sleep(self.interval_ms / 1000.0)
        raise RetryExhausted(self.max_attempts, last)
