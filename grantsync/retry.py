"""Retry with linear backoff for source fetches."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from grantsync.errors import SourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_delay(base: float) -> Callable[[int], float]:
    """Delay of ``base * attempt`` seconds after the given failed attempt."""
    def delay(attempt: int) -> float:
        return base * attempt
    return delay


def retry(
    operation: Callable[[], T],
    max_retries: int = 3,
    delay: Callable[[int], float] = linear_delay(5.0),
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple = (SourceUnavailable,),
) -> T:
    """Call ``operation`` until it succeeds or retries run out.

    Makes at most ``1 + max_retries`` attempts. Only exceptions listed in
    ``retry_on`` are retried; anything else propagates immediately. The
    error from the final attempt propagates unchanged.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except retry_on as e:
            if attempt > max_retries:
                raise
            wait = delay(attempt)
            logger.warning(
                "Attempt %d/%d failed: %s (retrying in %.1fs)",
                attempt, max_retries + 1, e, wait,
            )
            sleep(wait)
            attempt += 1


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings bound to a sleep function."""

    max_retries: int = 3
    base_delay: float = 5.0
    retry_on: tuple = field(default=(SourceUnavailable,))

    def run(self, operation: Callable[[], T], sleep: Callable[[float], None] = time.sleep) -> T:
        return retry(
            operation,
            max_retries=self.max_retries,
            delay=linear_delay(self.base_delay),
            sleep=sleep,
            retry_on=self.retry_on,
        )
