"""
Bounded retry for operations against an eventually-consistent control plane.

The destination cluster reports NotFound for objects its controllers have
not materialised yet, and Conflict when one of them updated an object
between our read and our write.  Both are retried the same way: up to a
fixed number of failed attempts, with a fixed pause between them.

A ``BoundedRetry`` instance is a budget.  Its failure counter survives
across calls, so a budget shared by every pass of a read-modify-write
loop is consumed cumulatively, while two separate budgets never eat into
each other.  Successful calls do not use up the budget.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar, Union

__all__ = ["RetryPolicy", "BoundedRetry", "retry_call"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

ExceptionTypes = Union[type[BaseException], tuple[type[BaseException], ...]]


@dataclass(frozen=True)
class RetryPolicy:
    """Give up after *max_attempts* failures; wait *interval* seconds between tries."""
    max_attempts: int
    interval: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


class BoundedRetry:
    """Retry budget for errors of type *retry_on*.

    A fresh budget calls an always-failing operation exactly
    ``policy.max_attempts`` times before re-raising its error.
    """

    def __init__(
        self,
        retry_on: ExceptionTypes,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
        label: str = "operation",
    ) -> None:
        self.retry_on = retry_on
        self.policy = policy
        self.label = label
        self.attempts = 0
        self.failures = 0
        self._sleep = sleep

    @property
    def remaining(self) -> int:
        return max(0, self.policy.max_attempts - self.failures)

    def call(self, operation: Callable[[], T]) -> T:
        """Run *operation*, retrying while the budget lasts.

        Errors that are not instances of ``retry_on`` propagate at once.
        When the budget is used up the last retryable error is re-raised
        unchanged.
        """
        while True:
            self.attempts += 1
            try:
                return operation()
            except self.retry_on as exc:
                self.failures += 1
                if self.failures >= self.policy.max_attempts:
                    logger.warning(
                        "Giving up on %s after %d failed attempt(s): %s",
                        self.label, self.failures, exc,
                    )
                    raise
                logger.info(
                    "Retrying %s in %gs (try#: %d of %d): %s",
                    self.label, self.policy.interval, self.failures,
                    self.policy.max_attempts, exc,
                )
                if self.policy.interval:
                    self._sleep(self.policy.interval)


def retry_call(
    operation: Callable[[], T],
    retry_on: ExceptionTypes,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """Run *operation* with a fresh, single-use ``BoundedRetry`` budget."""
    return BoundedRetry(retry_on, policy, sleep=sleep, label=label).call(operation)
