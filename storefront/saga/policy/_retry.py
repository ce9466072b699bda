"""
Retry policy — re-run a step action on retryable errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable

from combinators import RetryPolicy as CombinatorRetry, retry as retry_interp
from kungfu import LazyCoroResult


@dataclass(frozen=True, slots=True)
class RetryPolicy[E]:
    """
    Fixed-delay retry for a step action.

    Note: times counts attempts, not retries. times=1 runs once.
    """

    times: int
    delay_seconds: float = 0.0
    retry_on: Callable[[E], bool] | None = None

    def apply[T](self, action: LazyCoroResult[T, E]) -> LazyCoroResult[T, E]:
        if self.times <= 1:
            return action
        return retry_interp(
            action,
            policy=CombinatorRetry.fixed(
                times=self.times,
                delay_seconds=self.delay_seconds,
                retry_on=self.retry_on,
            ),
        )


def retry[E](
    times: int,
    delay_seconds: float = 0.0,
    retry_on: Callable[[E], bool] | None = None,
) -> RetryPolicy[E]:
    """
    Retry a step action.

    Example:
        S.policy.retry(3, delay_seconds=0.2, retry_on=lambda e: e.is_transient)
    """
    if times < 1:
        raise ValueError("times must be >= 1")
    return RetryPolicy(times, delay_seconds, retry_on)


__all__ = ("RetryPolicy", "retry")
