"""
Timeout policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from collections.abc import Callable

from combinators import TimeoutError as InterpTimeout, timeout as timeout_interp
from kungfu import LazyCoroResult


@dataclass(frozen=True, slots=True)
class TimeoutPolicy[E]:
    """Time limit for a single attempt of a step action."""

    duration: timedelta
    on_timeout: Callable[[float], E]

    def apply[T](self, action: LazyCoroResult[T, E]) -> LazyCoroResult[T, E]:
        seconds = self.duration.total_seconds()
        on_timeout = self.on_timeout

        def narrow(err: E | InterpTimeout) -> E:
            if isinstance(err, InterpTimeout):
                return on_timeout(err.seconds)
            return err

        return timeout_interp(action, seconds=seconds).map_err(narrow)


def timeout[E](
    on_timeout: Callable[[float], E],
    seconds: float | None = None,
    duration: timedelta | None = None,
) -> TimeoutPolicy[E]:
    """
    Limit a step action.

    on_timeout maps the elapsed limit to the step's own error type.

    Example:
        S.policy.timeout(
            lambda s: CheckoutErrors.gateway_unavailable(f"timed out after {s}s"),
            seconds=10,
        )
    """
    if duration is not None:
        return TimeoutPolicy(duration, on_timeout)
    if seconds is not None:
        return TimeoutPolicy(timedelta(seconds=seconds), on_timeout)
    raise ValueError("Must provide seconds or duration")


__all__ = ("TimeoutPolicy", "timeout")
