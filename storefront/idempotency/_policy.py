"""
Idempotency policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto


class OnPending(Enum):
    """
    What to do when a request arrives while another run holds the key.

    WAIT: Poll until the other run finishes, return its result.
          Use when: the same client retries (refresh, double submit).

    FAIL: Immediately return CONFLICT.
    """

    WAIT = auto()
    FAIL = auto()


WAIT = OnPending.WAIT
FAIL = OnPending.FAIL


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Idempotency policy configuration.

    Example:
        policy = (
            Policy()
            .with_ttl(hours=24)
            .with_on_pending(WAIT)
            .with_wait_timeout(seconds=30)
        )

    Note: immutable. Each method returns a new Policy.
    """

    result_ttl: timedelta | None = None
    conflict_strategy: OnPending = OnPending.WAIT
    pending_wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: timedelta = timedelta(milliseconds=100)
    # Claim on a key held by a crashed run is released after this.
    pending_ttl: timedelta = timedelta(minutes=5)

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Set TTL for completed records. After TTL the key may run again.

        Example:
            .with_ttl(hours=24)
            .with_ttl(delta=timedelta(days=7))
        """
        if delta is not None:
            ttl_val: timedelta | None = delta
        else:
            total_seconds = (seconds or 0) + (minutes or 0) * 60 + (hours or 0) * 3600
            ttl_val = timedelta(seconds=total_seconds) if total_seconds > 0 else None
        return replace(self, result_ttl=ttl_val)

    def with_on_pending(self, strategy: OnPending) -> Policy:
        return replace(self, conflict_strategy=strategy)

    def with_wait_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """Only applies when on_pending=WAIT."""
        timeout = delta if delta else timedelta(seconds=seconds or 30)
        return replace(self, pending_wait_timeout=timeout)

    def with_poll_interval(self, *, seconds: float) -> Policy:
        return replace(self, poll_interval=timedelta(seconds=seconds))

    def with_pending_ttl(self, *, seconds: float) -> Policy:
        return replace(self, pending_ttl=timedelta(seconds=seconds))


__all__ = (
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
)
