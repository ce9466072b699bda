"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult
from combinators import lift as L

from storefront.saga._types import SagaStep, Compensator
from storefront.saga.policy import RetryPolicy, TimeoutPolicy

# ═══════════════════════════════════════════════════════════════════════════════
# step() — Primary Constructor
# ═══════════════════════════════════════════════════════════════════════════════


def step[T, E](
    name: str,
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    retry: RetryPolicy[E] | None = None,
    timeout: TimeoutPolicy[E] | None = None,
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Timeout bounds each attempt; retry wraps the bounded attempt, so a
    timed-out attempt is retried when retry_on accepts the mapped error.

    Example:
        from storefront import saga as S

        verify = S.step(
            "verify",
            L.call(verifier.confirm, callback),
            compensate=lambda payment: verifier.cancel(payment.payment_key),
            retry=S.policy.retry(3, retry_on=lambda e: e.is_transient),
        )
    """
    if timeout is not None:
        action = timeout.apply(action)
    if retry is not None:
        action = retry.apply(action)
    return SagaStep(name=name, action=action, compensate=compensate)


# ═══════════════════════════════════════════════════════════════════════════════
# from_async() — Create step from async callable
# ═══════════════════════════════════════════════════════════════════════════════


def from_async[T, E](
    name: str,
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """
    Create step from a plain async callable; exceptions go through on_error.

    Example:
        S.from_async(
            "reserve",
            lambda: inventory.reserve(sku),
            on_error=lambda e: StockError(str(e)),
            compensate=inventory.release,
        )
    """
    return SagaStep(
        name=name,
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
    )


__all__ = ("step", "from_async")
