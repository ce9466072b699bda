"""
Step policies.

Namespace: S.policy.*

Examples:
    S.step("verify", action, retry=S.policy.retry(3, retry_on=is_transient))
    S.step("verify", action, timeout=S.policy.timeout(on_timeout, seconds=10))
"""

from __future__ import annotations

from storefront.saga.policy._retry import RetryPolicy, retry
from storefront.saga.policy._timeout import TimeoutPolicy, timeout

__all__ = (
    "RetryPolicy",
    "TimeoutPolicy",
    "retry",
    "timeout",
)
