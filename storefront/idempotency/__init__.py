"""
Idempotency — run an operation at most once per key, via nodnod graphs.

    from storefront import idempotency as I

    spec = I.IdempotencySpec(
        key=f"checkout:{payment_key}",
        owner=user_id,
        operation=finalize,
        store=I.MemoryStore(),
        policy=I.Policy().with_ttl(hours=24),
    )
    result = await I.run_idempotent(spec)

A second call with the same key and owner replays the stored value, or
waits for the run in flight. The same key under another owner is refused.
"""

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import (
    Store,
    StoreAny,
    StoreError,
    MemoryStore,
)
from storefront.idempotency._policy import OnPending, WAIT, FAIL, Policy
from storefront.idempotency._sqlalchemy import (
    IdempotencyMixin,
    IdempotencyStatus,
    SQLAlchemyStore,
)
from storefront.idempotency._graph import IdempotencySpec, run_idempotent

__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
    "Store",
    "StoreAny",
    "StoreError",
    "MemoryStore",
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
    "IdempotencyMixin",
    "IdempotencyStatus",
    "SQLAlchemyStore",
    "IdempotencySpec",
    "run_idempotent",
)
