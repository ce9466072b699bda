"""
Idempotency graph — guard logic as nodnod nodes.

Architecture:
    IdempotencySpec (injected)
         │
         ▼
    SpecNode → FetchRecordNode
                     │
         ┌───────────┼──────────────┬───────────────┐
         ▼           ▼              ▼               ▼
    StoreErrorNode  ForeignRecordNode  CompletedRecordNode  NoRecordNode
                                   PendingRecordNode
                     │
                     ▼
         IdempotencyOutcome (@polymorphic)
                     │
                     ▼
            FinalResultNode

Note: no 'from __future__ import annotations' here. nodnod reads the
type hints of __compose__ at runtime to resolve dependencies.
"""

import asyncio
from dataclasses import dataclass
from typing import Any
from collections.abc import Awaitable, Callable

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error

from storefront import graph as G
from storefront.idempotency._types import (
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from storefront.idempotency._store import StoreError, StoreAny
from storefront.idempotency._policy import Policy, OnPending


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class IdempotencySpec:
    """
    Everything needed for one guarded run.

    owner: identity claiming the key. A live record under another owner
    is reported as OWNER_MISMATCH and the operation never runs.
    """

    key: str
    owner: str
    operation: Callable[[], Awaitable[Result[Any, Any]]]
    store: StoreAny
    policy: Policy


# ═══════════════════════════════════════════════════════════════════════════════
# Entry + Fetch
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    def __init__(self, spec: IdempotencySpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: IdempotencySpec) -> "SpecNode":
        return cls(spec)


@G.node
class FetchRecordNode:
    """Reads the live record for the key, if any."""

    def __init__(
        self,
        record: IdempotencyRecord[Any] | None,
        spec: IdempotencySpec,
        store_error: StoreError | None = None,
    ) -> None:
        self.record = record
        self.spec = spec
        self.store_error = store_error

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "FetchRecordNode":
        spec = spec_node.spec
        match await spec.store.get(spec.key):
            case Ok(record):
                return cls(record, spec)
            case Error(err):
                return cls(None, spec, store_error=err)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — each validates one situation
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class StoreErrorNode:
    def __init__(self, error: StoreError, spec: IdempotencySpec) -> None:
        self.error = error
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchRecordNode) -> "StoreErrorNode":
        if fetch.store_error is None:
            raise NodeError("No store error")
        return cls(fetch.store_error, fetch.spec)


@G.node
class ForeignRecordNode:
    """Validates: live record claimed by a different owner."""

    def __init__(self, record: IdempotencyRecord[Any], spec: IdempotencySpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchRecordNode) -> "ForeignRecordNode":
        record = fetch.record
        if record is None:
            raise NodeError("No record")
        if record.owner == fetch.spec.owner:
            raise NodeError("Same owner")
        return cls(record, fetch.spec)


@G.node
class CompletedRecordNode:
    """Validates: own record, COMPLETED."""

    def __init__(self, record: IdempotencyRecord[Any], spec: IdempotencySpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchRecordNode) -> "CompletedRecordNode":
        record = fetch.record
        if record is None:
            raise NodeError("No record")
        if record.owner != fetch.spec.owner:
            raise NodeError("Foreign record")
        if not record.is_completed:
            raise NodeError("Not completed")
        return cls(record, fetch.spec)


@G.node
class PendingRecordNode:
    """Validates: own record, PENDING."""

    def __init__(self, record: IdempotencyRecord[Any], spec: IdempotencySpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchRecordNode) -> "PendingRecordNode":
        record = fetch.record
        if record is None:
            raise NodeError("No record")
        if record.owner != fetch.spec.owner:
            raise NodeError("Foreign record")
        if not record.is_pending:
            raise NodeError("Not pending")
        return cls(record, fetch.spec)


@G.node
class NoRecordNode:
    def __init__(self, spec: IdempotencySpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchRecordNode) -> "NoRecordNode":
        if fetch.store_error is not None:
            raise NodeError("Store error")
        if fetch.record is not None:
            raise NodeError("Record exists")
        return cls(fetch.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeOk:
    value: Any
    replayed: bool
    key: str


@dataclass(frozen=True)
class OutcomeError:
    kind: IdempotencyErrorKind
    message: str
    original_error: Any | None


type Outcome = OutcomeOk | OutcomeError


def _store_failure(err: StoreError) -> OutcomeError:
    return OutcomeError(
        kind=IdempotencyErrorKind.STORE_ERROR,
        message=err.message,
        original_error=err.cause,
    )


def _owner_mismatch(spec: IdempotencySpec) -> OutcomeError:
    return OutcomeError(
        kind=IdempotencyErrorKind.OWNER_MISMATCH,
        message=f"Key {spec.key} is claimed by another owner",
        original_error=None,
    )


async def _execute_claimed(spec: IdempotencySpec) -> Outcome:
    """Run the operation under an already claimed key and record its result."""
    try:
        result = await spec.operation()
    except Exception as e:
        await spec.store.delete(spec.key)
        return OutcomeError(
            kind=IdempotencyErrorKind.EXECUTION,
            message=str(e),
            original_error=e,
        )

    match result:
        case Ok(value):
            match await spec.store.set_completed(spec.key, value, spec.policy.result_ttl):
                case Error(err):
                    return _store_failure(err)
                case Ok(_):
                    return OutcomeOk(value=value, replayed=False, key=spec.key)
        case Error(err):
            # Failures are not cached: the caller may retry with the same key.
            await spec.store.delete(spec.key)
            return OutcomeError(
                kind=IdempotencyErrorKind.EXECUTION,
                message="Operation returned Error",
                original_error=err,
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome — cases tried in definition order
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class IdempotencyOutcome:
    @case
    def store_error(cls, node: StoreErrorNode) -> Outcome:
        return _store_failure(node.error)

    @case
    def owner_mismatch(cls, node: ForeignRecordNode) -> Outcome:
        return _owner_mismatch(node.spec)

    @case
    def replay_completed(cls, node: CompletedRecordNode) -> Outcome:
        return OutcomeOk(value=node.record.value, replayed=True, key=node.spec.key)

    @case
    def pending_conflict(cls, node: PendingRecordNode) -> Outcome:
        if node.spec.policy.conflict_strategy != OnPending.FAIL:
            raise NodeError("Policy not FAIL")
        return OutcomeError(
            kind=IdempotencyErrorKind.CONFLICT,
            message=f"Pending conflict: {node.spec.key}",
            original_error=None,
        )

    @case
    async def pending_wait(cls, node: PendingRecordNode) -> Outcome:
        """Poll until the other run completes or gives up its claim."""
        spec = node.spec
        if spec.policy.conflict_strategy != OnPending.WAIT:
            raise NodeError("Policy not WAIT")

        timeout = spec.policy.pending_wait_timeout.total_seconds()
        interval = spec.policy.poll_interval.total_seconds()
        elapsed = 0.0

        while elapsed < timeout:
            await asyncio.sleep(interval)
            elapsed += interval

            match await spec.store.get(spec.key):
                case Error(err):
                    return _store_failure(err)
                case Ok(None):
                    # The other run failed and released the key; take it over.
                    return await _claim_and_execute(spec)
                case Ok(record) if record.owner != spec.owner:
                    return _owner_mismatch(spec)
                case Ok(record) if record.is_completed:
                    return OutcomeOk(value=record.value, replayed=True, key=spec.key)

        return OutcomeError(
            kind=IdempotencyErrorKind.TIMEOUT,
            message="Timeout waiting for pending operation",
            original_error=None,
        )

    @case
    async def execute_fresh(cls, node: NoRecordNode) -> Outcome:
        return await _claim_and_execute(node.spec)


async def _claim_and_execute(spec: IdempotencySpec) -> Outcome:
    match await spec.store.set_pending(spec.key, spec.owner, spec.policy.pending_ttl):
        case Error(err):
            return _store_failure(err)
        case Ok(True):
            return await _execute_claimed(spec)
        case Ok(False):
            pass

    # Lost the race for the claim. Report what the winner holds.
    match await spec.store.get(spec.key):
        case Ok(rec) if rec is not None and rec.owner != spec.owner:
            return _owner_mismatch(spec)
        case Ok(rec) if rec is not None and rec.is_completed:
            return OutcomeOk(value=rec.value, replayed=True, key=spec.key)
        case _:
            return OutcomeError(
                kind=IdempotencyErrorKind.CONFLICT,
                message="Race conflict",
                original_error=None,
            )


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    """Converts Outcome to typed Result."""

    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: IdempotencyOutcome) -> "FinalResultNode":
        return cls(outcome.value)

    def to_result(self) -> Result[IdempotencyResult[Any], IdempotencyError[Any]]:
        match self.outcome:
            case OutcomeOk(value=v, replayed=r, key=k):
                return Ok(IdempotencyResult(value=v, replayed=r, key=k))
            case OutcomeError(kind=kind, message=msg, original_error=orig):
                return Error(IdempotencyError(kind=kind, message=msg, original_error=orig))


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def run_idempotent(
    spec: IdempotencySpec,
) -> Result[IdempotencyResult[Any], IdempotencyError[Any]]:
    """Execute a guarded operation via the graph."""
    node = await G.run(FinalResultNode).inject(spec)
    return node.to_result()


__all__ = (
    "IdempotencySpec",
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    "SpecNode",
    "FetchRecordNode",
    "StoreErrorNode",
    "ForeignRecordNode",
    "CompletedRecordNode",
    "PendingRecordNode",
    "NoRecordNode",
    "IdempotencyOutcome",
    "FinalResultNode",
    "run_idempotent",
)
