"""
Idempotency store — typed storage protocol.

Store[T] stores records with typed value T.
All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Any, Generic, TypeVar

from kungfu import Result, Ok, Error

from storefront.idempotency._types import RecordState, IdempotencyRecord


T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol — Typed, Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class Store(Protocol[T]):
    """
    Typed idempotency store protocol.

    Note: set_pending must be an atomic compare-and-swap. It is the only
    thing standing between two concurrent runs of the same key.
    """

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        """Get live record. Expired records read as Ok(None)."""
        ...

    async def set_pending(
        self,
        key: str,
        owner: str,
        ttl: timedelta | None,
    ) -> Result[bool, StoreError]:
        """Claim key. Ok(True) if claimed, Ok(False) if a live record exists."""
        ...

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        ...

    async def delete(self, key: str) -> Result[bool, StoreError]:
        """Delete record. Returns Ok(True) if existed."""
        ...


type StoreAny = Store[Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — single process
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _StoredRecord(Generic[T]):
    key: str
    state: RecordState
    value: T | None
    owner: str
    expires_at: datetime | None

    def to_record(self) -> IdempotencyRecord[T]:
        return IdempotencyRecord(
            key=self.key,
            state=self.state,
            value=self.value,
            owner=self.owner,
            expires_at=self.expires_at,
        )

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and datetime.now() > self.expires_at


class MemoryStore(Generic[T]):
    """
    In-memory idempotency store.

    Note: single instance only. Records do not survive a restart.
    """

    def __init__(self) -> None:
        self._records: dict[str, _StoredRecord[T]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Ok(None)
            if record.is_expired:
                del self._records[key]
                return Ok(None)
            return Ok(record.to_record())

    async def set_pending(
        self,
        key: str,
        owner: str,
        ttl: timedelta | None,
    ) -> Result[bool, StoreError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is not None and not existing.is_expired:
                return Ok(False)

            self._records[key] = _StoredRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                owner=owner,
                expires_at=datetime.now() + ttl if ttl else None,
            )
            return Ok(True)

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return Error(StoreError(f"No pending record for key: {key}"))

            existing.state = RecordState.COMPLETED
            existing.value = value
            existing.expires_at = datetime.now() + ttl if ttl else None
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)


__all__ = (
    "StoreError",
    "Store",
    "StoreAny",
    "MemoryStore",
)
