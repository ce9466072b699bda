"""
Idempotency types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E")


# ═══════════════════════════════════════════════════════════════════════════════
# Record State — Operation Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    """
    State of an idempotency record.

    Lifecycle:
        PENDING → COMPLETED (success)
                → (deleted on failure, so the caller may retry)
    """

    PENDING = auto()
    COMPLETED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Record — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyRecord(Generic[T]):
    """
    A stored idempotency record.

    owner: who claimed the key. A second caller presenting the same key
    under a different owner is a collision, never a replay.
    """

    key: str
    state: RecordState
    value: T | None
    owner: str
    expires_at: datetime | None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now() > self.expires_at

    @property
    def is_pending(self) -> bool:
        return self.state == RecordState.PENDING

    @property
    def is_completed(self) -> bool:
        return self.state == RecordState.COMPLETED


# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyResult(Generic[T]):
    """
    Successful guarded result.

    Note: replayed means the value came from an earlier run.
    """

    value: T
    replayed: bool
    key: str


class IdempotencyErrorKind(Enum):
    CONFLICT = auto()  # Another run holds the key (FAIL policy)
    TIMEOUT = auto()  # Waiting for the other run timed out
    STORE_ERROR = auto()  # Storage backend error
    EXECUTION = auto()  # Wrapped operation failed
    OWNER_MISMATCH = auto()  # Key already claimed by someone else


@dataclass(frozen=True, slots=True)
class IdempotencyError(Generic[E]):
    """
    Idempotency guard error.

    Note: original_error carries the wrapped operation's error for EXECUTION.
    """

    kind: IdempotencyErrorKind
    message: str
    original_error: E | None = None


__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
)
