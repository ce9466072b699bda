"""
Saga types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Compensator — Undo Action
# ═══════════════════════════════════════════════════════════════════════════════

type Compensator[T] = Callable[[T], Awaitable[None]]
"""Receives the value the step produced and undoes its side effect."""

# ═══════════════════════════════════════════════════════════════════════════════
# SagaStep — Single Step with Compensation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    A single saga step: action + compensator.

    When action succeeds, compensator is recorded.
    If a later step fails, recorded compensators run in reverse.
    """

    name: str
    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None = None

    def then[U](self, f: Callable[[T], SagaExpr[U, E]]) -> Then[T, U, E]:
        """Chain another step after this one."""
        return Then(self, f)


# ═══════════════════════════════════════════════════════════════════════════════
# Then — Sequential Composition
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Then[T, U, E]:
    """
    Sequential composition (monadic bind).

    Note: inner may itself be a Then, so chains nest to any depth.
    """

    inner: SagaExpr[T, E]
    f: Callable[[T], SagaExpr[U, E]]

    def then[V](self, g: Callable[[U], SagaExpr[V, E]]) -> Then[U, V, E]:
        return Then(self, g)


type SagaExpr[T, E] = SagaStep[T, E] | Then[object, T, E]

# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    """Successful saga result with metadata."""

    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """Saga error with rollback status."""

    error: E
    step_failed: str
    steps_executed: int
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaExpr",
    "SagaResult",
    "SagaError",
)
