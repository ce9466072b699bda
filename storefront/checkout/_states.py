"""
Pipeline states and the transitions allowed between them.

    AwaitingConfirmation → Verifying → Verified → Writing → Written → Clearing → Complete
                              │           │          │
                              └───────────┴──────────┴──→ Failed(reason)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from storefront.domain import Reason


class PipelineState(str, Enum):
    AWAITING_CONFIRMATION = "AwaitingConfirmation"
    VERIFYING = "Verifying"
    VERIFIED = "Verified"
    WRITING = "Writing"
    WRITTEN = "Written"
    CLEARING = "Clearing"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETE, PipelineState.FAILED)


S = PipelineState

TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    S.AWAITING_CONFIRMATION: frozenset({S.VERIFYING, S.FAILED}),
    S.VERIFYING: frozenset({S.VERIFIED, S.FAILED}),
    S.VERIFIED: frozenset({S.WRITING, S.FAILED}),
    S.WRITING: frozenset({S.WRITTEN, S.FAILED}),
    S.WRITTEN: frozenset({S.CLEARING}),
    S.CLEARING: frozenset({S.COMPLETE}),
    S.COMPLETE: frozenset(),
    S.FAILED: frozenset(),
}

# Failure reasons each state may end in.
FAILURE_REASONS: dict[PipelineState, frozenset[Reason]] = {
    S.AWAITING_CONFIRMATION: frozenset({
        Reason.DUPLICATE_PAYMENT,
        Reason.CHECKOUT_IN_PROGRESS,
        Reason.STORAGE_ERROR,
    }),
    S.VERIFYING: frozenset({
        Reason.PAYMENT_REJECTED,
        Reason.PAYMENT_MISMATCH,
        Reason.PAYMENT_GATEWAY_UNAVAILABLE,
    }),
    S.VERIFIED: frozenset({Reason.EMPTY_CART, Reason.STORAGE_ERROR}),
    S.WRITING: frozenset({
        Reason.AMOUNT_MISMATCH,
        Reason.STORAGE_ERROR,
        Reason.DUPLICATE_PAYMENT,
    }),
}


class IllegalTransition(Exception):
    def __init__(self, current: PipelineState, target: PipelineState) -> None:
        super().__init__(f"{current.value} → {target.value}")
        self.current = current
        self.target = target


@dataclass(slots=True)
class StateTrace:
    """
    The states one run passed through, in order.

    Note: advance() refuses anything TRANSITIONS does not list, so a trace
    is always a valid walk of the machine.
    """

    states: list[PipelineState] = field(
        default_factory=lambda: [PipelineState.AWAITING_CONFIRMATION]
    )
    reason: Reason | None = None

    @property
    def current(self) -> PipelineState:
        return self.states[-1]

    def advance(self, target: PipelineState) -> PipelineState:
        if target not in TRANSITIONS[self.current]:
            raise IllegalTransition(self.current, target)
        self.states.append(target)
        return target

    def fail(self, reason: Reason) -> PipelineState:
        if reason not in FAILURE_REASONS.get(self.current, frozenset()):
            raise IllegalTransition(self.current, PipelineState.FAILED)
        self.reason = reason
        return self.advance(PipelineState.FAILED)


__all__ = (
    "PipelineState",
    "TRANSITIONS",
    "FAILURE_REASONS",
    "IllegalTransition",
    "StateTrace",
)
