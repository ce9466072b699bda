"""
Saga execution with automatic rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kungfu import Result, Ok, Error

from storefront.log import get_logger
from storefront.saga._types import (
    SagaStep,
    SagaExpr,
    SagaResult,
    SagaError,
    Then,
    Compensator,
)

log = get_logger("saga")

# ═══════════════════════════════════════════════════════════════════════════════
# Run State
# ═══════════════════════════════════════════════════════════════════════════════

type RecordedCompensator = tuple[str, Any, Compensator[Any]]


@dataclass(slots=True)
class _Progress:
    compensators: list[RecordedCompensator] = field(default_factory=list)
    steps: int = 0
    failed_at: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# Expression walk
# ═══════════════════════════════════════════════════════════════════════════════


async def _run_step[T, E](step: SagaStep[T, E], progress: _Progress) -> Result[T, E]:
    """Execute single step, recording compensator on success."""
    result = await step.action
    progress.steps += 1
    match result:
        case Ok(value):
            if step.compensate is not None:
                progress.compensators.append((step.name, value, step.compensate))
            return Ok(value)
        case Error(e):
            progress.failed_at = step.name
            return Error(e)


async def _run_expr(expr: SagaExpr[Any, Any], progress: _Progress) -> Result[Any, Any]:
    match expr:
        case SagaStep():
            return await _run_step(expr, progress)
        case Then(inner=inner, f=f):
            match await _run_expr(inner, progress):
                case Ok(value):
                    return await _run_expr(f(value), progress)
                case Error(e):
                    return Error(e)
    raise TypeError(f"Not a saga expression: {expr!r}")


# ═══════════════════════════════════════════════════════════════════════════════
# Rollback
# ═══════════════════════════════════════════════════════════════════════════════


async def run_compensators(compensators: list[RecordedCompensator]) -> tuple[int, int]:
    """Run compensators in reverse. Returns (run, failed)."""
    comp_run = 0
    comp_failed = 0

    for name, value, comp in reversed(compensators):
        try:
            await comp(value)
            comp_run += 1
        except Exception:
            comp_failed += 1
            log.exception("compensator_failed", step=name)

    return comp_run, comp_failed


# ═══════════════════════════════════════════════════════════════════════════════
# run()
# ═══════════════════════════════════════════════════════════════════════════════


async def run[T, E](saga: SagaExpr[T, E]) -> Result[SagaResult[T], SagaError[E]]:
    """
    Execute a saga with automatic rollback on failure.

    On success: returns SagaResult with value and metadata.
    On failure: runs recorded compensators in reverse, returns SagaError.

    Example:
        from storefront import saga as S

        match await S.run(flow):
            case Ok(r):
                order_id = r.value
            case Error(e):
                log.warning("saga_failed", step=e.step_failed)
    """
    progress = _Progress()

    match await _run_expr(saga, progress):
        case Ok(value):
            return Ok(SagaResult(
                value=value,
                steps_executed=progress.steps,
                compensators_recorded=len(progress.compensators),
            ))
        case Error(error):
            comp_run, comp_failed = await run_compensators(progress.compensators)
            return Error(SagaError(
                error=error,
                step_failed=progress.failed_at,
                steps_executed=progress.steps,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))


__all__ = ("run", "run_compensators")
