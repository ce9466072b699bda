"""
Pipeline Orchestrator — confirm payment, write order, clear cart.

    finalize(user, callback)
         │
         ▼
    per-user lock → idempotency guard (checkout:{payment_key})
                         │
                         ▼
               saga: verify ─→ snapshot ─→ write
                       │ compensate: cancel payment
                         │
                         ▼
                    clear cart (never fatal)

Steps after verify compensate by cancelling the payment at the gateway,
unless an order already references it. A confirm the gateway accepted for
another amount is cancelled the same way.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from kungfu import Result, Ok, Error, LazyCoroResult

from storefront import idempotency as I
from storefront import saga as S
from storefront.checkout._clearer import CartClearer
from storefront.checkout._snapshot import SnapshotReader
from storefront.checkout._states import PipelineState, StateTrace
from storefront.checkout._verifier import PaymentVerifier
from storefront.checkout._writer import OrderWriter
from storefront.config import Settings
from storefront.domain import (
    CartSnapshot,
    CheckoutError,
    CheckoutErrors,
    OrderId,
    PaymentCallback,
    Reason,
    UserId,
    VerifiedPayment,
)
from storefront.log import get_logger

log = get_logger("checkout")


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutOutcome:
    state: PipelineState
    order_id: OrderId | None = None
    reason: Reason | None = None
    warnings: tuple[Reason, ...] = ()
    replayed: bool = False
    trace: tuple[PipelineState, ...] = ()

    @property
    def completed(self) -> bool:
        return self.state is PipelineState.COMPLETE


class CompensationFailed(Exception):
    def __init__(self, error: CheckoutError) -> None:
        super().__init__(error.message)
        self.error = error


# ═══════════════════════════════════════════════════════════════════════════════
# Per-user serialisation
# ═══════════════════════════════════════════════════════════════════════════════


class UserLocks:
    """One asyncio.Lock per user id, dropped when nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: UserId) -> AsyncIterator[None]:
        key = user_id.value
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


# ═══════════════════════════════════════════════════════════════════════════════
# Run context
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class _Run:
    user_id: UserId
    callback: PaymentCallback
    log: Any
    trace: StateTrace = field(default_factory=StateTrace)
    warnings: list[Reason] = field(default_factory=list)
    order_id: OrderId | None = None

    def advance(self, state: PipelineState) -> None:
        before = self.trace.current
        self.trace.advance(state)
        self.log.info("state_transition", source=before.value, target=state.value)

    def fail(self, error: CheckoutError) -> None:
        before = self.trace.current
        self.trace.fail(error.reason)
        self.log.warning(
            "state_transition",
            source=before.value,
            target=PipelineState.FAILED.value,
            reason=error.reason.value,
            detail=error.message,
        )

    def outcome(self) -> CheckoutOutcome:
        return CheckoutOutcome(
            state=self.trace.current,
            order_id=self.order_id,
            reason=self.trace.reason,
            warnings=tuple(self.warnings),
            trace=tuple(self.trace.states),
        )


@dataclass(frozen=True, slots=True)
class _Staged:
    payment: VerifiedPayment
    snapshot: CartSnapshot


# ═══════════════════════════════════════════════════════════════════════════════
# Pipeline
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutPipeline:
    def __init__(
        self,
        verifier: PaymentVerifier,
        snapshots: SnapshotReader,
        writer: OrderWriter,
        clearer: CartClearer,
        store: I.StoreAny,
        settings: Settings,
    ) -> None:
        self._verifier = verifier
        self._snapshots = snapshots
        self._writer = writer
        self._clearer = clearer
        self._store = store
        self._settings = settings
        self._locks = UserLocks()
        self._inflight: set[asyncio.Task[CheckoutOutcome]] = set()

        self._policy = (
            I.Policy()
            .with_ttl(seconds=settings.idempotency_ttl)
            .with_on_pending(I.WAIT)
            .with_wait_timeout(seconds=settings.pending_wait)
        )
        self._gateway_timeout = S.policy.timeout(
            lambda s: CheckoutErrors.gateway_unavailable(f"Gateway timed out after {s}s"),
            seconds=settings.gateway_timeout,
        )
        self._storage_timeout = S.policy.timeout(
            lambda s: CheckoutErrors.storage(f"Order write timed out after {s}s"),
            seconds=settings.storage_timeout,
        )

    async def finalize(self, user_id: UserId, callback: PaymentCallback) -> CheckoutOutcome:
        """
        Run the pipeline for one gateway callback.

        The run is shielded: a caller that disconnects does not stop a
        payment that is already being confirmed.
        """
        task = asyncio.ensure_future(self._guarded(user_id, callback))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for shielded runs whose callers went away."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ───────────────────────────────────────────────────────────────────────────

    async def _guarded(self, user_id: UserId, callback: PaymentCallback) -> CheckoutOutcome:
        run = _Run(
            user_id=user_id,
            callback=callback,
            log=log.bind(user_id=user_id.value, payment_key=callback.payment_key),
        )
        spec = I.IdempotencySpec(
            key=f"checkout:{callback.payment_key}",
            owner=user_id.value,
            operation=lambda: self._execute(run),
            store=self._store,
            policy=self._policy,
        )

        async with self._locks.hold(user_id):
            result = await I.run_idempotent(spec)

        match result:
            case Ok(done) if done.replayed:
                run.log.info("checkout_replayed", order_id=done.value)
                return CheckoutOutcome(
                    state=PipelineState.COMPLETE,
                    order_id=OrderId(done.value),
                    replayed=True,
                    trace=(PipelineState.COMPLETE,),
                )
            case Ok(_):
                return run.outcome()
            case Error(err):
                return self._guard_failure(run, err)

    def _guard_failure(self, run: _Run, err: I.IdempotencyError[Any]) -> CheckoutOutcome:
        if run.trace.current.is_terminal:
            # The run itself finished; only recording its result failed.
            if err.kind is not I.IdempotencyErrorKind.EXECUTION:
                run.log.warning("idempotency_record_failed", detail=err.message)
            return run.outcome()

        match err.kind:
            case I.IdempotencyErrorKind.EXECUTION if isinstance(err.original_error, CheckoutError):
                return run.outcome()
            case I.IdempotencyErrorKind.EXECUTION if isinstance(err.original_error, BaseException):
                raise err.original_error
            case I.IdempotencyErrorKind.OWNER_MISMATCH:
                run.fail(CheckoutErrors.duplicate_payment(run.callback.payment_key))
            case I.IdempotencyErrorKind.CONFLICT | I.IdempotencyErrorKind.TIMEOUT:
                run.fail(CheckoutErrors.in_progress(run.callback.payment_key))
            case _:
                run.fail(CheckoutErrors.storage(err.message))
        return run.outcome()

    async def _execute(self, run: _Run) -> Result[str, CheckoutError]:
        """Guarded body. Returns the order id as the stored idempotent value."""
        run.advance(PipelineState.VERIFYING)

        match await S.run(self._saga(run)):
            case Error(failure):
                if failure.compensators_run:
                    run.log.info("payment_compensated", step=failure.step_failed)
                if not failure.rollback_complete:
                    run.log.error("payment_compensation_failed", step=failure.step_failed)
                run.fail(failure.error)
                return Error(failure.error)
            case Ok(done):
                run.order_id, staged = done.value

        run.advance(PipelineState.WRITTEN)
        run.log.info("order_written", order_id=run.order_id.value, total=str(staged.snapshot.total))

        run.advance(PipelineState.CLEARING)
        await self._clear(run, staged.snapshot)
        run.advance(PipelineState.COMPLETE)
        return Ok(run.order_id.value)

    def _saga(self, run: _Run) -> S.SagaExpr[tuple[OrderId, _Staged], CheckoutError]:
        compensate = self._compensator(run) if self._settings.cancel_on_failure else None

        def retry_logged(e: CheckoutError) -> bool:
            if e.is_transient:
                run.log.warning("step_retry", reason=e.reason.value, detail=e.message)
            return e.is_transient

        retry = S.policy.retry(
            max(self._settings.retry_times, 1),
            delay_seconds=self._settings.retry_delay,
            retry_on=retry_logged,
        )

        return (
            S.step(
                "verify",
                LazyCoroResult(lambda: self._verify(run)),
                compensate=compensate,
                retry=retry,
                timeout=self._gateway_timeout,
            )
            .then(lambda payment: S.step(
                "snapshot",
                LazyCoroResult(lambda: self._stage(run, payment)),
            ))
            .then(lambda staged: S.step(
                "write",
                LazyCoroResult(lambda: self._write(run, staged)),
                retry=retry,
                timeout=self._storage_timeout,
            ))
        )

    async def _stage(self, run: _Run, payment: VerifiedPayment) -> Result[_Staged, CheckoutError]:
        run.advance(PipelineState.VERIFIED)
        match await self._snapshots.read(run.user_id):
            case Error(e):
                return Error(e)
            case Ok(snapshot) if snapshot.is_empty:
                return Error(CheckoutErrors.empty_cart())
            case Ok(snapshot):
                run.advance(PipelineState.WRITING)
                return Ok(_Staged(payment, snapshot))

    async def _write(
        self, run: _Run, staged: _Staged
    ) -> Result[tuple[OrderId, _Staged], CheckoutError]:
        display_name = staged.payment.order_name or staged.snapshot.display_name()
        result = await self._writer.write(run.user_id, staged.payment, display_name, staged.snapshot)
        return result.map(lambda order_id: (order_id, staged))

    async def _verify(self, run: _Run) -> Result[VerifiedPayment, CheckoutError]:
        """
        Confirm the payment. A mismatch is reported after the gateway has
        accepted the confirm, so the captured payment is cancelled here.
        """
        result = await self._verifier.confirm(run.callback)
        match result:
            case Error(e) if e.reason is Reason.PAYMENT_MISMATCH and self._settings.cancel_on_failure:
                try:
                    await self._cancel_payment(run, run.callback.payment_key)
                except CompensationFailed as failed:
                    run.log.error("payment_compensation_failed", step="verify", detail=failed.error.message)
        return result

    def _compensator(self, run: _Run) -> S.Compensator[VerifiedPayment]:
        async def cancel_payment(payment: VerifiedPayment) -> None:
            await self._cancel_payment(run, payment.payment_key)

        return cancel_payment

    async def _cancel_payment(self, run: _Run, payment_key: str) -> None:
        """Cancel at the gateway unless an order already references the payment."""
        match await self._writer.find(payment_key):
            case Ok(found) if found is not None:
                run.log.warning("compensation_skipped", order_id=found[0].value)
                return
            case Error(e):
                raise CompensationFailed(e)
            case _:
                pass

        reason = f"Checkout aborted at {run.trace.current.value}"
        match await self._verifier.cancel(payment_key, reason):
            case Error(e):
                raise CompensationFailed(e)
            case Ok(_):
                run.log.info("payment_cancelled")

    async def _clear(self, run: _Run, snapshot: CartSnapshot) -> None:
        try:
            result = await self._clearer.clear(run.user_id, snapshot.lines)
        except Exception as e:
            result = Error(CheckoutErrors.partial_cleanup(f"Cart cleanup raised: {e!r}"))

        match result:
            case Ok(count):
                run.log.info("cart_cleared", lines=count)
            case Error(e):
                run.warnings.append(Reason.PARTIAL_CLEANUP)
                run.log.warning("partial_cleanup", detail=e.message)


__all__ = (
    "CheckoutOutcome",
    "CheckoutPipeline",
    "CompensationFailed",
    "UserLocks",
)
