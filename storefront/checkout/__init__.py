"""
Checkout — the order finalization pipeline.

    from storefront import checkout as C

    pipeline = C.CheckoutPipeline(
        verifier=C.PaymentVerifier(C.gateway_client(base_url, secret)),
        snapshots=C.SnapshotReader(session_factory),
        writer=C.OrderWriter(session_factory),
        clearer=C.CartClearer(session_factory),
        store=attempt_store(session_factory),
        settings=settings,
    )

    outcome = await pipeline.finalize(user_id, callback)
    if outcome.completed:
        ...

Components:
    PaymentVerifier  server-side confirm against the gateway
    SnapshotReader   cart lines + current prices, one read
    OrderWriter      order header + items, one transaction
    CartClearer      removes only what was bought
    CheckoutPipeline state machine, idempotency guard, compensation
"""

from storefront.checkout._states import (
    FAILURE_REASONS,
    TRANSITIONS,
    IllegalTransition,
    PipelineState,
    StateTrace,
)
from storefront.checkout._verifier import PaymentVerifier, gateway_client
from storefront.checkout._snapshot import SnapshotReader
from storefront.checkout._writer import OrderWriter, new_order_id
from storefront.checkout._clearer import CartClearer
from storefront.checkout._pipeline import (
    CheckoutOutcome,
    CheckoutPipeline,
    CompensationFailed,
    UserLocks,
)

__all__ = (
    # States
    "PipelineState",
    "StateTrace",
    "TRANSITIONS",
    "FAILURE_REASONS",
    "IllegalTransition",
    # Components
    "PaymentVerifier",
    "gateway_client",
    "SnapshotReader",
    "OrderWriter",
    "new_order_id",
    "CartClearer",
    # Orchestrator
    "CheckoutPipeline",
    "CheckoutOutcome",
    "CompensationFailed",
    "UserLocks",
)
