"""
Saga — multi-step operations with compensation.

    from storefront import saga as S

    flow = S.step("charge", charge, refund).then(
        lambda receipt: S.step("ship", ship(receipt), cancel_shipment)
    )
    result = await S.run(flow)
"""

from __future__ import annotations

from storefront.saga._types import (
    Compensator,
    SagaStep,
    Then,
    SagaExpr,
    SagaResult,
    SagaError,
)
from storefront.saga._step import step, from_async
from storefront.saga._run import run
from storefront.saga import policy

__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaExpr",
    "SagaResult",
    "SagaError",
    "step",
    "from_async",
    "run",
    "policy",
)
