"""
Order Writer — order header and items in one transaction.

Idempotent on the gateway payment key: the unique payment_reference
column guarantees one order per payment, whichever writer gets there first.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront.db import OrderItemTable, OrderTable
from storefront.domain import (
    CartSnapshot,
    CheckoutError,
    CheckoutErrors,
    OrderId,
    OrderStatus,
    UserId,
    VerifiedPayment,
)
from storefront.log import get_logger

log = get_logger("writer")


def new_order_id() -> OrderId:
    return OrderId(f"ord_{uuid.uuid4().hex[:12]}")


class OrderWriter:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def write(
        self,
        user_id: UserId,
        payment: VerifiedPayment,
        display_name: str,
        snapshot: CartSnapshot,
    ) -> Result[OrderId, CheckoutError]:
        """
        Persist the order for a verified payment.

        Total is recomputed from the snapshot. The client's figure and the
        gateway's figure must both agree with it.
        """
        match await self._existing(user_id, payment.payment_key):
            case Error(e):
                return Error(e)
            case Ok(found) if found is not None:
                return Ok(found)

        if snapshot.is_empty:
            return Error(CheckoutErrors.empty_cart())
        if snapshot.total != payment.amount:
            return Error(CheckoutErrors.amount_mismatch(snapshot.total, payment.amount))

        order_id = new_order_id()
        try:
            async with self._session() as session, session.begin():
                session.add(OrderTable(
                    id=order_id.value,
                    user_id=user_id.value,
                    total_amount=snapshot.total,
                    status=OrderStatus.COMPLETED.value,
                    payment_method=payment.method,
                    order_name=display_name,
                    payment_reference=payment.payment_key,
                    gateway_order_id=payment.order_id,
                ))
                await session.flush()
                session.add_all(
                    OrderItemTable(
                        order_id=order_id.value,
                        product_id=line.product.id.value,
                        quantity=line.quantity,
                        price_at_purchase=line.product.price,
                    )
                    for line in snapshot.lines
                )
        except IntegrityError:
            # Lost the race on payment_reference. Resolve to the winner's order.
            log.info("order_reference_conflict", payment_key=payment.payment_key)
            match await self._existing(user_id, payment.payment_key):
                case Ok(found) if found is not None:
                    return Ok(found)
                case Error(e):
                    return Error(e)
                case _:
                    return Error(CheckoutErrors.storage("Order insert conflicted but no order found"))
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.storage(f"Order insert failed: {e}"))

        return Ok(order_id)

    async def find(self, payment_key: str) -> Result[tuple[OrderId, UserId] | None, CheckoutError]:
        """Order backed by this payment, with its owner."""
        try:
            async with self._session() as session:
                row = (
                    await session.execute(
                        select(OrderTable.id, OrderTable.user_id)
                        .where(OrderTable.payment_reference == payment_key)
                    )
                ).one_or_none()
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.storage(f"Order lookup failed: {e}"))
        if row is None:
            return Ok(None)
        return Ok((OrderId(row.id), UserId(row.user_id)))

    async def _existing(
        self, user_id: UserId, payment_key: str
    ) -> Result[OrderId | None, CheckoutError]:
        match await self.find(payment_key):
            case Error(e):
                return Error(e)
            case Ok(None):
                return Ok(None)
            case Ok((_, owner)) if owner != user_id:
                return Error(CheckoutErrors.duplicate_payment(payment_key))
            case Ok((order_id, _)):
                return Ok(order_id)


__all__ = ("OrderWriter", "new_order_id")
