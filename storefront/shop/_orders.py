"""
Order history — a user's orders with their items, newest first.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from kungfu import Result
from combinators import lift as L

from storefront.db import OrderItemTable, OrderTable
from storefront.domain import (
    Order,
    OrderId,
    OrderItem,
    OrderStatus,
    ProductId,
    ShopError,
    ShopErrors,
    UserId,
)


def to_order(row: OrderTable) -> Order:
    return Order(
        id=OrderId(row.id),
        user_id=UserId(row.user_id),
        created_at=row.created_at,
        total_amount=row.total_amount,
        status=OrderStatus(row.status),
        payment_method=row.payment_method,
        order_name=row.order_name,
        payment_reference=row.payment_reference,
        items=tuple(
            OrderItem(
                product_id=ProductId(item.product_id),
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                price_at_purchase=item.price_at_purchase,
                image_url=item.product.image_url if item.product else None,
            )
            for item in row.items
        ),
    )


class OrderHistory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def for_user(self, user_id: UserId) -> Result[list[Order], ShopError]:
        async def do_list() -> list[Order]:
            async with self._session() as session:
                rows = (
                    await session.execute(
                        select(OrderTable)
                        .options(
                            selectinload(OrderTable.items).selectinload(OrderItemTable.product)
                        )
                        .where(OrderTable.user_id == user_id.value)
                        .order_by(OrderTable.created_at.desc(), OrderTable.id)
                    )
                ).scalars()
                return [to_order(row) for row in rows]

        return await L.catching_async(
            do_list,
            on_error=lambda e: ShopErrors.storage(f"Order history failed: {e}"),
        )


__all__ = ("OrderHistory", "to_order")
