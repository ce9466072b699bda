"""
Cart Snapshot Reader — cart lines and current prices in one SELECT.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront.db import CartItemTable, ProductTable
from storefront.domain import (
    CartLine,
    CartSnapshot,
    CheckoutError,
    CheckoutErrors,
    ProductId,
    ProductSnapshot,
    UserId,
)


class SnapshotReader:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def read(self, user_id: UserId) -> Result[CartSnapshot, CheckoutError]:
        """Empty cart gives an empty snapshot, not an error."""
        stmt = (
            select(CartItemTable.quantity, ProductTable.id, ProductTable.name, ProductTable.price)
            .join(ProductTable, ProductTable.id == CartItemTable.product_id)
            .where(CartItemTable.user_id == user_id.value)
            .order_by(CartItemTable.id)
        )
        try:
            async with self._session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.storage(f"Cart snapshot failed: {e}"))

        return Ok(CartSnapshot(
            user_id=user_id,
            lines=tuple(
                CartLine(
                    product=ProductSnapshot(id=ProductId(pid), name=name, price=price),
                    quantity=quantity,
                )
                for quantity, pid, name, price in rows
            ),
        ))


__all__ = ("SnapshotReader",)
