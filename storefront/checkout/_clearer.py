"""
Cart Clearer — remove exactly what was bought.

Lines added after the snapshot survive. A line whose quantity grew after
the snapshot keeps the difference.
"""

from __future__ import annotations

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront.db import CartItemTable
from storefront.domain import CartLine, CheckoutError, CheckoutErrors, UserId


class CartClearer:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def clear(
        self, user_id: UserId, lines: tuple[CartLine, ...]
    ) -> Result[int, CheckoutError]:
        """Returns the number of lines deleted or reduced."""
        touched = 0
        try:
            async with self._session() as session, session.begin():
                for line in lines:
                    owned = (
                        CartItemTable.user_id == user_id.value,
                        CartItemTable.product_id == line.product.id.value,
                    )
                    removed = await session.execute(
                        delete(CartItemTable).where(
                            *owned, CartItemTable.quantity <= line.quantity
                        )
                    )
                    reduced = await session.execute(
                        update(CartItemTable)
                        .where(*owned, CartItemTable.quantity > line.quantity)
                        .values(quantity=CartItemTable.quantity - line.quantity)
                    )
                    touched += removed.rowcount + reduced.rowcount
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.partial_cleanup(f"Cart cleanup failed: {e}"))
        return Ok(touched)


__all__ = ("CartClearer",)
