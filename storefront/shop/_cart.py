"""
Cart — one row per (user, product), quantity always >= 1.

Adding a product that is already in the cart increments its quantity
in a single upsert, so two concurrent adds never produce two rows.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront.db import CartItemTable, ProductTable, upsert_for
from storefront.domain import CartEntry, ProductId, ShopError, ShopErrors, UserId
from storefront.shop._catalog import to_product


def to_entry(row: CartItemTable) -> CartEntry:
    return CartEntry(id=row.id, product=to_product(row.product), quantity=row.quantity)


def _storage(e: Exception) -> ShopError:
    return ShopErrors.storage(f"Cart query failed: {e}")


class Cart:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def entries(self, user_id: UserId) -> Result[list[CartEntry], ShopError]:
        async def do_list() -> list[CartEntry]:
            async with self._session() as session:
                rows = (
                    await session.execute(
                        select(CartItemTable)
                        .options(joinedload(CartItemTable.product))
                        .where(CartItemTable.user_id == user_id.value)
                        .order_by(CartItemTable.id)
                    )
                ).scalars()
                return [to_entry(row) for row in rows]

        return await L.catching_async(do_list, on_error=_storage)

    async def add(
        self, user_id: UserId, product_id: ProductId, quantity: int = 1
    ) -> Result[CartEntry, ShopError]:
        """Insert the line or add `quantity` to the existing one."""
        if quantity < 1:
            return Error(ShopErrors.invalid("Quantity must be at least 1"))

        async def do_add() -> CartEntry | None:
            async with self._session() as session, session.begin():
                if await session.get(ProductTable, product_id.value) is None:
                    return None
                stmt = upsert_for(session, CartItemTable).values(
                    user_id=user_id.value,
                    product_id=product_id.value,
                    quantity=quantity,
                )
                await session.execute(
                    stmt.on_conflict_do_update(
                        index_elements=["user_id", "product_id"],
                        set_={"quantity": CartItemTable.quantity + stmt.excluded.quantity},
                    )
                )
                return await self._entry(session, user_id, product_id)

        match await L.catching_async(do_add, on_error=_storage):
            case Ok(None):
                return Error(ShopErrors.not_found("Product", product_id.value))
            case Ok(entry):
                return Ok(entry)
            case Error(e):
                return Error(e)

    async def set_quantity(
        self, user_id: UserId, product_id: ProductId, quantity: int
    ) -> Result[CartEntry | None, ShopError]:
        """Zero deletes the line and returns Ok(None)."""
        if quantity < 0:
            return Error(ShopErrors.invalid("Quantity cannot be negative"))

        owned = (
            CartItemTable.user_id == user_id.value,
            CartItemTable.product_id == product_id.value,
        )

        async def do_set() -> tuple[int, CartEntry | None]:
            async with self._session() as session, session.begin():
                if quantity == 0:
                    result = await session.execute(delete(CartItemTable).where(*owned))
                    return result.rowcount, None
                result = await session.execute(
                    update(CartItemTable).where(*owned).values(quantity=quantity)
                )
                if not result.rowcount:
                    return 0, None
                return result.rowcount, await self._entry(session, user_id, product_id)

        match await L.catching_async(do_set, on_error=_storage):
            case Ok((0, _)):
                return Error(ShopErrors.not_found("Cart item for product", product_id.value))
            case Ok((_, entry)):
                return Ok(entry)
            case Error(e):
                return Error(e)

    async def remove_items(
        self, user_id: UserId, item_ids: Sequence[int]
    ) -> Result[int, ShopError]:
        """Delete cart rows by id. Ids belonging to other users are ignored."""
        if not item_ids:
            return Error(ShopErrors.invalid("Invalid or empty itemIds array"))

        async def do_remove() -> int:
            async with self._session() as session, session.begin():
                result = await session.execute(
                    delete(CartItemTable).where(
                        CartItemTable.user_id == user_id.value,
                        CartItemTable.id.in_(list(item_ids)),
                    )
                )
                return result.rowcount

        return await L.catching_async(do_remove, on_error=_storage)

    async def clear(self, user_id: UserId) -> Result[int, ShopError]:
        async def do_clear() -> int:
            async with self._session() as session, session.begin():
                result = await session.execute(
                    delete(CartItemTable).where(CartItemTable.user_id == user_id.value)
                )
                return result.rowcount

        return await L.catching_async(do_clear, on_error=_storage)

    @staticmethod
    async def _entry(
        session: AsyncSession, user_id: UserId, product_id: ProductId
    ) -> CartEntry:
        row = (
            await session.execute(
                select(CartItemTable)
                .options(joinedload(CartItemTable.product))
                .where(
                    CartItemTable.user_id == user_id.value,
                    CartItemTable.product_id == product_id.value,
                )
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        return to_entry(row)


__all__ = ("Cart", "to_entry")
