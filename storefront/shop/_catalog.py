"""
Catalog — product listing and admin-only creation.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront.capabilities import Capability, has_capability
from storefront.db import ProductTable
from storefront.domain import (
    NewProduct,
    Product,
    ProductId,
    ShopError,
    ShopErrors,
    User,
    UserId,
)


def to_product(row: ProductTable) -> Product:
    return Product(
        id=ProductId(row.id),
        name=row.name,
        description=row.description,
        price=row.price,
        image_url=row.image_url,
        user_id=UserId(row.user_id) if row.user_id else None,
        created_at=row.created_at,
    )


def _storage(e: Exception) -> ShopError:
    return ShopErrors.storage(f"Catalog query failed: {e}")


class Catalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def list_all(self) -> Result[list[Product], ShopError]:
        async def do_list() -> list[Product]:
            async with self._session() as session:
                rows = (
                    await session.execute(select(ProductTable).order_by(ProductTable.id))
                ).scalars()
                return [to_product(row) for row in rows]

        return await L.catching_async(do_list, on_error=_storage)

    async def get(self, product_id: ProductId) -> Result[Product, ShopError]:
        async def do_get() -> ProductTable | None:
            async with self._session() as session:
                return await session.get(ProductTable, product_id.value)

        match await L.catching_async(do_get, on_error=_storage):
            case Ok(None):
                return Error(ShopErrors.not_found("Product", product_id.value))
            case Ok(row):
                return Ok(to_product(row))
            case Error(e):
                return Error(e)

    async def create(self, actor: User, product: NewProduct) -> Result[Product, ShopError]:
        """Requires MANAGE_PRODUCTS. The actor becomes the product's owner."""
        if not has_capability(actor, Capability.MANAGE_PRODUCTS):
            return Error(ShopErrors.forbidden("Creating products requires manage_products"))
        if not product.name.strip():
            return Error(ShopErrors.invalid("Name and price are required"))
        if product.price <= Decimal("0"):
            return Error(ShopErrors.invalid("Price must be positive"))

        async def do_create() -> Product:
            async with self._session() as session, session.begin():
                row = ProductTable(
                    name=product.name.strip(),
                    description=product.description,
                    price=product.price,
                    image_url=product.image_url,
                    user_id=actor.id.value,
                )
                session.add(row)
                await session.flush()
                return to_product(row)

        return await L.catching_async(do_create, on_error=_storage)


__all__ = ("Catalog", "to_product")
