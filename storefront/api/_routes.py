"""
HTTP routes — thin handlers over shop operations and the checkout pipeline.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from storefront.api._deps import ServicesDep, UserDep, ok_or_raise
from storefront.api._schemas import (
    CartAddIn,
    CartEntryOut,
    CartQuantityIn,
    DeletedOut,
    DeleteSelectedIn,
    FinalizeIn,
    FinalizeOut,
    OrderOut,
    ProductIn,
    ProductOut,
    SetRoleIn,
    UserOut,
)
from storefront.domain import ProductId, Reason, UserId

router = APIRouter()


# Reasons not listed here are 503: the caller may retry with the same payment key.
CHECKOUT_STATUS: dict[Reason, int] = {
    Reason.PAYMENT_REJECTED: status.HTTP_402_PAYMENT_REQUIRED,
    Reason.PAYMENT_MISMATCH: status.HTTP_409_CONFLICT,
    Reason.AMOUNT_MISMATCH: status.HTTP_409_CONFLICT,
    Reason.EMPTY_CART: status.HTTP_409_CONFLICT,
    Reason.DUPLICATE_PAYMENT: status.HTTP_409_CONFLICT,
    Reason.CHECKOUT_IN_PROGRESS: status.HTTP_409_CONFLICT,
}


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# ═══════════════════════════════════════════════════════════════════════════════
# Products
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/api/products")
async def list_products(services: ServicesDep) -> list[ProductOut]:
    products = ok_or_raise(await services.catalog.list_all())
    return [ProductOut.from_domain(p) for p in products]


@router.get("/api/products/{product_id}")
async def get_product(product_id: int, services: ServicesDep) -> ProductOut:
    return ProductOut.from_domain(ok_or_raise(await services.catalog.get(ProductId(product_id))))


@router.post("/api/products", status_code=status.HTTP_201_CREATED)
async def create_product(body: ProductIn, user: UserDep, services: ServicesDep) -> ProductOut:
    created = ok_or_raise(await services.catalog.create(user, body.to_domain()))
    return ProductOut.from_domain(created)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/api/cart")
async def get_cart(user: UserDep, services: ServicesDep) -> list[CartEntryOut]:
    entries = ok_or_raise(await services.cart.entries(user.id))
    return [CartEntryOut.from_domain(e) for e in entries]


@router.post("/api/cart", status_code=status.HTTP_201_CREATED)
async def add_to_cart(body: CartAddIn, user: UserDep, services: ServicesDep) -> CartEntryOut:
    entry = ok_or_raise(
        await services.cart.add(user.id, ProductId(body.product_id), body.quantity)
    )
    return CartEntryOut.from_domain(entry)


@router.patch("/api/cart/{product_id}")
async def set_cart_quantity(
    product_id: int, body: CartQuantityIn, user: UserDep, services: ServicesDep
) -> CartEntryOut | None:
    entry = ok_or_raise(
        await services.cart.set_quantity(user.id, ProductId(product_id), body.quantity)
    )
    return CartEntryOut.from_domain(entry) if entry else None


@router.post("/api/cart/delete-selected")
async def delete_selected(
    body: DeleteSelectedIn, user: UserDep, services: ServicesDep
) -> DeletedOut:
    return DeletedOut(deleted=ok_or_raise(await services.cart.remove_items(user.id, body.item_ids)))


@router.delete("/api/cart/clear")
async def clear_cart(user: UserDep, services: ServicesDep) -> DeletedOut:
    return DeletedOut(deleted=ok_or_raise(await services.cart.clear(user.id)))


# ═══════════════════════════════════════════════════════════════════════════════
# Orders & Checkout
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/api/orders")
async def list_orders(user: UserDep, services: ServicesDep) -> list[OrderOut]:
    orders = ok_or_raise(await services.orders.for_user(user.id))
    return [OrderOut.from_domain(o) for o in orders]


@router.post("/api/checkout/finalize")
async def finalize_checkout(
    body: FinalizeIn, user: UserDep, services: ServicesDep
) -> JSONResponse:
    outcome = await services.pipeline.finalize(user.id, body.to_domain())
    out = FinalizeOut.from_domain(outcome)

    code = status.HTTP_200_OK
    if not outcome.completed and outcome.reason is not None:
        code = CHECKOUT_STATUS.get(outcome.reason, status.HTTP_503_SERVICE_UNAVAILABLE)

    return JSONResponse(
        status_code=code,
        content=out.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════════


@router.post("/api/admin/set-role")
async def set_role(body: SetRoleIn, user: UserDep, services: ServicesDep) -> UserOut:
    updated = ok_or_raise(await services.users.set_role(user, UserId(body.user_id), body.role))
    return UserOut.from_domain(updated)


__all__ = ("router", "CHECKOUT_STATUS")
