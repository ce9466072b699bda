"""
Wire schemas — pydantic models at the HTTP edge.

Requests convert with `to_domain()`, responses build with `from_domain()`.
Field names follow the JSON the storefront frontend already sends.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from storefront.checkout import CheckoutOutcome
from storefront.domain import (
    CartEntry,
    NewProduct,
    Order,
    OrderItem,
    PaymentCallback,
    Product,
    User,
)


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Products
# ═══════════════════════════════════════════════════════════════════════════════


class ProductIn(_Wire):
    name: str
    price: Decimal
    description: str | None = None
    image_url: str | None = None

    def to_domain(self) -> NewProduct:
        return NewProduct(
            name=self.name,
            price=self.price,
            description=self.description,
            image_url=self.image_url,
        )


class ProductOut(_Wire):
    id: int
    name: str
    description: str | None
    price: Decimal
    image_url: str | None
    user_id: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, p: Product) -> ProductOut:
        return cls(
            id=p.id.value,
            name=p.name,
            description=p.description,
            price=p.price,
            image_url=p.image_url,
            user_id=p.user_id.value if p.user_id else None,
            created_at=p.created_at,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartAddIn(_Wire):
    product_id: int
    quantity: int = 1


class CartQuantityIn(_Wire):
    quantity: int


class DeleteSelectedIn(_Wire):
    item_ids: list[int] = Field(alias="itemIds")


class CartEntryOut(_Wire):
    id: int
    quantity: int
    product: ProductOut

    @classmethod
    def from_domain(cls, e: CartEntry) -> CartEntryOut:
        return cls(id=e.id, quantity=e.quantity, product=ProductOut.from_domain(e.product))


class DeletedOut(_Wire):
    deleted: int


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderItemOut(_Wire):
    product_id: int
    product_name: str | None
    quantity: int
    price_at_purchase: Decimal
    image_url: str | None
    @classmethod
    def from_domain(cls, i: OrderItem) -> OrderItemOut:
        return cls(
            product_id=i.product_id.value,
            product_name=i.product_name,
            quantity=i.quantity,
            price_at_purchase=i.price_at_purchase,
            image_url=i.image_url,
        )


class OrderOut(_Wire):
    id: str
    created_at: datetime
    total_amount: Decimal
    status: str
    payment_method: str
    order_name: str
    order_items: list[OrderItemOut]

    @classmethod
    def from_domain(cls, o: Order) -> OrderOut:
        return cls(
            id=o.id.value,
            created_at=o.created_at,
            total_amount=o.total_amount,
            status=o.status.value,
            payment_method=o.payment_method,
            order_name=o.order_name,
            order_items=[OrderItemOut.from_domain(i) for i in o.items],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


class FinalizeIn(_Wire):
    """Query parameters the gateway appended to the success redirect."""

    payment_key: str = Field(alias="paymentKey", min_length=1)
    order_id: str = Field(alias="orderId", min_length=1)
    amount: Decimal = Field(gt=0)

    def to_domain(self) -> PaymentCallback:
        return PaymentCallback(
            payment_key=self.payment_key,
            order_id=self.order_id,
            amount=self.amount,
        )


class FinalizeOut(_Wire):
    status: str
    order_id: str | None = Field(default=None, serialization_alias="orderId")
    reason: str | None = None
    replayed: bool = False
    warnings: list[str] = []

    @classmethod
    def from_domain(cls, outcome: CheckoutOutcome) -> FinalizeOut:
        if outcome.completed:
            return cls(
                status="completed",
                order_id=outcome.order_id.value if outcome.order_id else None,
                replayed=outcome.replayed,
                warnings=[w.value for w in outcome.warnings],
            )
        return cls(
            status="failed",
            reason=outcome.reason.value if outcome.reason else None,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════════


class SetRoleIn(_Wire):
    user_id: str = Field(alias="userId")
    role: str


class UserOut(_Wire):
    id: str
    email: str
    roles: list[str]

    @classmethod
    def from_domain(cls, u: User) -> UserOut:
        return cls(id=u.id.value, email=u.email, roles=sorted(u.roles))


class ErrorOut(_Wire):
    error: str
    code: str


__all__ = (
    "ProductIn",
    "ProductOut",
    "CartAddIn",
    "CartQuantityIn",
    "DeleteSelectedIn",
    "CartEntryOut",
    "DeletedOut",
    "OrderItemOut",
    "OrderOut",
    "FinalizeIn",
    "FinalizeOut",
    "SetRoleIn",
    "UserOut",
    "ErrorOut",
)
