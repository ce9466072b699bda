"""
Domain — storefront entities, checkout values and error taxonomy.

Money is always Decimal. Prices are copied into order items at purchase
time, never re-read afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# IDs
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class UserId:
    value: str


@dataclass(frozen=True, slots=True)
class ProductId:
    value: int


@dataclass(frozen=True, slots=True)
class OrderId:
    value: str


# ═══════════════════════════════════════════════════════════════════════════════
# Users & Catalog
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class User:
    id: UserId
    email: str
    roles: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class Product:
    id: ProductId
    name: str
    description: str | None
    price: Decimal
    image_url: str | None
    user_id: UserId | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class NewProduct:
    name: str
    price: Decimal
    description: str | None = None
    image_url: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartEntry:
    """A cart row as shown to the user."""

    id: int
    product: Product
    quantity: int


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    """Product fields frozen at snapshot time."""

    id: ProductId
    name: str
    price: Decimal


@dataclass(frozen=True, slots=True)
class CartLine:
    product: ProductSnapshot
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """
    Cart contents and prices read at a single instant.

    Note: total is derived from lines, never supplied by the client.
    """

    user_id: UserId
    lines: tuple[CartLine, ...]

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def product_ids(self) -> tuple[ProductId, ...]:
        return tuple(line.product.id for line in self.lines)

    def display_name(self) -> str:
        """'Keyboard' or 'Keyboard and 2 more'."""
        if not self.lines:
            return ""
        first = self.lines[0].product.name
        rest = len(self.lines) - 1
        return first if rest == 0 else f"{first} and {rest} more"


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class OrderItem:
    product_id: ProductId
    product_name: str | None
    quantity: int
    price_at_purchase: Decimal
    image_url: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.price_at_purchase * self.quantity


@dataclass(frozen=True, slots=True)
class Order:
    id: OrderId
    user_id: UserId
    created_at: datetime
    total_amount: Decimal
    status: OrderStatus
    payment_method: str
    order_name: str
    payment_reference: str
    items: tuple[OrderItem, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PaymentCallback:
    """Parameters the gateway hands back to the client after redirect."""

    payment_key: str
    order_id: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class VerifiedPayment:
    """Authoritative transaction record returned by the gateway."""

    payment_key: str
    order_id: str
    amount: Decimal
    method: str
    order_name: str | None
    transaction_id: str | None


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class Reason(str, Enum):
    """Stable reason codes surfaced to callers."""

    PAYMENT_REJECTED = "PaymentRejected"
    PAYMENT_MISMATCH = "PaymentMismatch"
    PAYMENT_GATEWAY_UNAVAILABLE = "PaymentGatewayUnavailable"
    EMPTY_CART = "EmptyCart"
    AMOUNT_MISMATCH = "AmountMismatch"
    STORAGE_ERROR = "StorageError"
    DUPLICATE_PAYMENT = "DuplicatePayment"
    PARTIAL_CLEANUP = "PartialCleanup"
    CHECKOUT_IN_PROGRESS = "CheckoutInProgress"


TRANSIENT_REASONS = frozenset({
    Reason.PAYMENT_GATEWAY_UNAVAILABLE,
    Reason.STORAGE_ERROR,
})


@dataclass(frozen=True, slots=True)
class CheckoutError:
    """
    Checkout pipeline error.

    Note: message is for logs only. Callers only ever see `reason`.
    """

    reason: Reason
    message: str
    detail: dict[str, str] = field(default_factory=dict)

    @property
    def is_transient(self) -> bool:
        return self.reason in TRANSIENT_REASONS


class CheckoutErrors:
    @staticmethod
    def payment_rejected(msg: str, code: str | None = None) -> CheckoutError:
        detail = {"gateway_code": code} if code else {}
        return CheckoutError(Reason.PAYMENT_REJECTED, msg, detail)

    @staticmethod
    def payment_mismatch(claimed: Decimal, confirmed: Decimal) -> CheckoutError:
        return CheckoutError(
            Reason.PAYMENT_MISMATCH,
            f"Gateway confirmed {confirmed}, client claimed {claimed}",
        )

    @staticmethod
    def gateway_unavailable(msg: str) -> CheckoutError:
        return CheckoutError(Reason.PAYMENT_GATEWAY_UNAVAILABLE, msg)

    @staticmethod
    def empty_cart() -> CheckoutError:
        return CheckoutError(Reason.EMPTY_CART, "Cart is empty")

    @staticmethod
    def amount_mismatch(expected: Decimal, verified: Decimal) -> CheckoutError:
        return CheckoutError(
            Reason.AMOUNT_MISMATCH,
            f"Cart total {expected} does not match verified amount {verified}",
        )

    @staticmethod
    def storage(msg: str) -> CheckoutError:
        return CheckoutError(Reason.STORAGE_ERROR, msg)

    @staticmethod
    def duplicate_payment(payment_key: str) -> CheckoutError:
        return CheckoutError(
            Reason.DUPLICATE_PAYMENT,
            f"Payment {payment_key} already belongs to another order",
        )

    @staticmethod
    def partial_cleanup(msg: str) -> CheckoutError:
        return CheckoutError(Reason.PARTIAL_CLEANUP, msg)

    @staticmethod
    def in_progress(payment_key: str) -> CheckoutError:
        return CheckoutError(
            Reason.CHECKOUT_IN_PROGRESS,
            f"Checkout for {payment_key} is still running",
        )


@dataclass(frozen=True, slots=True)
class ShopError:
    """Error from the plain storefront operations (catalog, cart, orders)."""

    code: str
    message: str


class ShopErrors:
    NOT_FOUND = "NOT_FOUND"
    INVALID = "INVALID_REQUEST"
    FORBIDDEN = "FORBIDDEN"
    STORAGE = "STORAGE_ERROR"

    @staticmethod
    def not_found(entity: str, id: object) -> ShopError:
        return ShopError(ShopErrors.NOT_FOUND, f"{entity} {id} not found")

    @staticmethod
    def invalid(msg: str) -> ShopError:
        return ShopError(ShopErrors.INVALID, msg)

    @staticmethod
    def forbidden(msg: str) -> ShopError:
        return ShopError(ShopErrors.FORBIDDEN, msg)

    @staticmethod
    def storage(msg: str) -> ShopError:
        return ShopError(ShopErrors.STORAGE, msg)


__all__ = (
    "UserId",
    "ProductId",
    "OrderId",
    "User",
    "Product",
    "NewProduct",
    "CartEntry",
    "ProductSnapshot",
    "CartLine",
    "CartSnapshot",
    "OrderStatus",
    "OrderItem",
    "Order",
    "PaymentCallback",
    "VerifiedPayment",
    "Reason",
    "TRANSIENT_REASONS",
    "CheckoutError",
    "CheckoutErrors",
    "ShopError",
    "ShopErrors",
)
