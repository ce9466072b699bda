"""
Shop — catalog, cart, order history and user roles.

Every operation returns Result[T, ShopError]; database exceptions are
lifted into ShopErrors.STORAGE.

    from storefront import shop

    cart = shop.Cart(session_factory)
    match await cart.add(user.id, ProductId(3), quantity=2):
        case Ok(entry): ...
        case Error(e): ...
"""

from storefront.shop._catalog import Catalog, to_product
from storefront.shop._cart import Cart, to_entry
from storefront.shop._orders import OrderHistory, to_order
from storefront.shop._users import Users

__all__ = (
    "Catalog",
    "Cart",
    "OrderHistory",
    "Users",
    "to_product",
    "to_entry",
    "to_order",
)
