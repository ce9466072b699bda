"""
Storefront — catalog, carts and a verified checkout.

    storefront.domain        entities, reasons, error factories
    storefront.checkout      order finalisation pipeline
    storefront.shop          catalog, cart, order history, roles
    storefront.api           FastAPI application
    storefront.saga          compensated multi-step runs
    storefront.idempotency   at-most-once execution per key
"""

__version__ = "0.1.0"

__all__ = ("__version__",)
