"""
API — FastAPI application factory.

    from storefront.api import create_app
    from storefront.config import Settings

    app = create_app(Settings.from_env())

Run with any ASGI server, e.g. `uvicorn --factory storefront.api:app_from_env`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from storefront import checkout as C
from storefront import shop
from storefront.api._deps import ApiError, Services, api_error_handler
from storefront.api._routes import CHECKOUT_STATUS, router
from storefront.config import Settings
from storefront.db import attempt_store, create_database
from storefront.log import configure_logging, get_logger

log = get_logger("api")


def create_app(
    settings: Settings,
    *,
    gateway_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the application. Database, gateway client and pipeline live for
    the lifespan of the app and are torn down in reverse order.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level, json=settings.log_json)
        session_factory, engine = await create_database(settings.database_url)
        gateway = C.gateway_client(
            settings.gateway_base_url,
            settings.gateway_secret_key,
            timeout=settings.gateway_timeout,
            transport=gateway_transport,
        )
        pipeline = C.CheckoutPipeline(
            verifier=C.PaymentVerifier(gateway),
            snapshots=C.SnapshotReader(session_factory),
            writer=C.OrderWriter(session_factory),
            clearer=C.CartClearer(session_factory),
            store=attempt_store(session_factory),
            settings=settings,
        )
        app.state.services = Services(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            gateway=gateway,
            catalog=shop.Catalog(session_factory),
            cart=shop.Cart(session_factory),
            orders=shop.OrderHistory(session_factory),
            users=shop.Users(session_factory),
            pipeline=pipeline,
        )
        log.info("startup", database=engine.url.render_as_string(hide_password=True))
        try:
            yield
        finally:
            await pipeline.drain()
            await gateway.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(title="storefront", lifespan=lifespan)
    app.add_exception_handler(ApiError, api_error_handler)
    app.include_router(router)
    return app


def app_from_env() -> FastAPI:
    return create_app(Settings.from_env())


__all__ = ("create_app", "app_from_env", "Services", "CHECKOUT_STATUS")
