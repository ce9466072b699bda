"""Shared fixtures: file-backed SQLite, a scripted payment gateway, seed helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront import checkout as C
from storefront.config import Settings
from storefront.db import (
    CartItemTable,
    OrderItemTable,
    OrderTable,
    ProductTable,
    UserTable,
    attempt_store,
    create_database,
)
from storefront.domain import PaymentCallback, ProductId, UserId

GATEWAY_URL = "https://gateway.test"
SECRET_KEY = "test_sk_secret"


# ═══════════════════════════════════════════════════════════════════════════════
# Fake gateway
# ═══════════════════════════════════════════════════════════════════════════════


def _wire(amount: Decimal) -> int | float:
    return int(amount) if amount == amount.to_integral_value() else float(amount)


@dataclass
class FakeGateway:
    """
    Scripted stand-in for the payment gateway.

    charged: what the gateway reports as paid per payment key; defaults to
    whatever the confirm request claimed.
    outages: status codes answered to the next confirm calls, in order.
    """

    charged: dict[str, Decimal] = field(default_factory=dict)
    declined: set[str] = field(default_factory=set)
    outages: list[int] = field(default_factory=list)
    confirmed: dict[str, dict] = field(default_factory=dict)
    cancelled: set[str] = field(default_factory=set)
    confirm_calls: int = 0
    lookup_calls: int = 0
    cancel_calls: int = 0
    fail_cancel: bool = False
    order_name: str | None = None
    hold: asyncio.Event | None = None
    requests: list[httpx.Request] = field(default_factory=list)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/v1/payments/confirm":
            return await self._confirm(json.loads(request.content))
        if request.method == "POST" and path.endswith("/cancel"):
            return self._cancel(path.split("/")[3])
        if request.method == "GET" and path.startswith("/v1/payments/"):
            return self._lookup(path.split("/")[3])
        return httpx.Response(404, json={"code": "NOT_FOUND", "message": path})

    async def _confirm(self, body: dict) -> httpx.Response:
        self.confirm_calls += 1
        if self.hold is not None:
            await self.hold.wait()
        if self.outages:
            return httpx.Response(self.outages.pop(0), json={"code": "PROVIDER_ERROR", "message": "down"})

        key = body["paymentKey"]
        if key in self.declined:
            return httpx.Response(400, json={"code": "REJECT_CARD_PAYMENT", "message": "Card declined"})
        if key in self.confirmed:
            return httpx.Response(
                400, json={"code": "ALREADY_PROCESSED_PAYMENT", "message": "Already processed"}
            )

        amount = self.charged.get(key, Decimal(str(body["amount"])))
        self.confirmed[key] = {
            "paymentKey": key,
            "orderId": body["orderId"],
            "status": "DONE",
            "totalAmount": _wire(amount),
            "method": "카드",
            "lastTransactionKey": f"tx_{key}",
            **({"orderName": self.order_name} if self.order_name else {}),
        }
        return httpx.Response(200, json=self.confirmed[key])

    def _lookup(self, key: str) -> httpx.Response:
        self.lookup_calls += 1
        payment = self.confirmed.get(key)
        if payment is None:
            return httpx.Response(404, json={"code": "NOT_FOUND_PAYMENT", "message": key})
        status = "CANCELED" if key in self.cancelled else payment["status"]
        return httpx.Response(200, json={**payment, "status": status})

    def _cancel(self, key: str) -> httpx.Response:
        self.cancel_calls += 1
        if self.fail_cancel:
            return httpx.Response(500, json={"code": "FAILED_INTERNAL_SYSTEM_PROCESSING", "message": "boom"})
        self.cancelled.add(key)
        return httpx.Response(200, json={**self.confirmed.get(key, {}), "status": "CANCELED"})


# ═══════════════════════════════════════════════════════════════════════════════
# Seed helpers
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class Seed:
    session_factory: async_sessionmaker[AsyncSession]

    async def user(self, user_id: str, *roles: str) -> UserId:
        async with self.session_factory() as session, session.begin():
            session.add(UserTable(id=user_id, email=f"{user_id}@example.com", roles=list(roles)))
        return UserId(user_id)

    async def product(self, name: str, price: str) -> ProductId:
        async with self.session_factory() as session, session.begin():
            row = ProductTable(name=name, price=Decimal(price))
            session.add(row)
            await session.flush()
            return ProductId(row.id)

    async def cart(self, user_id: UserId, product_id: ProductId, quantity: int) -> None:
        async with self.session_factory() as session, session.begin():
            session.add(CartItemTable(
                user_id=user_id.value, product_id=product_id.value, quantity=quantity
            ))

    async def cart_quantities(self, user_id: UserId) -> dict[int, int]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CartItemTable.product_id, CartItemTable.quantity)
                .where(CartItemTable.user_id == user_id.value)
            )
            return {pid: qty for pid, qty in rows.all()}

    async def order_count(self) -> int:
        async with self.session_factory() as session:
            return (await session.execute(select(func.count()).select_from(OrderTable))).scalar_one()

    async def order_item_count(self) -> int:
        async with self.session_factory() as session:
            return (
                await session.execute(select(func.count()).select_from(OrderItemTable))
            ).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        gateway_base_url=GATEWAY_URL,
        gateway_secret_key=SECRET_KEY,
        gateway_timeout=2.0,
        session_secret="test-session-secret-at-least-32-bytes",
        storage_timeout=2.0,
        retry_times=3,
        retry_delay=0.0,
        pending_wait=2.0,
        log_json=False,
    )


@pytest.fixture
async def db(database_url: str) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    session_factory, engine = await create_database(database_url)
    yield session_factory
    await engine.dispose()


@pytest.fixture
def seed(db: async_sessionmaker[AsyncSession]) -> Seed:
    return Seed(db)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def gateway_client(gateway: FakeGateway) -> AsyncIterator[httpx.AsyncClient]:
    client = C.gateway_client(GATEWAY_URL, SECRET_KEY, transport=gateway.transport())
    yield client
    await client.aclose()


def build_pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    client: httpx.AsyncClient,
    settings: Settings,
    *,
    writer: C.OrderWriter | None = None,
    clearer: C.CartClearer | None = None,
) -> C.CheckoutPipeline:
    return C.CheckoutPipeline(
        verifier=C.PaymentVerifier(client),
        snapshots=C.SnapshotReader(session_factory),
        writer=writer or C.OrderWriter(session_factory),
        clearer=clearer or C.CartClearer(session_factory),
        store=attempt_store(session_factory),
        settings=settings,
    )


@pytest.fixture
def pipeline(db, gateway_client, settings) -> C.CheckoutPipeline:
    return build_pipeline(db, gateway_client, settings)


def callback(payment_key: str = "pk_test_1", amount: str = "25000") -> PaymentCallback:
    return PaymentCallback(payment_key=payment_key, order_id=f"order-{payment_key}", amount=Decimal(amount))
