"""Payment Verifier, Snapshot Reader, Order Writer and Cart Clearer in isolation."""

import base64
from decimal import Decimal

import httpx
from kungfu import Ok, Error
from sqlalchemy import update

from storefront import checkout as C
from storefront.db import CartItemTable
from storefront.domain import OrderId, Reason, UserId, VerifiedPayment

from conftest import GATEWAY_URL, SECRET_KEY, callback


def payment(key: str = "pk_1", amount: str = "25000") -> VerifiedPayment:
    return VerifiedPayment(
        payment_key=key,
        order_id=f"order-{key}",
        amount=Decimal(amount),
        method="card",
        order_name=None,
        transaction_id=None,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Payment Verifier
# ═══════════════════════════════════════════════════════════════════════════════


async def test_confirm_returns_gateway_record(gateway, gateway_client):
    verifier = C.PaymentVerifier(gateway_client)

    match await verifier.confirm(callback("pk_1", "25000")):
        case Ok(verified):
            assert verified.amount == Decimal("25000")
            assert verified.payment_key == "pk_1"
            assert verified.transaction_id == "tx_pk_1"
        case Error(e):
            raise AssertionError(e)

    sent = gateway.requests[0]
    expected = base64.b64encode(f"{SECRET_KEY}:".encode()).decode()
    assert sent.headers["authorization"] == f"Basic {expected}"
    assert sent.url.path == "/v1/payments/confirm"


async def test_confirm_amount_differs(gateway, gateway_client):
    gateway.charged["pk_1"] = Decimal("20000")
    result = await C.PaymentVerifier(gateway_client).confirm(callback("pk_1", "25000"))
    match result:
        case Error(e):
            assert e.reason is Reason.PAYMENT_MISMATCH
        case Ok(_):
            raise AssertionError("mismatch accepted")


async def test_confirm_declined(gateway, gateway_client):
    gateway.declined.add("pk_1")
    match await C.PaymentVerifier(gateway_client).confirm(callback("pk_1")):
        case Error(e):
            assert e.reason is Reason.PAYMENT_REJECTED
            assert e.detail == {"gateway_code": "REJECT_CARD_PAYMENT"}
        case Ok(_):
            raise AssertionError("declined payment accepted")


async def test_confirm_server_error_is_unavailable(gateway, gateway_client):
    gateway.outages.append(502)
    match await C.PaymentVerifier(gateway_client).confirm(callback("pk_1")):
        case Error(e):
            assert e.reason is Reason.PAYMENT_GATEWAY_UNAVAILABLE
            assert e.is_transient
        case Ok(_):
            raise AssertionError("outage accepted")


async def test_confirm_network_error_is_unavailable():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with C.gateway_client(GATEWAY_URL, SECRET_KEY, transport=httpx.MockTransport(refuse)) as client:
        match await C.PaymentVerifier(client).confirm(callback("pk_1")):
            case Error(e):
                assert e.reason is Reason.PAYMENT_GATEWAY_UNAVAILABLE
            case Ok(_):
                raise AssertionError("network error accepted")


async def test_already_processed_falls_back_to_lookup(gateway, gateway_client):
    verifier = C.PaymentVerifier(gateway_client)
    assert isinstance(await verifier.confirm(callback("pk_1")), Ok)

    match await verifier.confirm(callback("pk_1")):
        case Ok(verified):
            assert verified.amount == Decimal("25000")
        case Error(e):
            raise AssertionError(e)
    assert gateway.lookup_calls == 1


async def test_lookup_of_cancelled_payment_is_rejected(gateway, gateway_client):
    verifier = C.PaymentVerifier(gateway_client)
    await verifier.confirm(callback("pk_1"))
    assert await verifier.cancel("pk_1", "test") == Ok(None)

    match await verifier.confirm(callback("pk_1")):
        case Error(e):
            assert e.reason is Reason.PAYMENT_REJECTED
        case Ok(_):
            raise AssertionError("cancelled payment accepted")


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot Reader
# ═══════════════════════════════════════════════════════════════════════════════


async def test_snapshot_reads_lines_and_prices(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "10000")
    b = await seed.product("B", "5000")
    await seed.cart(user, a, 2)
    await seed.cart(user, b, 1)

    match await C.SnapshotReader(db).read(user):
        case Ok(snap):
            assert snap.total == Decimal("25000")
            assert [(l.product.name, l.quantity) for l in snap.lines] == [("A", 2), ("B", 1)]
        case Error(e):
            raise AssertionError(e)


async def test_snapshot_is_scoped_to_user(db, seed):
    u1 = await seed.user("u1")
    u2 = await seed.user("u2")
    a = await seed.product("A", "100")
    await seed.cart(u2, a, 5)

    match await C.SnapshotReader(db).read(u1):
        case Ok(snap):
            assert snap.is_empty
        case Error(e):
            raise AssertionError(e)


# ═══════════════════════════════════════════════════════════════════════════════
# Order Writer
# ═══════════════════════════════════════════════════════════════════════════════


async def _snapshot(db, user):
    match await C.SnapshotReader(db).read(user):
        case Ok(snap):
            return snap
        case Error(e):
            raise AssertionError(e)


async def test_writer_persists_order_and_items(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "10000")
    b = await seed.product("B", "5000")
    await seed.cart(user, a, 2)
    await seed.cart(user, b, 1)
    snap = await _snapshot(db, user)

    result = await C.OrderWriter(db).write(user, payment(), "A and 1 more", snap)

    assert isinstance(result, Ok)
    assert await seed.order_count() == 1
    assert await seed.order_item_count() == 2


async def test_writer_rejects_amount_mismatch(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "10000")
    await seed.cart(user, a, 2)
    snap = await _snapshot(db, user)

    match await C.OrderWriter(db).write(user, payment(amount="15000"), "A", snap):
        case Error(e):
            assert e.reason is Reason.AMOUNT_MISMATCH
        case Ok(_):
            raise AssertionError("mismatched total written")
    assert await seed.order_count() == 0
    assert await seed.order_item_count() == 0


async def test_writer_is_idempotent_on_payment_key(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "12500")
    await seed.cart(user, a, 2)
    snap = await _snapshot(db, user)
    writer = C.OrderWriter(db)

    first = await writer.write(user, payment(), "A", snap)
    second = await writer.write(user, payment(), "A", snap)

    assert first == second
    assert await seed.order_count() == 1


async def test_writer_refuses_payment_owned_by_another_user(db, seed):
    u1 = await seed.user("u1")
    u2 = await seed.user("u2")
    a = await seed.product("A", "25000")
    await seed.cart(u1, a, 1)
    await seed.cart(u2, a, 1)
    writer = C.OrderWriter(db)

    await writer.write(u1, payment(), "A", await _snapshot(db, u1))
    match await writer.write(u2, payment(), "A", await _snapshot(db, u2)):
        case Error(e):
            assert e.reason is Reason.DUPLICATE_PAYMENT
        case Ok(_):
            raise AssertionError("payment reused")
    assert await seed.order_count() == 1


async def test_writer_find(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "25000")
    await seed.cart(user, a, 1)
    writer = C.OrderWriter(db)

    assert await writer.find("pk_1") == Ok(None)
    match await writer.write(user, payment(), "A", await _snapshot(db, user)):
        case Ok(order_id):
            assert await writer.find("pk_1") == Ok((order_id, user))
        case Error(e):
            raise AssertionError(e)


def test_order_ids_are_prefixed():
    order_id = C.new_order_id()
    assert isinstance(order_id, OrderId)
    assert order_id.value.startswith("ord_")


# ═══════════════════════════════════════════════════════════════════════════════
# Cart Clearer
# ═══════════════════════════════════════════════════════════════════════════════


async def test_clearer_removes_snapshot_lines(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "100")
    await seed.cart(user, a, 2)
    snap = await _snapshot(db, user)

    assert await C.CartClearer(db).clear(user, snap.lines) == Ok(1)
    assert await seed.cart_quantities(user) == {}


async def test_clearer_keeps_later_additions(db, seed):
    user = await seed.user("u1")
    a = await seed.product("A", "100")
    b = await seed.product("B", "200")
    await seed.cart(user, a, 2)
    snap = await _snapshot(db, user)

    # After the snapshot: one more A, and a brand-new B.
    async with db() as session, session.begin():
        await session.execute(
            update(CartItemTable)
            .where(CartItemTable.user_id == "u1", CartItemTable.product_id == a.value)
            .values(quantity=3)
        )
    await seed.cart(user, b, 1)

    await C.CartClearer(db).clear(user, snap.lines)
    assert await seed.cart_quantities(user) == {a.value: 1, b.value: 1}


async def test_clearer_ignores_other_users(db, seed):
    u1 = await seed.user("u1")
    u2 = await seed.user("u2")
    a = await seed.product("A", "100")
    await seed.cart(u1, a, 1)
    await seed.cart(u2, a, 4)
    snap = await _snapshot(db, u1)

    await C.CartClearer(db).clear(u1, snap.lines)
    assert await seed.cart_quantities(u2) == {a.value: 4}


async def test_clearer_with_nothing_to_clear(db):
    assert await C.CartClearer(db).clear(UserId("nobody"), ()) == Ok(0)
