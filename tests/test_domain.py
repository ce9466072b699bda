from decimal import Decimal

import pytest

from storefront.auth import decode_session_token, issue_session_token
from storefront.capabilities import Capability, capabilities_of, has_capability
from storefront.checkout import IllegalTransition, PipelineState as P, StateTrace
from storefront.domain import (
    CartLine,
    CartSnapshot,
    CheckoutErrors,
    ProductId,
    ProductSnapshot,
    Reason,
    User,
    UserId,
)


SECRET = "unit-test-session-secret-32-bytes!"


def line(pid: int, name: str, price: str, qty: int) -> CartLine:
    return CartLine(ProductSnapshot(ProductId(pid), name, Decimal(price)), qty)


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot arithmetic
# ═══════════════════════════════════════════════════════════════════════════════


def test_snapshot_total_is_sum_of_subtotals():
    snap = CartSnapshot(UserId("u1"), (line(1, "A", "10000", 2), line(2, "B", "5000", 1)))
    assert snap.total == Decimal("25000")
    assert snap.product_ids == (ProductId(1), ProductId(2))


def test_snapshot_total_is_exact_decimal():
    snap = CartSnapshot(UserId("u1"), (line(1, "A", "0.10", 3),))
    assert snap.total == Decimal("0.30")


def test_empty_snapshot():
    snap = CartSnapshot(UserId("u1"), ())
    assert snap.is_empty
    assert snap.total == Decimal("0")
    assert snap.display_name() == ""


def test_display_name():
    one = CartSnapshot(UserId("u1"), (line(1, "Keyboard", "1", 1),))
    three = CartSnapshot(
        UserId("u1"),
        (line(1, "Keyboard", "1", 1), line(2, "Mouse", "1", 1), line(3, "Pad", "1", 1)),
    )
    assert one.display_name() == "Keyboard"
    assert three.display_name() == "Keyboard and 2 more"


def test_transient_reasons():
    assert CheckoutErrors.gateway_unavailable("x").is_transient
    assert CheckoutErrors.storage("x").is_transient
    assert not CheckoutErrors.payment_rejected("x").is_transient
    assert not CheckoutErrors.empty_cart().is_transient


# ═══════════════════════════════════════════════════════════════════════════════
# Capabilities
# ═══════════════════════════════════════════════════════════════════════════════


def test_admin_holds_every_capability():
    admin = User(UserId("a"), "a@example.com", frozenset({"admin"}))
    assert capabilities_of(admin) == frozenset(Capability)


def test_plain_user_holds_none():
    user = User(UserId("u"), "u@example.com", frozenset({"customer"}))
    assert not has_capability(user, Capability.MANAGE_PRODUCTS)
    assert not has_capability(user, Capability.MANAGE_ROLES)


# ═══════════════════════════════════════════════════════════════════════════════
# State machine
# ═══════════════════════════════════════════════════════════════════════════════


def test_happy_walk():
    trace = StateTrace()
    for state in (P.VERIFYING, P.VERIFIED, P.WRITING, P.WRITTEN, P.CLEARING, P.COMPLETE):
        trace.advance(state)
    assert trace.current is P.COMPLETE
    assert trace.current.is_terminal
    assert trace.states[0] is P.AWAITING_CONFIRMATION


def test_cannot_skip_states():
    trace = StateTrace()
    with pytest.raises(IllegalTransition):
        trace.advance(P.WRITING)


def test_failure_reason_must_belong_to_state():
    trace = StateTrace()
    trace.advance(P.VERIFYING)
    with pytest.raises(IllegalTransition):
        trace.fail(Reason.EMPTY_CART)

    trace.fail(Reason.PAYMENT_MISMATCH)
    assert trace.current is P.FAILED
    assert trace.reason is Reason.PAYMENT_MISMATCH


def test_written_cannot_fail():
    trace = StateTrace()
    for state in (P.VERIFYING, P.VERIFIED, P.WRITING, P.WRITTEN):
        trace.advance(state)
    with pytest.raises(IllegalTransition):
        trace.fail(Reason.STORAGE_ERROR)


def test_terminal_states_are_final():
    trace = StateTrace()
    trace.fail(Reason.DUPLICATE_PAYMENT)
    with pytest.raises(IllegalTransition):
        trace.advance(P.VERIFYING)


# ═══════════════════════════════════════════════════════════════════════════════
# Session tokens
# ═══════════════════════════════════════════════════════════════════════════════


def test_session_token_roundtrip():
    token = issue_session_token(UserId("user-1"), SECRET)
    assert decode_session_token(token, SECRET) == UserId("user-1")


def test_session_token_wrong_secret():
    token = issue_session_token(UserId("user-1"), SECRET)
    assert decode_session_token(token, "another-secret-of-thirty-two-bytes") is None


def test_session_token_expired():
    token = issue_session_token(UserId("user-1"), SECRET, ttl=-10)
    assert decode_session_token(token, SECRET) is None


def test_session_token_garbage():
    assert decode_session_token("not-a-jwt", SECRET) is None
