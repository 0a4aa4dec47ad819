import hashlib
import hmac

import pytest

from academy.core.errors import IntegrityFailure, ValidationError
from academy.orders import service as orders
from academy.payments import service as payments
from academy.payments.gateway import PaymentGateway, compute_signature, verify_payment_signature

SECRET = "rzp_test_secret"


@pytest.fixture
async def pending_order(db, make_user, course):
    buyer = await make_user("buyer")
    return await orders.create_order(
        db, buyer["user_id"], [{"course_id": "CRS_PY101"}], {"first_name": "B", "email": "b@example.com"}
    )


@pytest.fixture
async def order(db, pending_order):
    return await orders.link_gateway_order(db, pending_order["order_id"], pending_order["user_id"], "order_1")


@pytest.fixture
def calls(monkeypatch):
    """Record which settlement path ran"""
    seen = []

    def spy(name, func):
        async def wrapper(*args, **kwargs):
            seen.append(name)
            return await func(*args, **kwargs)
        monkeypatch.setattr(payments, name, wrapper)

    spy("complete_order", orders.complete_order)
    spy("mark_order_failed", orders.mark_order_failed)
    return seen


def test_signature_is_hmac_sha256_of_order_and_payment():
    expected = hmac.new(SECRET.encode(), b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert compute_signature("order_1", "pay_1", SECRET) == expected
    assert verify_payment_signature("order_1", "pay_1", expected, SECRET)


def test_signature_mismatch_and_missing_inputs():
    good = compute_signature("order_1", "pay_1", SECRET)
    assert not verify_payment_signature("order_1", "pay_2", good, SECRET)
    assert not verify_payment_signature("order_1", "pay_1", good, "other")
    assert not verify_payment_signature("order_1", "pay_1", "", SECRET)
    assert not verify_payment_signature("order_1", "pay_1", good, "")


async def test_valid_signature_completes_only(db, order, calls):
    signature = compute_signature("order_1", "pay_1", SECRET)
    result = await payments.settle_payment(db, order["order_id"], "order_1", "pay_1", signature, SECRET)

    assert result["verified"] is True
    assert result["order"]["status"] == "completed"
    assert result["order"]["payment"]["gateway_signature"] == signature
    assert calls == ["complete_order"]

    buyer = await db.users.find_one({"user_id": order["user_id"]})
    assert [p["course_id"] for p in buyer["purchased_courses"]] == ["CRS_PY101"]


async def test_bad_signature_fails_only(db, order, calls):
    result = await payments.settle_payment(db, order["order_id"], "order_1", "pay_1", "forged", SECRET)

    assert result["verified"] is False
    assert result["order"]["status"] == "cancelled"
    assert result["order"]["payment"]["status"] == "failed"
    assert calls == ["mark_order_failed"]

    buyer = await db.users.find_one({"user_id": order["user_id"]})
    assert buyer["purchased_courses"] == []


async def test_callback_for_another_gateway_order_is_rejected(db, order, calls):
    signature = compute_signature("order_other", "pay_1", SECRET)

    with pytest.raises(IntegrityFailure):
        await payments.settle_payment(db, order["order_id"], "order_other", "pay_1", signature, SECRET)

    assert calls == []
    stored = await orders.get_order(db, order["order_id"])
    assert stored["status"] == "pending"


async def test_unlinked_order_cannot_be_settled(db, pending_order, calls):
    # a correctly signed payment for some other, cheaper gateway order
    signature = compute_signature("order_cheap", "pay_1", SECRET)

    with pytest.raises(IntegrityFailure):
        await payments.settle_payment(db, pending_order["order_id"], "order_cheap", "pay_1", signature, SECRET)

    assert calls == []
    stored = await orders.get_order(db, pending_order["order_id"])
    assert stored["status"] == "pending"
    buyer = await db.users.find_one({"user_id": pending_order["user_id"]})
    assert buyer["purchased_courses"] == []


async def test_repeated_valid_callback_grants_once(db, order):
    signature = compute_signature("order_1", "pay_1", SECRET)
    for _ in range(3):
        await payments.settle_payment(db, order["order_id"], "order_1", "pay_1", signature, SECRET)

    buyer = await db.users.find_one({"user_id": order["user_id"]})
    assert len(buyer["purchased_courses"]) == 1


# ==================== GATEWAY CLIENT ====================

def test_gateway_create_order_converts_to_paise(razorpay_client):
    gateway = PaymentGateway("key", "secret")
    gateway.client = razorpay_client

    order = gateway.create_order(499.5, receipt="ORD-1")
    assert order["id"] == "order_fake1"
    assert razorpay_client.order.created[0]["amount"] == 49950
    assert razorpay_client.order.created[0]["currency"] == "INR"
    assert razorpay_client.order.created[0]["receipt"] == "ORD-1"


@pytest.mark.parametrize("amount", [0, -10])
def test_gateway_rejects_non_positive_amount(razorpay_client, amount):
    gateway = PaymentGateway("key", "secret")
    gateway.client = razorpay_client
    with pytest.raises(ValidationError):
        gateway.create_order(amount)
    assert razorpay_client.order.created == []


def test_gateway_unknown_payment_is_validation_error(razorpay_client):
    gateway = PaymentGateway("key", "secret")
    gateway.client = razorpay_client
    razorpay_client.payment.payments["pay_1"] = {"id": "pay_1", "status": "captured"}

    assert gateway.fetch_payment("pay_1")["status"] == "captured"
    with pytest.raises(ValidationError):
        gateway.fetch_payment("pay_missing")
