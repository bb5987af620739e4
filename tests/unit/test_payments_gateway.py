import pytest

from boutique.errors import PaymentGatewayError
from boutique.payments.gateway import (
    PaymentCancelled,
    PaymentFailed,
    PaymentSuccess,
    StripeGateway,
    build_metadata,
    order_type_for,
)


def test_order_type():
    assert order_type_for(True, False) == "tickets"
    assert order_type_for(False, True) == "merch"
    assert order_type_for(True, True) == "mixed"

def test_metadata_shape():
    meta = build_metadata("e1", "Ada Obi", "0803", "mixed", "chk1")
    assert meta == {"eventId": "e1", "customerName": "Ada Obi", "phone": "0803", "orderType": "mixed", "checkoutId": "chk1"}

def test_initialize_payment_passes_reconciled_amount(fake_stripe):
    # Arrange
    gateway = StripeGateway()
    # Act
    session = gateway.initialize_payment(
        3175000, "buyer@gmail.com", {"checkoutId": "chk1"},
        currency="NGN", success_url="http://s", cancel_url="http://c", idempotency_key="k1",
    )
    # Assert
    assert session.id.startswith("cs_test_")
    assert session.url
    created = fake_stripe.created[0]
    assert created["amount_minor"] == 3175000
    assert created["currency"] == "NGN"
    assert created["customer_email"] == "buyer@gmail.com"
    assert created["idempotency_key"] == "k1"

def test_initialize_payment_sdk_error_becomes_gateway_error(fake_stripe):
    fake_stripe.fail_create = True
    with pytest.raises(PaymentGatewayError):
        StripeGateway().initialize_payment(100, "buyer@gmail.com", {}, currency="NGN", success_url="s", cancel_url="c")

def test_initialize_payment_rejects_non_positive_amount(fake_stripe):
    with pytest.raises(PaymentGatewayError):
        StripeGateway().initialize_payment(0, "buyer@gmail.com", {}, currency="NGN", success_url="s", cancel_url="c")
    assert fake_stripe.created == []

def test_resolve_outcome_paid_expired_open(fake_stripe):
    gateway = StripeGateway()
    s1 = gateway.initialize_payment(100, "b@gmail.com", {"checkoutId": "c1"}, currency="NGN", success_url="s", cancel_url="c")
    s2 = gateway.initialize_payment(100, "b@gmail.com", {"checkoutId": "c2"}, currency="NGN", success_url="s", cancel_url="c")
    s3 = gateway.initialize_payment(100, "b@gmail.com", {"checkoutId": "c3"}, currency="NGN", success_url="s", cancel_url="c")
    fake_stripe.mark_paid(s1.id)
    fake_stripe.expire_session(s2.id)

    paid = gateway.resolve_outcome(s1.id)
    assert isinstance(paid, PaymentSuccess)
    assert paid.reference == f"pi_{s1.id}"
    assert paid.amount_minor == 100
    assert paid.checkout_id == "c1"
    assert isinstance(gateway.resolve_outcome(s2.id), PaymentCancelled)
    assert isinstance(gateway.resolve_outcome(s3.id), PaymentFailed)

def test_resolve_outcome_sdk_error_is_failure(monkeypatch):
    def _boom(session_id):
        raise RuntimeError("network")
    monkeypatch.setattr("boutique.payments.stripe_client.get_session", _boom)
    outcome = StripeGateway().resolve_outcome("cs_x")
    assert isinstance(outcome, PaymentFailed)

@pytest.mark.parametrize("event_type,expected", [
    ("checkout.session.completed", PaymentSuccess),
    ("checkout.session.async_payment_succeeded", PaymentSuccess),
    ("checkout.session.expired", PaymentCancelled),
    ("checkout.session.async_payment_failed", PaymentFailed),
])
def test_outcome_from_event(event_type, expected):
    status = {"checkout.session.expired": "expired"}.get(event_type, "complete")
    payment_status = "unpaid" if event_type in ("checkout.session.expired", "checkout.session.async_payment_failed") else "paid"
    event = {
        "type": event_type,
        "data": {"object": {
            "id": "cs_1", "status": status, "payment_status": payment_status,
            "payment_intent": "pi_1", "amount_total": 500, "metadata": {"checkoutId": "c1"},
        }},
    }
    outcome = StripeGateway().outcome_from_event(event)
    assert isinstance(outcome, expected)
    assert outcome.checkout_id == "c1"

def test_unrelated_event_is_ignored():
    assert StripeGateway().outcome_from_event({"type": "invoice.paid", "data": {"object": {}}}) is None
