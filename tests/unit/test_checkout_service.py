import asyncio
import pytest

from boutique.cart.models import ContactInfo, ShippingSelection
from boutique.checkout.service import (
    ensure_pricing,
    enter_pay_step,
    handle_payment_outcome,
    refresh_pricing,
)
from boutique.errors import CheckoutValidationError, ShippingQuoteError
from boutique.payments.gateway import PaymentCancelled, PaymentFailed, PaymentSuccess
from boutique.shipping.quoter import ShippingQuoter
from conftest import FakeShippingProvider, make_merch, make_ticket

LAGOS = ShippingSelection.model_validate({"method": "delivery", "address": {"state": "Lagos", "city": "Ikeja"}})


class CartMutatingProvider(FakeShippingProvider):
    """Modifie le panier pendant le devis (l'utilisateur agit pendant l'await)."""

    def __init__(self, mutate, fail=False, **kw):
        super().__init__(**kw)
        self.mutate = mutate
        self.fail = fail
        self.remaining = None

    async def quote(self, vendor_id, items, dest_state, dest_city=None):
        if self.remaining is None or self.remaining > 0:
            self.mutate()
            if self.remaining is not None:
                self.remaining -= 1
        if self.fail:
            self.calls.append({"vendorId": vendor_id})
            raise ShippingQuoteError(vendor_id)
        return await super().quote(vendor_id, items, dest_state, dest_city)


def _merch_context(services):
    ctx = services.store.create("e1")
    ctx.cart.add_item(make_merch(price=2000000, brand_id="v1"))
    ctx.cart.set_shipping(LAGOS)
    return ctx

def _ready_context(services):
    ctx = services.store.create("e1")
    ctx.cart.add_item(make_ticket(qty=2, transfer=True))
    ctx.cart.add_item(make_merch(size="M"))
    ctx.cart.set_contact(ContactInfo(email="buyer@gmail.com", phone="0803", first_name="Ada"))
    ctx.cart.set_shipping(LAGOS)
    ctx.cart.set_terms_accepted(True)
    return ctx


# --- recalcul des totaux ---
def test_result_is_discarded_when_cart_changes_during_quote(services):
    # Arrange
    ctx = _merch_context(services)
    provider = CartMutatingProvider(lambda: ctx.cart.set_terms_accepted(True), fees={"v1": 150000})
    provider.remaining = 1
    quoter = ShippingQuoter(provider, timeout_seconds=0.5)

    # Act
    applied = asyncio.run(refresh_pricing(ctx, quoter, services.policy))

    # Assert
    assert applied is False
    assert ctx.totals is None
    assert ctx.shipping is None
    assert ctx.priced_revision == -1

def test_ensure_pricing_recomputes_after_a_discarded_result(services):
    ctx = _merch_context(services)
    provider = CartMutatingProvider(lambda: ctx.cart.set_terms_accepted(True), fees={"v1": 150000})
    provider.remaining = 1
    quoter = ShippingQuoter(provider, timeout_seconds=0.5)

    asyncio.run(ensure_pricing(ctx, quoter, services.policy))

    assert ctx.priced_revision == ctx.cart.revision
    assert ctx.totals.shipping_fee_minor == 150000
    assert ctx.totals.total_due_minor == 2150000

def test_ensure_pricing_gives_up_when_cart_keeps_moving(services):
    ctx = _merch_context(services)
    provider = CartMutatingProvider(lambda: ctx.cart.set_shipping(LAGOS), fail=True)
    quoter = ShippingQuoter(provider, timeout_seconds=0.5)

    with pytest.raises(CheckoutValidationError):
        asyncio.run(ensure_pricing(ctx, quoter, services.policy))

    assert ctx.totals is None
    assert len(provider.calls) == 3

def test_contact_change_reuses_last_shipping_quote(services, fake_provider):
    ctx = _merch_context(services)
    asyncio.run(ensure_pricing(ctx, services.quoter, services.policy))
    services.quoter.clear_cache()
    calls = len(fake_provider.calls)

    ctx.cart.set_contact(ContactInfo(email="buyer@gmail.com", phone="0803"))
    asyncio.run(ensure_pricing(ctx, services.quoter, services.policy))
    assert len(fake_provider.calls) == calls
    assert ctx.priced_revision == ctx.cart.revision

    ctx.cart.set_shipping(ShippingSelection.model_validate({"method": "delivery", "address": {"state": "Oyo"}}))
    asyncio.run(ensure_pricing(ctx, services.quoter, services.policy))
    assert len(fake_provider.calls) == calls + 1
    assert fake_provider.calls[-1]["state"] == "Oyo"


# --- issues de paiement d'une session remplacée ---
def _reopened(services):
    ctx = _ready_context(services)
    first = asyncio.run(enter_pay_step(ctx, services))
    asyncio.run(handle_payment_outcome(ctx, PaymentCancelled(session_id=first.id, checkout_id=ctx.checkout_id)))
    second = asyncio.run(enter_pay_step(ctx, services))
    return ctx, first, second

def test_late_cancellation_of_replaced_session_is_ignored(services):
    # Arrange
    ctx, first, second = _reopened(services)
    snapshot = ctx.pay_snapshot

    # Act
    result = asyncio.run(handle_payment_outcome(ctx, PaymentCancelled(session_id=first.id, checkout_id=ctx.checkout_id)))

    # Assert
    assert result is None
    assert ctx.payment_session_id == second.id
    assert ctx.pay_snapshot is snapshot
    assert ctx.cart.locked is True

def test_late_failure_of_replaced_session_does_not_raise(services):
    ctx, first, second = _reopened(services)
    asyncio.run(handle_payment_outcome(ctx, PaymentFailed(message="declined", session_id=first.id)))
    assert ctx.payment_session_id == second.id
    assert ctx.cart.locked is True

def test_late_success_of_replaced_session_is_flagged_not_finalized(services, orders_repo):
    ctx, first, second = _reopened(services)

    outcome = PaymentSuccess(reference="pi_old", session_id=first.id, amount_minor=3175000, checkout_id=ctx.checkout_id)
    assert asyncio.run(handle_payment_outcome(ctx, outcome, services.policy)) is None
    asyncio.run(handle_payment_outcome(ctx, outcome, services.policy))

    assert orders_repo.orders == {}
    assert ctx.finalize_state.value == "idle"
    assert [p["paymentReference"] for p in ctx.unreconciled_payments] == ["pi_old"]

    # La tentative courante se finalise normalement
    current = PaymentSuccess(reference="pi_new", session_id=second.id, amount_minor=3175000, checkout_id=ctx.checkout_id)
    result = asyncio.run(handle_payment_outcome(ctx, current, services.policy))
    assert result.order_id in orders_repo.orders
    assert len(orders_repo.orders) == 1

def test_success_replay_after_finalize_returns_same_order(services, orders_repo):
    ctx = _ready_context(services)
    session = asyncio.run(enter_pay_step(ctx, services))
    outcome = PaymentSuccess(reference="pi_1", session_id=session.id, amount_minor=3175000)

    first = asyncio.run(handle_payment_outcome(ctx, outcome, services.policy))
    again = asyncio.run(handle_payment_outcome(ctx, outcome, services.policy))

    assert again.order_id == first.order_id
    assert ctx.unreconciled_payments == []
    assert len(orders_repo.orders) == 1
