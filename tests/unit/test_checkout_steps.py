import itertools
import pytest

from boutique.cart.models import ContactInfo, ShippingSelection
from boutique.cart.store import CartStore
from boutique.checkout.steps import (
    Step,
    can_enter,
    cta_state,
    first_incomplete_step,
    resolve_navigation,
    step_from_path,
)
from conftest import make_merch, make_ticket


@pytest.mark.parametrize("path,step", [
    ("/buy/e1/tickets", Step.TICKETS),
    ("/buy/e1/merch", Step.MERCH),
    ("/buy/e1/contact?x=1", Step.CONTACT),
    ("/buy/e1/pay", Step.PAY),
    ("/buy/e1/success", Step.SUCCESS),
    ("/buy/e1", Step.TICKETS),
    ("", Step.TICKETS),
    ("/buy/pay", Step.TICKETS),
    ("/buy/success/tickets", Step.TICKETS),
    ("/buy/pay/contact", Step.CONTACT),
    ("/buy/e1/unknown", Step.TICKETS),
])
def test_step_from_path(path, step):
    assert step_from_path(path) == step

def _cart(email, phone, terms, merch, shipping):
    cart = CartStore(event_id="e1")
    cart.add_item(make_ticket())
    if merch:
        cart.add_item(make_merch())
    cart.set_contact(ContactInfo(email="buyer@gmail.com" if email else None, phone="08030000000" if phone else None))
    if shipping == "pickup":
        cart.set_shipping(ShippingSelection(method="pickup"))
    elif shipping == "delivery_no_state":
        cart.set_shipping(ShippingSelection(method="delivery"))
    elif shipping == "delivery":
        cart.set_shipping(ShippingSelection.model_validate({"method": "delivery", "address": {"state": "Lagos"}}))
    cart.set_terms_accepted(terms)
    return cart

@pytest.mark.parametrize(
    "email,phone,terms,merch,shipping",
    list(itertools.product([True, False], [True, False], [True, False], [True, False], [None, "pickup", "delivery_no_state", "delivery"])),
)
def test_pay_cta_disabled_iff_predicates_fail(email, phone, terms, merch, shipping):
    cart = _cart(email, phone, terms, merch, shipping)
    shipping_complete = shipping in ("pickup", "delivery")
    expected_disabled = (not email or not phone) or (not terms) or (merch and not shipping_complete)

    cta = cta_state(cart, "e1", Step.PAY)

    assert cta.disabled is expected_disabled
    assert cta.label

def test_tickets_step_requires_a_ticket():
    cart = CartStore(event_id="e1")
    assert cta_state(cart, "e1", Step.TICKETS).disabled is True
    cart.add_item(make_ticket())
    cta = cta_state(cart, "e1", Step.TICKETS)
    assert cta.disabled is False
    assert cta.label == "Continue → Merch"
    assert cta.next_path == "/buy/e1/merch"

def test_merch_step_is_always_complete():
    cart = CartStore(event_id="e1")
    cart.add_item(make_ticket())
    assert cta_state(cart, "e1", Step.MERCH).disabled is False

def test_no_skip_ahead_redirects_to_earliest_incomplete_step():
    cart = CartStore(event_id="e1")
    decision = resolve_navigation(cart, "e1", "/buy/e1/pay")
    assert decision.allowed is False
    assert decision.step == Step.TICKETS
    assert decision.redirect_to == "/buy/e1/tickets"

    cart.add_item(make_ticket())
    decision = resolve_navigation(cart, "e1", "/buy/e1/pay")
    assert decision.step == Step.CONTACT
    assert decision.redirect_to == "/buy/e1/contact"

def test_backward_navigation_always_allowed():
    cart = _cart(True, True, True, False, None)
    for path in ("/buy/e1/tickets", "/buy/e1/merch", "/buy/e1/contact", "/buy/e1/pay"):
        assert resolve_navigation(cart, "e1", path).allowed is True

def test_pay_reachable_even_when_terms_missing_but_cta_disabled():
    cart = _cart(True, True, False, False, None)
    assert can_enter(cart, Step.PAY) is True
    assert cta_state(cart, "e1", Step.PAY).disabled is True

def test_success_only_after_finalize():
    cart = _cart(True, True, True, False, None)
    assert can_enter(cart, Step.SUCCESS) is False
    assert can_enter(cart, Step.SUCCESS, finalized=True) is True
    assert first_incomplete_step(cart) == Step.PAY
