import random
import pytest

from boutique.errors import CurrencyMismatchError, InconsistentCurrency
from boutique.fees.calculator import PercentPlusFlatPolicy, calculate_fees, format_currency
from conftest import make_merch, make_ticket


def test_worked_example_totals(fee_policy):
    # Arrange
    items = [
        make_ticket(price=500000, qty=2, transfer=True),
        make_merch(price=2000000, qty=1, brand_id="v1"),
    ]
    # Act
    totals = calculate_fees(items, policy=fee_policy, shipping_fee_minor=150000)
    # Assert
    assert totals.items_subtotal_minor == 3000000
    assert totals.buyer_fees_minor == 25000
    assert totals.shipping_fee_minor == 150000
    assert totals.total_due_minor == 3175000
    assert totals.currency == "NGN"

def test_fee_absorbed_when_not_transferred(fee_policy):
    totals = calculate_fees([make_ticket(price=500000, qty=2, transfer=False)], policy=fee_policy)
    assert totals.buyer_fees_minor == 0
    assert totals.absorbed_fees_minor == 25000
    assert totals.total_due_minor == 1000000
    line = totals.lines[0]
    assert line.labeld_fee_minor == 25000
    assert line.fee_absorbed_by_org_minor == 25000
    assert line.line_buyer_total_minor == 1000000

def test_merch_lines_never_carry_fees(fee_policy):
    totals = calculate_fees([make_merch(price=1000, qty=3)], policy=fee_policy)
    assert totals.buyer_fees_minor == 0
    assert totals.absorbed_fees_minor == 0
    assert totals.lines[0].labeld_fee_minor == 0

def test_empty_cart_zeroed_in_default_currency():
    totals = calculate_fees([])
    assert totals.currency == "NGN"
    assert totals.items_subtotal_minor == 0
    assert totals.buyer_fees_minor == 0
    assert totals.total_due_minor == 0
    assert totals.lines == []

def test_mixed_currencies_rejected(fee_policy):
    with pytest.raises(CurrencyMismatchError):
        calculate_fees([make_ticket(currency="NGN"), make_merch(currency="USD")], policy=fee_policy)
    assert InconsistentCurrency is CurrencyMismatchError

def test_flat_fee_only_for_configured_currencies():
    policy = PercentPlusFlatPolicy(600, 10000, ("NGN",))
    usd = calculate_fees([make_ticket(price=1000, qty=1, currency="USD", transfer=True)], policy=policy)
    ngn = calculate_fees([make_ticket(price=1000, qty=1, currency="NGN", transfer=True)], policy=policy)
    assert usd.buyer_fees_minor == 60
    assert ngn.buyer_fees_minor == 10060

def test_percentage_rounds_half_up():
    policy = PercentPlusFlatPolicy(150, 0)
    # 1.5% de 100 = 1.5 -> 2 ; 1.5% de 99 = 1.485 -> 1
    assert policy.fee_for_line(100, "USD") == 2
    assert policy.fee_for_line(99, "USD") == 1

def test_fee_applied_per_line_not_per_ticket(fee_policy):
    totals = calculate_fees([make_ticket(price=100000, qty=3, transfer=True)], policy=fee_policy)
    # 1.5% de 300000 + un seul fixe
    assert totals.buyer_fees_minor == 4500 + 10000

def test_money_conservation_random_carts(fee_policy):
    rng = random.Random(42)
    for _ in range(200):
        n = rng.randint(1, 50)
        items = []
        for i in range(n):
            if rng.random() < 0.5:
                items.append(make_ticket(ticket_type_id=f"t{i}", qty=rng.randint(1, 5), price=rng.randint(0, 10_000_000), transfer=rng.random() < 0.5))
            else:
                items.append(make_merch(merch_item_id=f"m{i}", qty=rng.randint(1, 5), price=rng.randint(0, 10_000_000), brand_id=f"v{rng.randint(1, 4)}"))
        shipping = rng.randint(0, 500000)
        totals = calculate_fees(items, policy=fee_policy, shipping_fee_minor=shipping)
        subtotal = sum(it.unit_price_minor * it.qty for it in items)
        assert totals.items_subtotal_minor == subtotal
        assert totals.total_due_minor == totals.items_subtotal_minor + totals.buyer_fees_minor + shipping
        assert sum(l.fee_charged_to_buyer_minor for l in totals.lines) == totals.buyer_fees_minor
        assert sum(l.fee_absorbed_by_org_minor for l in totals.lines) == totals.absorbed_fees_minor
        assert all(isinstance(l.labeld_fee_minor, int) for l in totals.lines)

def test_format_currency():
    assert format_currency(3175000, "NGN") == "₦31,750"
    assert format_currency(123456, "USD") == "$1,234.56"
    assert format_currency(500, "EUR") == "EUR 5.00"
