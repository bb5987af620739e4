import os

os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import itertools
import pytest
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from boutique.app_setup.factory import create_app
from boutique.cart.models import MerchItem, TicketItem
from boutique.checkout.context import CheckoutStore
from boutique.checkout.service import CheckoutServices
from boutique.errors import ShippingQuoteError
from boutique.fees.calculator import PercentPlusFlatPolicy
from boutique.payments.gateway import StripeGateway
from boutique.shipping.models import ShippingQuote
from boutique.shipping.provider import ShippingQuoteProvider
from boutique.shipping.quoter import ShippingQuoter

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


# --- Fabriques d'articles ---
def make_ticket(ticket_type_id="t-ga", qty=1, price=500000, currency="NGN", transfer=False, **kw) -> TicketItem:
    return TicketItem(
        ticket_type_id=ticket_type_id,
        name=kw.pop("name", "General"),
        qty=qty,
        unit_price_minor=price,
        currency=currency,
        transfer_fees_to_guest=transfer,
        **kw,
    )

def make_merch(merch_item_id="m-tee", qty=1, price=2000000, currency="NGN", brand_id="v1", **kw) -> MerchItem:
    return MerchItem(
        merch_item_id=merch_item_id,
        name=kw.pop("name", "Tee"),
        qty=qty,
        unit_price_minor=price,
        currency=currency,
        brand_id=brand_id,
        **kw,
    )


# --- Faux fournisseur de devis ---
class FakeShippingProvider(ShippingQuoteProvider):
    """Frais fixes par vendeur; les vendeurs listés dans failing lèvent ShippingQuoteError."""

    def __init__(self, fees: Optional[Dict[str, int]] = None, failing=(), default_fee: int = 150000):
        self.fees = dict(fees or {})
        self.failing = set(failing)
        self.default_fee = default_fee
        self.calls: List[Dict[str, Any]] = []

    async def quote(self, vendor_id, items, dest_state, dest_city=None):
        self.calls.append({"vendorId": vendor_id, "state": dest_state, "city": dest_city, "items": len(items)})
        if vendor_id in self.failing:
            raise ShippingQuoteError(vendor_id)
        return ShippingQuote(vendor_id=vendor_id, fee_minor=self.fees.get(vendor_id, self.default_fee))


# --- Faux Stripe (sessions en mémoire) ---
class FakeStripe:
    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)
        self.fail_create = False

    def create_session(self, **kwargs) -> Dict[str, Any]:
        if self.fail_create:
            raise RuntimeError("stripe down")
        sid = f"cs_test_{next(self._ids)}"
        session = {
            "id": sid,
            "url": f"https://checkout.stripe.test/{sid}",
            "status": "open",
            "payment_status": "unpaid",
            "amount_total": kwargs["amount_minor"],
            "metadata": dict(kwargs.get("metadata") or {}),
        }
        self.sessions[sid] = session
        self.created.append(kwargs)
        return dict(session)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        return dict(self.sessions[session_id])

    def expire_session(self, session_id: str) -> Dict[str, Any]:
        self.sessions[session_id].update({"status": "expired"})
        return dict(self.sessions[session_id])

    def mark_paid(self, session_id: str, amount: Optional[int] = None) -> Dict[str, Any]:
        s = self.sessions[session_id]
        s.update({"status": "complete", "payment_status": "paid", "payment_intent": f"pi_{session_id}"})
        if amount is not None:
            s["amount_total"] = amount
        return dict(s)


# --- Faux dépôt commandes (Supabase) ---
class FakeOrdersRepo:
    def __init__(self):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.fulfillment: List[Dict[str, Any]] = []
        self.fail_order = False
        self.fail_fulfillment = False
        self._ids = itertools.count(1)

    def find_order_by_idempotency_key(self, key):
        for oid, row in self.orders.items():
            if row.get("idempotencyKey") == key:
                return {"id": oid, "status": row.get("status")}
        return None

    def create_order(self, order):
        if self.fail_order:
            return None
        oid = f"ord_{next(self._ids)}"
        self.orders[oid] = dict(order)
        return oid

    def create_fulfillment_lines(self, order_id, lines):
        if self.fail_fulfillment:
            return False
        self.fulfillment.extend(lines)
        return True

    def get_order(self, order_id):
        row = self.orders.get(order_id)
        return {"id": order_id, **row} if row else None


@pytest.fixture
def fake_provider() -> FakeShippingProvider:
    return FakeShippingProvider(fees={"v1": 150000})

@pytest.fixture
def fee_policy() -> PercentPlusFlatPolicy:
    return PercentPlusFlatPolicy(150, 10000, ("NGN",))

@pytest.fixture
def quoter(fake_provider) -> ShippingQuoter:
    return ShippingQuoter(fake_provider, timeout_seconds=0.5)

@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr("boutique.payments.stripe_client.create_session", fake.create_session)
    monkeypatch.setattr("boutique.payments.stripe_client.get_session", fake.get_session)
    monkeypatch.setattr("boutique.payments.stripe_client.expire_session", fake.expire_session)
    return fake

@pytest.fixture(autouse=True)
def orders_repo(monkeypatch) -> FakeOrdersRepo:
    """
    Neutralise Supabase pour tous les tests:
    - clients Supabase remplacés par des MagicMock
    - dépôt commandes en mémoire
    - lecture d'événement factice (titre d'affichage)
    """
    monkeypatch.setattr("boutique.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("boutique.infra.supabase_client.get_service_supabase", lambda: MagicMock())
    repo = FakeOrdersRepo()
    monkeypatch.setattr("boutique.commandes.repository.find_order_by_idempotency_key", repo.find_order_by_idempotency_key)
    monkeypatch.setattr("boutique.commandes.repository.create_order", repo.create_order)
    monkeypatch.setattr("boutique.commandes.repository.create_fulfillment_lines", repo.create_fulfillment_lines)
    monkeypatch.setattr("boutique.commandes.repository.get_order", repo.get_order)
    monkeypatch.setattr(
        "boutique.evenements.repository.fetch_event_by_id",
        lambda event_id: {"id": event_id, "title": "Lagos Night Fest"},
    )
    return repo

@pytest.fixture
def services(quoter, fee_policy, fake_stripe) -> CheckoutServices:
    return CheckoutServices(store=CheckoutStore(), quoter=quoter, gateway=StripeGateway(), policy=fee_policy)

@pytest.fixture
def app(services):
    fastapi_app = create_app()
    fastapi_app.state.checkout_services = services
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
