# module boutique.checkout.context
"""
Contexte de checkout: objet explicite transmis à chaque composant.
- Porte le panier (CartStore), les derniers totaux/livraison calculés et
  l'état de finalisation (machine idle -> finalizing -> done | failed).
- PaySnapshot fige le panier et les montants au moment d'entrer dans l'étape pay;
  le montant envoyé à la passerelle n'est jamais recalculé ensuite.
- CheckoutStore: registre en mémoire des contextes (porté par app.state).
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel

from boutique.cart.models import MerchItem, ShippingSelection, TicketItem
from boutique.cart.store import CartStore
from boutique.commandes.models import FinalizeLineItem, FinalizeResult, FinalizeState
from boutique.config import CHECKOUT_DONE_TTL_SECONDS, CHECKOUT_IDLE_TTL_SECONDS
from boutique.errors import CheckoutNotFound
from boutique.fees.models import FeeTotals
from boutique.shipping.models import ShippingResolution

logger = logging.getLogger(__name__)


class PaySnapshot(BaseModel):
    items: List[Union[TicketItem, MerchItem]]
    line_items: List[FinalizeLineItem]
    totals: FeeTotals
    shipping: ShippingResolution
    shipping_selection: Optional[ShippingSelection] = None
    email: str
    phone: Optional[str] = None
    customer_name: str = ""
    created_at: datetime

    @property
    def amount_minor(self) -> int:
        return self.totals.total_due_minor


class CheckoutContext:
    def __init__(self, event_id: str, buyer_user_id: Optional[str] = None, checkout_id: Optional[str] = None):
        self.checkout_id = checkout_id or uuid4().hex
        self.event_id = event_id
        self.buyer_user_id = buyer_user_id
        self.cart = CartStore(event_id=event_id)
        self.totals: Optional[FeeTotals] = None
        self.shipping: Optional[ShippingResolution] = None
        self.priced_revision = -1
        self.priced_shipping_revision = -1
        self.idempotency_key: Optional[str] = None
        self.pay_attempts = 0
        self.pay_snapshot: Optional[PaySnapshot] = None
        self.payment_session_id: Optional[str] = None
        self.finalize_state = FinalizeState.IDLE
        self.finalize_result: Optional[FinalizeResult] = None
        self.last_error: Optional[Dict[str, object]] = None
        self.unreconciled_payments: List[Dict[str, object]] = []
        self.touched_at = time.monotonic()
        self.lock = asyncio.Lock()

    @property
    def order_id(self) -> Optional[str]:
        return self.finalize_result.order_id if self.finalize_result else None

    @property
    def warnings(self) -> List[str]:
        return list(self.shipping.warnings) if self.shipping else []

    @property
    def payment_open(self) -> bool:
        return self.payment_session_id is not None and self.finalize_state == FinalizeState.IDLE

    def touch(self) -> None:
        self.touched_at = time.monotonic()

    def reset_payment(self) -> None:
        """Ré-arme le checkout après annulation/échec: aucune commande, panier déverrouillé."""
        self.payment_session_id = None
        self.pay_snapshot = None
        self.cart.unlock()

    def to_dict(self) -> Dict[str, object]:
        return {
            "checkoutId": self.checkout_id,
            "eventId": self.event_id,
            "finalizeState": self.finalize_state.value,
            "orderId": self.order_id,
            "locked": self.cart.locked,
            "revision": self.cart.revision,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutStore:
    """
    Registre en mémoire des checkouts (un processus).
    - Une session de paiement n'est rattachée qu'au checkout qui l'a ouverte
      tant qu'elle est la session courante de ce checkout.
    - purge_expired() libère les checkouts inactifs (finalisés plus tôt).
    """

    def __init__(self, done_ttl: Optional[float] = None, idle_ttl: Optional[float] = None):
        self._contexts: Dict[str, CheckoutContext] = {}
        self._by_payment_session: Dict[str, str] = {}
        self.done_ttl = CHECKOUT_DONE_TTL_SECONDS if done_ttl is None else done_ttl
        self.idle_ttl = CHECKOUT_IDLE_TTL_SECONDS if idle_ttl is None else idle_ttl

    def __len__(self) -> int:
        return len(self._contexts)

    def create(self, event_id: str, buyer_user_id: Optional[str] = None) -> CheckoutContext:
        self.purge_expired()
        ctx = CheckoutContext(event_id=event_id, buyer_user_id=buyer_user_id)
        self._contexts[ctx.checkout_id] = ctx
        logger.info("checkout.create checkout_id=%s event_id=%s", ctx.checkout_id, event_id)
        return ctx

    def get(self, checkout_id: str) -> CheckoutContext:
        ctx = self._contexts.get(checkout_id or "")
        if ctx is None:
            raise CheckoutNotFound(f"Checkout introuvable: {checkout_id}")
        ctx.touch()
        return ctx

    def bind_payment_session(self, ctx: CheckoutContext, session_id: str) -> None:
        previous = ctx.payment_session_id
        if previous and previous != session_id:
            self._by_payment_session.pop(previous, None)
        ctx.payment_session_id = session_id
        self._by_payment_session[session_id] = ctx.checkout_id

    def find_by_payment_session(self, session_id: str) -> Optional[CheckoutContext]:
        """Checkout dont session_id est la session courante; None pour une session remplacée."""
        checkout_id = self._by_payment_session.get(session_id or "")
        ctx = self._contexts.get(checkout_id) if checkout_id else None
        if ctx is None or ctx.payment_session_id != session_id:
            self._by_payment_session.pop(session_id or "", None)
            return None
        ctx.touch()
        return ctx

    def discard(self, checkout_id: str) -> None:
        ctx = self._contexts.pop(checkout_id, None)
        if ctx and ctx.payment_session_id:
            self._by_payment_session.pop(ctx.payment_session_id, None)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Retire les checkouts inactifs; jamais ceux en cours de finalisation."""
        now = time.monotonic() if now is None else now
        expired = []
        for checkout_id, ctx in self._contexts.items():
            if ctx.finalize_state == FinalizeState.FINALIZING:
                continue
            ttl = self.done_ttl if ctx.finalize_state == FinalizeState.DONE else self.idle_ttl
            if now - ctx.touched_at > ttl:
                expired.append(checkout_id)
        for checkout_id in expired:
            self.discard(checkout_id)
        if expired:
            logger.info("checkout.purge_expired removed=%s remaining=%s", len(expired), len(self._contexts))
        return len(expired)
