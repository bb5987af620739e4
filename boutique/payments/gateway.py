"""
Payment Gateway Adapter (Stripe Checkout).
- Ouvre une session hébergée pour un montant déjà réconcilié.
- Rapporte l'issue sous forme de résultat étiqueté:
  PaymentSuccess(reference) | PaymentCancelled() | PaymentFailed(message)
- Ne crée jamais de commande: la finalisation appartient à commandes.finalizer.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from boutique.errors import PaymentGatewayError
from . import stripe_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    id: str
    url: str


@dataclass(frozen=True)
class PaymentSuccess:
    reference: str
    session_id: Optional[str] = None
    amount_minor: Optional[int] = None
    checkout_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentCancelled:
    session_id: Optional[str] = None
    checkout_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentFailed:
    message: str
    session_id: Optional[str] = None
    checkout_id: Optional[str] = None


PaymentOutcome = Union[PaymentSuccess, PaymentCancelled, PaymentFailed]


def order_type_for(has_tickets: bool, has_merch: bool) -> str:
    if has_tickets and has_merch:
        return "mixed"
    return "merch" if has_merch else "tickets"


def build_metadata(event_id: str, customer_name: str, phone: str, order_type: str, checkout_id: str) -> Dict[str, str]:
    """Métadonnées Stripe (valeurs str uniquement)."""
    return {
        "eventId": event_id or "",
        "customerName": customer_name or "",
        "phone": phone or "",
        "orderType": order_type,
        "checkoutId": checkout_id or "",
    }


def _session_outcome(session: Dict[str, Any]) -> PaymentOutcome:
    session_id = session.get("id")
    checkout_id = (session.get("metadata") or {}).get("checkoutId")
    status = session.get("status") or ""
    payment_status = session.get("payment_status") or ""
    if payment_status in ("paid", "no_payment_required"):
        reference = session.get("payment_intent") or session_id or ""
        if isinstance(reference, dict):
            reference = reference.get("id") or session_id or ""
        amount = session.get("amount_total")
        return PaymentSuccess(
            reference=str(reference),
            session_id=session_id,
            amount_minor=int(amount) if amount is not None else None,
            checkout_id=checkout_id,
        )
    if status == "expired":
        return PaymentCancelled(session_id=session_id, checkout_id=checkout_id)
    return PaymentFailed(
        message=f"Paiement non confirmé (status={status}, payment_status={payment_status})",
        session_id=session_id,
        checkout_id=checkout_id,
    )


class StripeGateway:
    provider = "stripe"

    def initialize_payment(
        self,
        amount_minor: int,
        email: str,
        metadata: Dict[str, str],
        *,
        currency: str,
        success_url: str,
        cancel_url: str,
        product_name: str = "Commande",
        idempotency_key: Optional[str] = None,
    ) -> PaymentSession:
        """Ouvre la session hébergée; toute erreur SDK devient PaymentGatewayError."""
        if amount_minor <= 0:
            raise PaymentGatewayError("Montant à payer invalide")
        try:
            session = stripe_client.create_session(
                amount_minor=amount_minor,
                currency=currency,
                product_name=product_name,
                customer_email=email,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except Exception as e:
            logger.exception("payments.gateway.initialize_payment failed checkout_id=%s", metadata.get("checkoutId"))
            raise PaymentGatewayError("Impossible d'ouvrir la session de paiement") from e
        session_id = session.get("id")
        url = session.get("url")
        if not session_id or not url:
            raise PaymentGatewayError("Session de paiement invalide")
        logger.info("payments.gateway.initialize_payment session=%s amount=%s", session_id, amount_minor)
        return PaymentSession(id=str(session_id), url=str(url))

    def resolve_outcome(self, session_id: str) -> PaymentOutcome:
        """Lit la session Stripe et en déduit l'issue (erreur SDK => PaymentFailed)."""
        try:
            session = stripe_client.get_session(session_id)
        except Exception:
            logger.exception("payments.gateway.resolve_outcome failed session=%s", session_id)
            return PaymentFailed(message="Vérification du paiement impossible", session_id=session_id)
        return _session_outcome(session)

    def outcome_from_event(self, event: Dict[str, Any]) -> Optional[PaymentOutcome]:
        """
        Traduit un événement webhook:
        - checkout.session.completed -> issue de la session (succès si payée)
        - checkout.session.async_payment_succeeded -> succès
        - checkout.session.expired -> annulation
        - checkout.session.async_payment_failed -> échec
        - autres types -> None (ignoré)
        """
        event_type = (event or {}).get("type") or ""
        session = dict(((event or {}).get("data") or {}).get("object") or {})
        if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            return _session_outcome(session)
        if event_type == "checkout.session.expired":
            return PaymentCancelled(session_id=session.get("id"), checkout_id=(session.get("metadata") or {}).get("checkoutId"))
        if event_type == "checkout.session.async_payment_failed":
            return PaymentFailed(
                message="Paiement refusé par la passerelle",
                session_id=session.get("id"),
                checkout_id=(session.get("metadata") or {}).get("checkoutId"),
            )
        return None
