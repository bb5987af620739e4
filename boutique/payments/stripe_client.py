"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
"""
import stripe
from typing import Any, Dict, Optional
from fastapi import Request

from boutique.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

# module boutique.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def create_session(
    *,
    amount_minor: int,
    currency: str,
    product_name: str,
    customer_email: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout pour un montant unique déjà réconcilié.
    - amount_minor: total dû (articles + frais acheteur + livraison), en unités mineures
    - metadata: ex {"eventId": "...", "orderType": "mixed", "checkoutId": "..."}
    - idempotency_key: transmis à Stripe pour dédoublonner les créations
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "quantity": 1,
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": int(amount_minor),
                "product_data": {"name": product_name},
            },
        }],
        customer_email=customer_email,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
        payment_intent_data={"metadata": metadata},
        idempotency_key=idempotency_key,
    )
    # stripe retourne un objet; on le traite comme dict-compatible
    return dict(session)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "status", "payment_status", "amount_total", "metadata".
    """
    require_stripe()
    session = stripe.checkout.Session.retrieve(session_id)
    return dict(session)

def expire_session(session_id: str) -> Dict[str, Any]:
    """Expire une session ouverte (abandon explicite côté client)."""
    require_stripe()
    return dict(stripe.checkout.Session.expire(session_id))

async def parse_event(request: Request):
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    Retour: l'objet event si la signature est valide.
    """
    require_stripe()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or request.headers.get("Stripe-Signature")
    event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET or "")
    return event
