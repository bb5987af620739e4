"""
Cas d'usage 'checkout': orchestre panier, frais, livraison, passerelle et finalisation.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from starlette.concurrency import run_in_threadpool

from boutique.commandes.finalizer import finalize_order, to_finalize_line_items
from boutique.commandes.idempotency import build_idempotency_key
from boutique.commandes.models import FinalizeResult, FinalizeState
from boutique.config import BASE_URL, CHECKOUT_CANCEL_PATH, CHECKOUT_RETURN_PATH
from boutique.errors import CheckoutValidationError, PaymentGatewayError
from boutique.fees.calculator import FeePolicy, calculate_fees
from boutique.payments.gateway import (
    PaymentCancelled,
    PaymentFailed,
    PaymentOutcome,
    PaymentSession,
    PaymentSuccess,
    StripeGateway,
    build_metadata,
    order_type_for,
)
from boutique.shipping.quoter import ShippingQuoter
from .context import CheckoutContext, CheckoutStore, PaySnapshot, utcnow
from .steps import Step, can_enter, pay_complete

logger = logging.getLogger(__name__)

MAX_PRICING_ATTEMPTS = 3


@dataclass
class CheckoutServices:
    store: CheckoutStore
    quoter: ShippingQuoter
    gateway: StripeGateway
    policy: Optional[FeePolicy] = None


async def refresh_pricing(context: CheckoutContext, quoter: ShippingQuoter, policy: Optional[FeePolicy] = None) -> bool:
    """
    Recalcule frais et livraison pour l'état courant du panier.
    - La livraison n'est redemandée que si shipping_revision a bougé
      (merch, méthode ou destination); sinon le dernier devis est réutilisé.
    - La révision du panier est lue avant les awaits; si le panier a changé
      pendant le calcul, le résultat est abandonné (retour False).
    """
    cart = context.cart
    revision = cart.revision
    shipping_revision = cart.shipping_revision
    totals = calculate_fees(cart.items, policy=policy)
    if context.shipping is not None and context.priced_shipping_revision == shipping_revision:
        shipping = context.shipping
    else:
        shipping = await quoter.resolve(cart)
    if cart.revision != revision:
        logger.info("checkout.refresh_pricing stale result discarded checkout_id=%s rev=%s now=%s", context.checkout_id, revision, cart.revision)
        return False
    context.totals = totals.with_shipping(shipping.total_minor or 0)
    context.shipping = shipping
    context.priced_revision = revision
    context.priced_shipping_revision = shipping_revision
    return True


async def ensure_pricing(context: CheckoutContext, quoter: ShippingQuoter, policy: Optional[FeePolicy] = None) -> None:
    """Recalcule si nécessaire; quelques tentatives si le panier bouge pendant le calcul."""
    for _ in range(MAX_PRICING_ATTEMPTS):
        if context.priced_revision == context.cart.revision and context.totals is not None:
            return
        if await refresh_pricing(context, quoter, policy):
            return
    raise CheckoutValidationError("Le panier a changé pendant le calcul des totaux, réessayez")


def _return_urls(context: CheckoutContext):
    success_url = f"{BASE_URL}{CHECKOUT_RETURN_PATH}?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{BASE_URL}{CHECKOUT_CANCEL_PATH}?checkout_id={context.checkout_id}"
    return success_url, cancel_url


async def enter_pay_step(context: CheckoutContext, services: CheckoutServices, product_name: str = "Commande") -> PaymentSession:
    """
    Entrée dans l'étape pay:
    - vérifie les prédicats (étapes précédentes + CGV)
    - fige les montants (PaySnapshot), le montant n'est plus recalculé ensuite
    - calcule la clé d'idempotence de la tentative (réutilisée par la finalisation)
    - verrouille le panier et ouvre la session de paiement
    """
    async with context.lock:
        if context.finalize_state != FinalizeState.IDLE:
            raise CheckoutValidationError("Ce checkout est déjà finalisé ou en cours de finalisation")
        if context.payment_session_id:
            raise CheckoutValidationError("Un paiement est déjà en cours pour ce checkout")
        cart = context.cart
        if not can_enter(cart, Step.PAY) or not pay_complete(cart):
            raise CheckoutValidationError("Informations de contact, livraison ou CGV incomplètes")

        await ensure_pricing(context, services.quoter, services.policy)
        if context.shipping is None or context.shipping.is_pending:
            raise CheckoutValidationError("Frais de livraison en cours de calcul")

        items = list(cart.items)
        line_items = to_finalize_line_items(items)
        snapshot = PaySnapshot(
            items=items,
            line_items=line_items,
            totals=context.totals,
            shipping=context.shipping,
            shipping_selection=cart.shipping,
            email=str(cart.contact.email),
            phone=cart.contact.phone,
            customer_name=cart.contact.full_name,
            created_at=utcnow(),
        )
        context.pay_snapshot = snapshot
        context.idempotency_key = build_idempotency_key(
            context.event_id, snapshot.email, line_items, now=snapshot.created_at.timestamp()
        )
        cart.lock()
        context.pay_attempts += 1

        success_url, cancel_url = _return_urls(context)
        metadata = build_metadata(
            event_id=context.event_id,
            customer_name=snapshot.customer_name,
            phone=snapshot.phone or "",
            order_type=order_type_for(bool(cart.tickets), cart.has_merch),
            checkout_id=context.checkout_id,
        )
        try:
            session = await run_in_threadpool(
                services.gateway.initialize_payment,
                snapshot.amount_minor,
                snapshot.email,
                metadata,
                currency=snapshot.totals.currency,
                success_url=success_url,
                cancel_url=cancel_url,
                product_name=product_name,
                idempotency_key=f"{context.idempotency_key}:{context.pay_attempts}",
            )
        except PaymentGatewayError:
            context.reset_payment()
            raise
        services.store.bind_payment_session(context, session.id)
        logger.info(
            "checkout.enter_pay_step checkout_id=%s session=%s amount=%s",
            context.checkout_id, session.id, snapshot.amount_minor,
        )
        return session


def is_current_session(context: CheckoutContext, outcome: PaymentOutcome) -> bool:
    """Une issue sans session_id est rattachée à la session courante."""
    return not outcome.session_id or outcome.session_id == context.payment_session_id


def flag_unreconciled(context: CheckoutContext, outcome: PaymentSuccess) -> None:
    """Paiement encaissé sur une session remplacée: jamais finalisé ici, signalé au support."""
    entry = {
        "sessionId": outcome.session_id,
        "paymentReference": outcome.reference,
        "amountMinor": outcome.amount_minor,
        "flaggedAt": utcnow().isoformat(),
    }
    if any(e.get("paymentReference") == outcome.reference for e in context.unreconciled_payments):
        return
    context.unreconciled_payments.append(entry)
    logger.error(
        "checkout.payment unreconciled checkout_id=%s session=%s current=%s ref=%s amount=%s",
        context.checkout_id, outcome.session_id, context.payment_session_id, outcome.reference, outcome.amount_minor,
    )


async def handle_payment_outcome(
    context: CheckoutContext,
    outcome: PaymentOutcome,
    policy: Optional[FeePolicy] = None,
) -> Optional[FinalizeResult]:
    """
    Traite l'issue d'un paiement pour la session courante du checkout:
    - succès: finalisation (au plus une fois)
    - annulation: ré-arme le checkout, aucun effet serveur
    - échec: ré-arme le checkout puis PaymentGatewayError
    Une issue tardive d'une session remplacée ne touche jamais la tentative
    en cours: annulation/échec ignorés, succès signalé (unreconciled_payments).
    """
    if not is_current_session(context, outcome):
        if isinstance(outcome, PaymentSuccess):
            flag_unreconciled(context, outcome)
        else:
            logger.info(
                "checkout.payment stale outcome ignored checkout_id=%s session=%s current=%s",
                context.checkout_id, outcome.session_id, context.payment_session_id,
            )
        return None
    if isinstance(outcome, PaymentSuccess):
        return await finalize_order(context, outcome.reference, outcome.amount_minor, policy)
    if isinstance(outcome, PaymentCancelled):
        if context.finalize_state == FinalizeState.IDLE:
            context.reset_payment()
            logger.info("checkout.payment cancelled checkout_id=%s", context.checkout_id)
        return None
    if isinstance(outcome, PaymentFailed):
        if context.finalize_state == FinalizeState.IDLE:
            context.reset_payment()
            logger.warning("checkout.payment failed checkout_id=%s msg=%s", context.checkout_id, outcome.message)
            raise PaymentGatewayError(outcome.message)
        return None
    raise TypeError(f"Issue de paiement inconnue: {outcome!r}")
