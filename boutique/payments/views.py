import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_303_SEE_OTHER

from boutique.checkout.context import CheckoutContext
from boutique.checkout.service import CheckoutServices, handle_payment_outcome, is_current_session
from boutique.checkout.steps import Step, step_path
from boutique.errors import CheckoutNotFound, FinalizeError, PaymentGatewayError
from boutique.payments import stripe_client
from boutique.payments.gateway import PaymentCancelled, PaymentSuccess

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module boutique.payments.views

def get_services(request: Request) -> CheckoutServices:
    return request.app.state.checkout_services

def _as_dict(event: Any) -> Dict[str, Any]:
    if hasattr(event, "to_dict"):
        return event.to_dict()
    return dict(event or {})

def _context_for(services: CheckoutServices, session_id: Optional[str], checkout_id: Optional[str]) -> Optional[CheckoutContext]:
    """Checkout par session courante, sinon par checkoutId (metadata) pour les sessions remplacées."""
    ctx = services.store.find_by_payment_session(session_id) if session_id else None
    if ctx is None and checkout_id:
        try:
            ctx = services.store.get(checkout_id)
        except CheckoutNotFound:
            ctx = None
    return ctx

@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, services: CheckoutServices = Depends(get_services)):
    """
    Webhook Stripe (Checkout): traduit l'événement en issue de paiement.
    - Signature: validée via stripe_client.parse_event
    - Succès: finalisation au plus une fois (même si Stripe rejoue l'événement)
    - Annulation/échec: ré-arme le checkout, aucune commande
    - Session remplacée: annulation/échec ignorés, succès signalé pour rapprochement
    - Réponses: {"status": "ok", "orderId": ...} | {"status": "ignored"} | {"status": "cancelled"}
      | {"status": "failed"} | {"status": "unreconciled"}
    - Erreurs: 400 si signature/payload invalide; 500 {code: finalize_failed} si la commande n'a pas pu être écrite
    """
    try:
        event = _as_dict(await stripe_client.parse_event(request))
    except Exception:
        logger.exception("Erreur webhook_stripe")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")

    outcome = services.gateway.outcome_from_event(event)
    if outcome is None:
        return JSONResponse({"status": "ignored"})

    ctx = _context_for(services, outcome.session_id, outcome.checkout_id)
    if ctx is None:
        logger.warning("payments.webhook unknown checkout session=%s type=%s", outcome.session_id, event.get("type"))
        return JSONResponse({"status": "ignored"})

    current = is_current_session(ctx, outcome)
    try:
        result = await handle_payment_outcome(ctx, outcome, services.policy)
    except PaymentGatewayError:
        return JSONResponse({"status": "failed"})
    if not current:
        return JSONResponse({"status": "unreconciled" if isinstance(outcome, PaymentSuccess) else "ignored"})
    if isinstance(outcome, PaymentCancelled):
        return JSONResponse({"status": "cancelled"})
    if isinstance(outcome, PaymentSuccess):
        logger.info("payments.webhook finalized order_id=%s session=%s", result.order_id if result else None, outcome.session_id)
        return JSONResponse({"status": "ok", "orderId": result.order_id if result else None})
    return JSONResponse({"status": "failed"})

@router.get("/return")
async def payment_return(session_id: str, services: CheckoutServices = Depends(get_services)):
    """
    Retour de Stripe après paiement (success_url).
    - Vérifie l'issue réelle de la session (jamais la seule présence du retour)
    - Succès: finalise (no-op si le webhook l'a déjà fait) puis redirige vers la page de succès
    - Sinon: redirige vers l'étape pay ré-armée avec un code d'erreur
    - Session remplacée: rien n'est finalisé; un paiement encaissé est signalé (payment=unreconciled)
    """
    ctx = services.store.find_by_payment_session(session_id)
    outcome = await run_in_threadpool(services.gateway.resolve_outcome, session_id)
    if ctx is None:
        ctx = _context_for(services, None, outcome.checkout_id)
    if ctx is None:
        raise HTTPException(status_code=404, detail="Session de paiement inconnue")

    pay_path = step_path(ctx.event_id, Step.PAY)
    current = is_current_session(ctx, outcome)
    try:
        result = await handle_payment_outcome(ctx, outcome, services.policy)
    except PaymentGatewayError as e:
        return RedirectResponse(url=f"{pay_path}?payment=failed&code={e.code}", status_code=HTTP_303_SEE_OTHER)
    except FinalizeError:
        # Le paiement est encaissé: la référence est conservée dans ctx.last_error pour le support
        return RedirectResponse(url=f"{pay_path}?payment=finalize_failed", status_code=HTTP_303_SEE_OTHER)

    if not current:
        code = "unreconciled" if isinstance(outcome, PaymentSuccess) else "cancelled"
        return RedirectResponse(url=f"{pay_path}?payment={code}", status_code=HTTP_303_SEE_OTHER)
    if result is not None:
        return RedirectResponse(url=result.redirect_path, status_code=HTTP_303_SEE_OTHER)
    if isinstance(outcome, PaymentSuccess):
        # Finalisation concurrente en cours (webhook): le front interroge l'état du checkout
        return RedirectResponse(url=f"{pay_path}?payment=processing", status_code=HTTP_303_SEE_OTHER)
    return RedirectResponse(url=f"{pay_path}?payment=cancelled", status_code=HTTP_303_SEE_OTHER)

@router.get("/cancel")
async def payment_cancel(checkout_id: str, services: CheckoutServices = Depends(get_services)):
    """
    Abandon de la page de paiement (cancel_url): aucune commande, checkout ré-armé.
    - Si la session a malgré tout été payée, on finalise au lieu d'annuler.
    - Sinon, expire la session Stripe pour qu'elle ne puisse plus être payée.
    """
    ctx = services.store.get(checkout_id)
    session_id = ctx.payment_session_id
    if session_id:
        outcome = await run_in_threadpool(services.gateway.resolve_outcome, session_id)
        if isinstance(outcome, PaymentSuccess):
            return await payment_return(session_id=session_id, services=services)
        try:
            await run_in_threadpool(stripe_client.expire_session, session_id)
        except Exception:
            logger.warning("payments.cancel expire failed session=%s", session_id)
    await handle_payment_outcome(ctx, PaymentCancelled(session_id=session_id, checkout_id=checkout_id))
    return RedirectResponse(url=f"{step_path(ctx.event_id, Step.PAY)}?payment=cancelled", status_code=HTTP_303_SEE_OTHER)
