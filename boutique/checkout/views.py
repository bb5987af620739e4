import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from boutique.cart.models import CartItem, ContactInfo, ShippingSelection
from boutique.errors import CheckoutValidationError
from boutique.evenements.repository import event_title
from boutique.fees.calculator import format_currency
from boutique.utils.rate_limit import optional_rate_limit
from .context import CheckoutContext
from .service import CheckoutServices, enter_pay_step, ensure_pricing
from .steps import cta_state, resolve_navigation

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

# module boutique.checkout.views


class CreateCheckoutRequest(BaseModel):
    event_id: str = Field(alias="eventId", min_length=1)
    buyer_user_id: Optional[str] = Field(default=None, alias="buyerUserId")


class AddItemRequest(BaseModel):
    item: CartItem


class UpdateQtyRequest(BaseModel):
    kind: Literal["ticket", "merch"] = Field(alias="_type")
    item_id: str = Field(alias="id", min_length=1)
    variant_key: str = Field(default="", alias="variantKey")
    qty: int = Field(ge=0)


class RemoveItemRequest(BaseModel):
    kind: Literal["ticket", "merch"] = Field(alias="_type")
    item_id: str = Field(alias="id", min_length=1)
    variant_key: str = Field(default="", alias="variantKey")


class TermsRequest(BaseModel):
    accepted: bool


def get_services(request: Request) -> CheckoutServices:
    return request.app.state.checkout_services


def get_context(checkout_id: str, services: CheckoutServices = Depends(get_services)) -> CheckoutContext:
    return services.store.get(checkout_id)


async def _state(ctx: CheckoutContext, services: CheckoutServices) -> Dict[str, Any]:
    """
    Vue complète du checkout: panier, totaux (avec livraison), devis, avertissements.
    - Les totaux sont recalculés si le panier a changé depuis le dernier calcul.
    - Panier verrouillé (paiement ouvert): les montants figés sont renvoyés.
    """
    if ctx.pay_snapshot is not None:
        totals = ctx.pay_snapshot.totals
        shipping = ctx.pay_snapshot.shipping
    else:
        await ensure_pricing(ctx, services.quoter, services.policy)
        totals = ctx.totals
        shipping = ctx.shipping
    cart = ctx.cart
    return {
        **ctx.to_dict(),
        "eventTitle": await run_in_threadpool(event_title, ctx.event_id),
        "items": [it.model_dump(by_alias=True, exclude_none=True) for it in cart.items],
        "contact": cart.contact.model_dump(by_alias=True, exclude_none=True),
        "shipping": cart.shipping.model_dump(by_alias=True, exclude_none=True) if cart.shipping else None,
        "termsAccepted": cart.terms_accepted,
        "totals": totals.model_dump(by_alias=True) if totals else None,
        "totalDisplay": format_currency(totals.total_due_minor, totals.currency) if totals else None,
        "shippingQuote": shipping.model_dump(by_alias=True, exclude={"vendors": {"__all__": {"items"}}}) if shipping else None,
        "shippingCalculating": bool(shipping and shipping.is_pending),
        "warnings": list(shipping.warnings) if shipping else [],
        "lastError": ctx.last_error,
    }


@router.post("/sessions", status_code=201)
async def create_checkout(body: CreateCheckoutRequest, services: CheckoutServices = Depends(get_services)):
    """Crée un contexte de checkout pour un événement (acheteur invité autorisé)."""
    ctx = services.store.create(event_id=body.event_id, buyer_user_id=body.buyer_user_id)
    return await _state(ctx, services)


@router.get("/sessions/{checkout_id}")
async def get_checkout(ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    return await _state(ctx, services)


@router.post("/sessions/{checkout_id}/items")
async def add_item(body: AddItemRequest, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    """
    Ajoute une ligne ticket/merch.
    - Même (type, id, variante): la quantité est remplacée.
    - Devise différente du panier: 422 inconsistent_currency.
    """
    ctx.cart.add_item(body.item)
    return await _state(ctx, services)


@router.patch("/sessions/{checkout_id}/items")
async def update_item_qty(body: UpdateQtyRequest, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    """Met à jour la quantité d'une ligne (0 retire la ligne)."""
    ctx.cart.update_qty(body.kind, body.item_id, body.qty, body.variant_key)
    return await _state(ctx, services)


@router.delete("/sessions/{checkout_id}/items")
async def remove_item(body: RemoveItemRequest, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    ctx.cart.remove_item(body.kind, body.item_id, body.variant_key)
    return await _state(ctx, services)


@router.put("/sessions/{checkout_id}/contact")
async def set_contact(body: ContactInfo, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    ctx.cart.set_contact(body)
    return await _state(ctx, services)


@router.put("/sessions/{checkout_id}/shipping")
async def set_shipping(body: ShippingSelection, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    """Choix pickup/delivery; un changement de destination relance les devis."""
    ctx.cart.set_shipping(body)
    return await _state(ctx, services)


@router.put("/sessions/{checkout_id}/terms")
async def set_terms(body: TermsRequest, ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    ctx.cart.set_terms_accepted(body.accepted)
    return await _state(ctx, services)


@router.get("/sessions/{checkout_id}/steps")
def get_steps(path: str, ctx: CheckoutContext = Depends(get_context)) -> Dict[str, Any]:
    """
    Navigation dérivée de l'URL:
    - step: étape à afficher (ou redirection vers la première étape incomplète)
    - cta: libellé, état désactivé et chemin suivant du bouton principal
    """
    finalized = ctx.order_id is not None
    decision = resolve_navigation(ctx.cart, ctx.event_id, path, finalized=finalized)
    cta = cta_state(ctx.cart, ctx.event_id, decision.step)
    return {
        "step": decision.step.value,
        "allowed": decision.allowed,
        "redirectTo": decision.redirect_to,
        "cta": {"label": cta.label, "disabled": cta.disabled, "nextPath": cta.next_path},
    }


@router.post("/sessions/{checkout_id}/pay", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def pay(ctx: CheckoutContext = Depends(get_context), services: CheckoutServices = Depends(get_services)):
    """
    Ouvre la session de paiement hébergée pour le total réconcilié.
    - 422 si contact/livraison/CGV incomplets ou livraison en cours de calcul
    - 402 si la passerelle refuse l'ouverture (checkout ré-armé)
    Retour: {id, url, amountMinor, currency}
    """
    product_name = await run_in_threadpool(event_title, ctx.event_id)
    session = await enter_pay_step(ctx, services, product_name=product_name)
    snapshot = ctx.pay_snapshot
    if snapshot is None:
        raise CheckoutValidationError("Session de paiement non initialisée")
    return {
        "id": session.id,
        "url": session.url,
        "amountMinor": snapshot.amount_minor,
        "currency": snapshot.totals.currency,
        "amountDisplay": format_currency(snapshot.amount_minor, snapshot.totals.currency),
    }
