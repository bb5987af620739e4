"""
Order Finalizer: étape serveur appelée uniquement après un paiement réussi.

- Garde de ré-entrance: l'état passe idle -> finalizing avant tout await;
  tout autre appel (double callback passerelle) est un no-op.
- Revalide les totaux indépendamment (frais recalculés, livraison figée,
  montant réellement encaissé) et refuse toute dérive (TotalsMismatchError).
- Upsert sur clé d'idempotence: une commande déjà présente est réutilisée.
- Échec d'écriture de la commande: FinalizeError avec la référence de paiement,
  jamais rejouée automatiquement.
- Échec d'écriture des lignes de fulfillment: journalisé, commande conservée
  (écriture partielle tolérée, signalée par fulfillment_incomplete).
- Succès: panier vidé, seul l'id de commande est renvoyé (avec le chemin de succès).
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from boutique.cart.models import MerchItem, TicketItem
from boutique.config import CHECKOUT_SUCCESS_PATH
from boutique.errors import FinalizeError, TotalsMismatchError
from boutique.fees.calculator import FeePolicy, calculate_fees
from . import repository
from .models import (
    ClientTotals,
    DeliverTo,
    FinalizeLineItem,
    FinalizeRequest,
    FinalizeResult,
    FinalizeState,
    FulfillmentLine,
    OrderShipping,
    ProviderRef,
)

logger = logging.getLogger(__name__)

# module boutique.commandes.finalizer

def to_finalize_line_items(items: Sequence[Any]) -> List[FinalizeLineItem]:
    """Réduit les lignes du panier à {_type, id, qty, size?, color?} (sans nom ni prix)."""
    out: List[FinalizeLineItem] = []
    for it in items:
        if isinstance(it, TicketItem):
            out.append(FinalizeLineItem(kind="ticket", ticket_type_id=it.ticket_type_id, qty=it.qty))
        elif isinstance(it, MerchItem):
            out.append(FinalizeLineItem(
                kind="merch",
                merch_item_id=it.merch_item_id,
                qty=it.qty,
                size=it.size,
                color=it.color,
            ))
    return out

def client_totals_from(totals) -> ClientTotals:
    return ClientTotals(
        currency=totals.currency,
        items_subtotal_minor=totals.items_subtotal_minor,
        fees_minor=totals.buyer_fees_minor,
        shipping_minor=totals.shipping_fee_minor,
        total_minor=totals.total_due_minor,
    )

def build_finalize_request(context, payment_reference: str) -> FinalizeRequest:
    snapshot = context.pay_snapshot
    selection = snapshot.shipping_selection
    shipping = None
    if selection is not None:
        shipping = OrderShipping(
            method=selection.method,
            address=selection.address.model_dump(by_alias=True, exclude_none=True) if (selection.method == "delivery" and selection.address) else None,
            fee_minor=snapshot.totals.shipping_fee_minor,
        )
    return FinalizeRequest(
        idempotency_key=context.idempotency_key,
        event_id=context.event_id,
        buyer_user_id=context.buyer_user_id,
        deliver_to=DeliverTo(email=snapshot.email, phone=snapshot.phone),
        provider="stripe",
        provider_ref=ProviderRef(init_ref=payment_reference, verify_ref=payment_reference),
        line_items=snapshot.line_items,
        client_totals=client_totals_from(snapshot.totals),
        shipping=shipping,
    )

def verify_totals(snapshot, client_totals: ClientTotals, amount_paid_minor: Optional[int], policy: Optional[FeePolicy], payment_reference: str) -> None:
    """
    Recalcule les totaux à partir des lignes figées et compare:
    - au total déclaré par le client (client_totals)
    - au montant encaissé par la passerelle, si connu
    """
    shipping_minor = snapshot.shipping.total_minor
    if shipping_minor is None:
        raise TotalsMismatchError("Frais de livraison non résolus au moment du paiement", payment_reference=payment_reference)
    recomputed = calculate_fees(snapshot.items, policy=policy, shipping_fee_minor=shipping_minor)
    expected = recomputed.items_subtotal_minor + recomputed.buyer_fees_minor + shipping_minor
    declared = (
        client_totals.items_subtotal_minor,
        client_totals.fees_minor,
        client_totals.shipping_minor,
        client_totals.total_minor,
    )
    computed = (recomputed.items_subtotal_minor, recomputed.buyer_fees_minor, shipping_minor, expected)
    if declared != computed or client_totals.currency != recomputed.currency:
        logger.error("commandes.finalize totals mismatch declared=%s computed=%s ref=%s", declared, computed, payment_reference)
        raise TotalsMismatchError("Les totaux déclarés ne correspondent pas au recalcul serveur", payment_reference=payment_reference)
    if amount_paid_minor is not None and int(amount_paid_minor) != expected:
        logger.error("commandes.finalize amount mismatch paid=%s expected=%s ref=%s", amount_paid_minor, expected, payment_reference)
        raise TotalsMismatchError("Le montant encaissé ne correspond pas au total dû", payment_reference=payment_reference)

def build_fulfillment_lines(order_id: str, snapshot) -> List[Dict[str, Any]]:
    """Une ligne par article merch d'un vendeur; les tickets ne sont pas suivis."""
    selection = snapshot.shipping_selection
    method = selection.method if selection else None
    address = None
    if selection is not None and selection.method == "delivery" and selection.address:
        address = selection.address.model_dump(by_alias=True, exclude_none=True)
    rows: List[Dict[str, Any]] = []
    for vendor in snapshot.shipping.vendors:
        fee = vendor.quote.fee_minor if vendor.quote else 0
        for it in vendor.items:
            line = FulfillmentLine(
                order_id=order_id,
                line_key=f"merch:{it.merch_item_id}",
                vendor_id=vendor.vendor_id,
                qty_ordered=it.qty,
                variant=it.variant_key,
                shipping=OrderShipping(method=method, address=address, fee_minor=fee),
            )
            rows.append(line.model_dump(mode="json", by_alias=True, exclude_none=True))
    return rows

def success_path(event_id: str, order_id: str) -> str:
    return CHECKOUT_SUCCESS_PATH.format(event_id=event_id) + f"?orderId={order_id}"

async def finalize_order(
    context,
    payment_reference: str,
    amount_paid_minor: Optional[int] = None,
    policy: Optional[FeePolicy] = None,
) -> Optional[FinalizeResult]:
    """
    Finalise la commande d'un checkout payé, au plus une fois.
    Retour:
      - FinalizeResult si la commande existe (créée maintenant ou déjà finalisée)
      - None si une finalisation est déjà en cours ou a échoué (no-op)
    """
    if context.finalize_state == FinalizeState.DONE:
        return context.finalize_result
    if context.finalize_state != FinalizeState.IDLE:
        logger.info("commandes.finalize skipped state=%s checkout_id=%s ref=%s", context.finalize_state.value, context.checkout_id, payment_reference)
        return None
    # Transition synchrone, avant le premier await
    context.finalize_state = FinalizeState.FINALIZING

    try:
        if context.pay_snapshot is None or not context.idempotency_key:
            raise FinalizeError("Aucun paiement ouvert pour ce checkout", payment_reference=payment_reference)

        request = build_finalize_request(context, payment_reference)
        verify_totals(context.pay_snapshot, request.client_totals, amount_paid_minor, policy, payment_reference)

        reused = False
        existing = await run_in_threadpool(repository.find_order_by_idempotency_key, request.idempotency_key)
        if existing and existing.get("id"):
            order_id = str(existing["id"])
            reused = True
            logger.info("commandes.finalize reuse order_id=%s key=%s", order_id, request.idempotency_key)
        else:
            order_id = await run_in_threadpool(repository.create_order, request.to_order_row())
            if not order_id:
                raise FinalizeError("La commande n'a pas pu être enregistrée", payment_reference=payment_reference)

        lines = build_fulfillment_lines(order_id, context.pay_snapshot)
        ok = await run_in_threadpool(repository.create_fulfillment_lines, order_id, lines)
        if not ok:
            logger.error("commandes.finalize fulfillment incomplete order_id=%s lines=%s", order_id, len(lines))
    except FinalizeError as e:
        context.finalize_state = FinalizeState.FAILED
        context.last_error = e.to_dict()
        logger.error("commandes.finalize failed checkout_id=%s ref=%s code=%s", context.checkout_id, payment_reference, e.code)
        raise
    except Exception as e:
        context.finalize_state = FinalizeState.FAILED
        err = FinalizeError("Erreur inattendue lors de la finalisation", payment_reference=payment_reference)
        context.last_error = err.to_dict()
        logger.exception("commandes.finalize unexpected error checkout_id=%s ref=%s", context.checkout_id, payment_reference)
        raise err from e

    result = FinalizeResult(
        order_id=order_id,
        redirect_path=success_path(context.event_id, order_id),
        reused=reused,
        fulfillment_incomplete=not ok,
    )
    context.finalize_result = result
    context.finalize_state = FinalizeState.DONE
    context.cart.clear()
    logger.info("commandes.finalize done order_id=%s checkout_id=%s ref=%s", order_id, context.checkout_id, payment_reference)
    return result
