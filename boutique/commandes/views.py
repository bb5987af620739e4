import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from starlette.concurrency import run_in_threadpool

from boutique.commandes import repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/commandes", tags=["Commandes API"])

# module boutique.commandes.views
@router.get("/{order_id}")
async def get_commande(order_id: str) -> Dict[str, Any]:
    """
    Récapitulatif d'une commande pour la page de succès.
    - Ne renvoie que les champs utiles à l'affichage (pas de références passerelle).
    - 404 si la commande est introuvable.
    """
    order = await run_in_threadpool(repository.get_order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return {
        "id": order.get("id"),
        "eventId": order.get("eventId"),
        "status": order.get("status"),
        "lineItems": order.get("lineItems") or [],
        "totals": order.get("clientTotals") or {},
        "shipping": order.get("shipping"),
    }
