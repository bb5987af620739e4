from typing import List, Dict, Any, Optional
from boutique.infra.supabase_client import get_service_supabase
import logging

logger = logging.getLogger(__name__)

# module boutique.commandes.repository
# Écritures via la clé service (RLS contourné côté serveur uniquement)

def find_order_by_idempotency_key(idempotency_key: str) -> Optional[Dict[str, Any]]:
    """Retourne la commande existante pour cette clé (upsert-on-key), sinon None."""
    if not idempotency_key:
        return None
    try:
        res = (
            get_service_supabase()
            .table("orders")
            .select("id, status, idempotencyKey")
            .eq("idempotencyKey", idempotency_key)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("commandes.repository.find_order_by_idempotency_key failed key=%s", idempotency_key)
        return None

def create_order(order: Dict[str, Any]) -> Optional[str]:
    """
    Insère le document 'orders' et retourne son id.
    - None en cas d'échec (le finalizer convertit en FinalizeError).
    """
    try:
        res = get_service_supabase().table("orders").insert(order).execute()
        rows = getattr(res, "data", None) or []
        if isinstance(rows, list) and rows and rows[0].get("id"):
            return str(rows[0]["id"])
        logger.error("commandes.repository.create_order returned no id key=%s", order.get("idempotencyKey"))
        return None
    except Exception:
        logger.exception("commandes.repository.create_order failed key=%s", order.get("idempotencyKey"))
        return None

def create_fulfillment_lines(order_id: str, lines: List[Dict[str, Any]]) -> bool:
    """
    Upsert des lignes de fulfillment (clé: orderId + lineKey + variant).
    - Pas de transaction avec 'orders': un échec ici laisse une écriture partielle.
    """
    if not lines:
        return True
    try:
        (
            get_service_supabase()
            .table("fulfillment_lines")
            .upsert(lines, on_conflict="orderId,lineKey,variant")
            .execute()
        )
        return True
    except Exception:
        logger.exception("commandes.repository.create_fulfillment_lines failed order_id=%s count=%s", order_id, len(lines))
        return False

def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    if not order_id:
        return None
    try:
        res = (
            get_service_supabase()
            .table("orders")
            .select("*")
            .eq("id", order_id)
            .single()
            .execute()
        )
        return res.data or None
    except Exception:
        logger.exception("commandes.repository.get_order failed id=%s", order_id)
        return None
