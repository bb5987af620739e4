from typing import Optional, Dict, Any
from boutique.infra.supabase_client import get_supabase
import logging

logger = logging.getLogger(__name__)

# Lecture seule: sert uniquement à l'affichage (titre dans le récapitulatif),
# jamais aux décisions de prix.

def fetch_event_by_id(event_id: str) -> Optional[Dict[str, Any]]:
    if not event_id:
        return None
    try:
        res = (
            get_supabase()
            .table("events")
            .select("id, title, startAt, venue")
            .eq("id", event_id)
            .single()
            .execute()
        )
        return res.data or None
    except Exception:
        logger.exception("evenements.repository.fetch_event_by_id failed id=%s", event_id)
        return None

def event_title(event_id: str, default: str = "Commande") -> str:
    event = fetch_event_by_id(event_id) or {}
    return str(event.get("title") or default)
