"""
Clés d'idempotence des tentatives de checkout.
- Lignes sérialisées de façon canonique (clés JSON triées) puis triées par
  leur forme sérialisée: l'ordre d'insertion du panier n'a pas d'effet.
- Email normalisé (minuscules, sans espaces).
- Horodatage à la seconde: deux soumissions dans la même seconde donnent la même clé.
Le format de la clé est opaque pour l'appelant.
"""
import hashlib
import json
import time
from typing import Any, Dict, Iterable, Optional


def _as_dict(item: Any) -> Dict[str, Any]:
    if hasattr(item, "canonical"):
        return item.canonical()
    if hasattr(item, "model_dump"):
        return item.model_dump(by_alias=True, exclude_none=True)
    return {k: v for k, v in dict(item).items() if v is not None}


def generate_cart_hash(line_items: Iterable[Any]) -> str:
    """Forme canonique des lignes: 'empty' si vide, sinon lignes JSON triées jointes par '|'."""
    serialized = sorted(
        json.dumps(_as_dict(li), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        for li in line_items or []
    )
    if not serialized:
        return "empty"
    return "|".join(serialized)


def build_idempotency_key(
    event_id: str,
    email: str,
    line_items: Iterable[Any],
    now: Optional[float] = None,
) -> str:
    """
    Construit la clé d'idempotence d'une tentative.
    - now: horodatage epoch (secondes); time.time() si absent.
    """
    bucket = int(now if now is not None else time.time())
    normalized_email = (email or "").strip().lower()
    cart_digest = hashlib.sha256(generate_cart_hash(line_items).encode("utf-8")).hexdigest()[:32]
    return f"{event_id}:{normalized_email}:{cart_digest}:{bucket}"
